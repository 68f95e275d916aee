from salesbot.core.templates import render_template, render_trial_template


def test_builtins_and_variables():
    out = render_template("Oi {#nome}, pix: {#pix}. Tel {#telefone}", name="Ana", phone="+5511999990000",
                          variables={"pix": "chave@loja"})
    assert out == "Oi Ana, pix: chave@loja. Tel +5511999990000"


def test_variable_overrides_builtin():
    assert render_template("Oi {#nome}", name="Ana", variables={"nome": "cliente"}) == "Oi cliente"


def test_unknown_placeholder_kept():
    assert render_template("Valor {#preco}", variables={}) == "Valor {#preco}"


def test_missing_name_renders_empty():
    assert render_template("Oi {#NOME}!", name=None) == "Oi !"


def test_trial_slots():
    out = render_trial_template(
        "U: {#usuario} S: {#senha} L1: {#http1} L2: {#http2} - {#nome}",
        "Ana", "+55", {"usuario": "u1", "senha": "s1", "http1": "https://bit.ly/a", "http2": ""},
    )
    assert out == "U: u1 S: s1 L1: https://bit.ly/a L2:  - Ana"
