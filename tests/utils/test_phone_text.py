import pytest

from salesbot.utils.phone import digits_only, is_group_channel, normalize_to_e164_br
from salesbot.utils.text import contains_word, fold_upper, strip_accents
from salesbot.utils.time import parse_timestamp_ms


@pytest.mark.parametrize("raw,expected", [
    ("11999990000", "+5511999990000"),
    ("1133334444", "+551133334444"),
    ("5511999990000@c.us", "+5511999990000"),
    ("+55 (11) 99999-0000", "+5511999990000"),
    ("12345", None),
    ("", None),
    (None, None),
])
def test_normalize_to_e164_br(raw, expected):
    assert normalize_to_e164_br(raw) == expected


def test_digits_only_and_groups():
    assert digits_only("abc@lid") == ""
    assert is_group_channel("1203630@g.us") is True
    assert is_group_channel("5511999990000@c.us") is False


def test_accent_folding():
    assert strip_accents("Usuário") == "Usuario"
    assert fold_upper("não") == "NAO"


def test_contains_word_is_whole_word():
    assert contains_word("sim, pode ser", "sim")
    assert not contains_word("simples", "sim")
    assert contains_word("ja ENCAMINHEI o teste", "encaminhei o teste")


def test_parse_timestamp_ms():
    assert parse_timestamp_ms("2024-01-01T00:00:00Z") == 1704067200000
    assert parse_timestamp_ms(1704067200) == 1704067200000
    assert parse_timestamp_ms("ontem") is None
    assert parse_timestamp_ms(True) is None
