from unittest.mock import MagicMock

from conftest import CHANNEL, CONTACT, DEVICE, DEVICE_PHONE, agent_msg, contact_msg, sent_texts
from salesbot.clients.transport import QuotedMessage
from salesbot.core import phrases as ph
from salesbot.core import states as st
from salesbot.errors import SessionNotReady, UpstreamFailure
from salesbot.intel.ocr import Recognition
from salesbot.store import config_repo as cr
from salesbot.store.models import FollowUpRecord

KEY = (DEVICE, CONTACT)

ASSIST_REPLY = """
ASSIST PLUS #ASSIST
Usuario: joao123
Senha: abc987 ***
LAZER PLAY
Codigo: xx
Usuario: maria
Senha: xyz ***
"""


def test_ibo_without_media_then_inline_identifier(engine, transport, provisioning):
    engine.handle_event(agent_msg("#IBO"))

    pending = engine.store.get_pending(DEVICE, CHANNEL)
    assert pending is not None
    assert pending.flow == st.PENDING_FLOW_IBO
    assert sent_texts(transport) == [ph.MSG_IBO_REASK]
    provisioning.request_trial.assert_not_called()

    engine.handle_event(agent_msg("AA:BB:CC:11:22:33"))

    provisioning.request_trial.assert_called_once()
    kwargs = provisioning.request_trial.call_args.kwargs
    assert kwargs["product_name"] == "ibo revenda"
    assert kwargs["label"] == "ibo revenda - MAC AA:BB:CC:11:22:33"
    assert engine.store.get_pending(DEVICE, CHANNEL) is None
    assert sent_texts(transport)[-1] == ph.MSG_IBO_OK

    # resolved requests never re-trigger
    engine.handle_event(agent_msg("AA:BB:CC:11:22:33"))
    provisioning.request_trial.assert_called_once()


def test_ibo_with_inline_identifier(engine, provisioning):
    engine.handle_event(agent_msg("#IBO AA:BB:CC:DD:EE:FF"))
    assert provisioning.request_trial.call_args.kwargs["label"] == "ibo revenda - MAC AA:BB:CC:DD:EE:FF"
    assert engine.store.get_pending(DEVICE, CHANNEL) is None


def test_ibo_with_attached_photo(engine, ocr, provisioning, transport):
    ocr.recognize.return_value = Recognition(text="MAC: 00:1A:2B:3C:4D:5E")
    engine.handle_event(agent_msg("#IBO", hasMedia=True))
    transport.download_media.assert_called_once()
    assert provisioning.request_trial.call_args.kwargs["label"] == "ibo revenda - MAC 00:1A:2B:3C:4D:5E"


def test_ibo_photo_unreadable_registers_pending(engine, ocr, transport, provisioning):
    ocr.recognize.return_value = Recognition(text="nada aqui")
    engine.handle_event(agent_msg("#IBO", hasMedia=True))
    assert engine.store.get_pending(DEVICE, CHANNEL) is not None
    assert sent_texts(transport) == [ph.MSG_OCR_FAILED_WAITING_AGENT]
    provisioning.request_trial.assert_not_called()


def test_ibo_with_quoted_contact_photo(engine, ocr, transport, provisioning):
    transport.get_quoted_message.return_value = QuotedMessage(id="q1", senderId=f"{CONTACT}@c.us", hasMedia=True)
    ocr.recognize.return_value = Recognition(text="MAC 001A2B3C4D5E")

    engine.handle_event(agent_msg("#IBO", quotedMessageRef="q1"))

    transport.download_media.assert_called_once_with(DEVICE, "q1")
    assert provisioning.request_trial.call_args.kwargs["label"] == "ibo revenda - MAC 00:1A:2B:3C:4D:5E"


def test_contact_photo_resolves_ibo_pending(engine, ocr, provisioning, transport):
    engine.handle_event(agent_msg("#IBO"))
    ocr.recognize.return_value = Recognition(text="MAC: 00:1A:2B:3C:4D:5E")

    engine.handle_event(contact_msg(hasMedia=True))

    provisioning.request_trial.assert_called_once()
    assert engine.store.get_pending(DEVICE, CHANNEL) is None
    assert sent_texts(transport) == [ph.MSG_IBO_REASK, ph.MSG_IBO_OK]


def test_keyword_trial_formats_credentials(engine, provisioning, transport, follow_ups):
    provisioning.request_trial.return_value = ASSIST_REPLY
    engine.handle_event(agent_msg("#ASSIST"))

    assert provisioning.request_trial.call_args.kwargs["product_name"] == "assist"
    assert sent_texts(transport) == ["ASSIST PLUS\n\nCod: centertv\nUsuario: joao123\nSenha: abc987"]
    follow_ups.schedule.assert_called_once()


def test_keyword_missing_from_reply(engine, provisioning, transport):
    provisioning.request_trial.return_value = "Obrigado!"
    engine.handle_event(agent_msg("#LAZER"))
    assert sent_texts(transport) == [ph.MSG_NO_CONTENT.format(keyword="LAZER PLAY")]


def test_full_text_fallback_for_assist(engine, provisioning, transport):
    provisioning.request_trial.return_value = "Usuario: ana\nSenha: 42"
    engine.handle_event(agent_msg("#PLAYSIM"))
    assert sent_texts(transport) == ["PLAYSIM\n\nCod: centertv\nUsuario: ana\nSenha: 42"]


def test_limit_reached_clears_state(engine, provisioning, transport):
    engine.handle_event(agent_msg("Chegando nessa tela voce me avisa aqui"))
    provisioning.request_trial.return_value = "Voce ja solicitou um teste hoje."

    engine.handle_event(agent_msg("#LAZER"))

    assert engine.store.get(KEY).is_idle
    assert sent_texts(transport) == [ph.MSG_LIMIT_REACHED]


def test_upstream_failure_degrades_to_fallback(engine, provisioning, transport):
    provisioning.request_trial.side_effect = UpstreamFailure("timeout")
    out = engine.handle_event(agent_msg("#FUN"))
    assert out["status"] == "processed"
    assert sent_texts(transport) == [ph.MSG_FALLBACK]


def test_unknown_command_is_ignored(engine, transport, provisioning):
    out = engine.handle_event(agent_msg("#NETFLIX"))
    assert out["handled"] is False
    transport.send.assert_not_called()
    provisioning.request_trial.assert_not_called()


def test_disabled_command_is_ignored(engine, resolver, provisioning):
    resolver.create(cr.COMMANDS, {"token": "#ASSIST", "flowName": "ASSIST", "enabled": False})
    engine.handle_event(agent_msg("#ASSIST"))
    provisioning.request_trial.assert_not_called()


def test_own_echo_is_not_reprocessed(engine, transport, provisioning):
    engine.handle_event(agent_msg("#IBO"))
    assert provisioning.request_trial.call_count == 0

    by_id = engine.handle_event(agent_msg("anything", messageId="out-1"))
    by_body = engine.handle_event(agent_msg(ph.MSG_IBO_REASK))

    assert by_id["status"] == "echo"
    assert by_body["status"] == "echo"
    assert transport.send.call_count == 1


def test_duplicate_agent_message_processed_once(engine, provisioning):
    engine.handle_event(agent_msg("#ASSIST", messageId="ag-1"))
    out = engine.handle_event(agent_msg("#ASSIST", messageId="ag-1"))
    assert out["status"] == "duplicate"
    provisioning.request_trial.assert_called_once()


def test_phone_from_quoted_message(engine, transport, provisioning):
    transport.get_quoted_message.return_value = QuotedMessage(id="q1", senderId="5511666660000@c.us")
    engine.handle_event(agent_msg("#ASSIST", channelId="abc@lid", quotedMessageRef="q1"))
    assert provisioning.request_trial.call_args.kwargs["contact_phone_e164"] == "+5511666660000"
    assert engine.store.phone_for(DEVICE, "abc@lid") == "5511666660000"


def test_quoted_own_message_does_not_set_phone(engine, transport, provisioning):
    transport.get_quoted_message.return_value = QuotedMessage(id="q1", senderId=f"{DEVICE_PHONE}@c.us")
    engine.handle_event(agent_msg("#ASSIST", quotedMessageRef="q1"))
    assert provisioning.request_trial.call_args.kwargs["contact_phone_e164"] == "+5511999990000"


def test_unresolvable_phone_is_audited(engine, provisioning):
    out = engine.handle_event(agent_msg("#ASSIST", channelId="abc@lid"))
    assert out["reason"] == "phone_not_found"
    provisioning.request_trial.assert_not_called()


def test_agent_reply_command(engine, resolver, transport):
    resolver.create(cr.VARIABLES, {"name": "pix", "value": "pix@loja.tv"})
    resolver.create(cr.AGENT_COMMANDS, {"trigger": "#pix", "responseTemplate": "{#nome} chave: {#pix}"})
    engine.handle_event(contact_msg("oi"))

    engine.handle_event(agent_msg("#PIX"))

    assert sent_texts(transport) == ["Ana chave: pix@loja.tv"]


def test_agent_test_command_fills_trial_slots(engine, resolver, transport, provisioning, follow_ups):
    resolver.create(cr.AGENT_COMMANDS, {
        "trigger": "#smarters",
        "commandType": "test",
        "responseTemplate": "Usuario {#usuario} / Senha {#senha}\n{#http1}\n{#http2}",
    })
    provisioning.request_trial.return_value = (
        "Acesse http://painel.tv/app e https://bit.ly/abc\n"
        "http://srv.tv/get.php?username=u9&password=p9&type=m3u"
    )

    engine.handle_event(agent_msg("#smarters"))

    assert provisioning.request_trial.call_args.kwargs["product_name"] == "smarters"
    assert sent_texts(transport) == ["Usuario u9 / Senha p9\nhttps://bit.ly/abc\nhttp://painel.tv/app"]
    follow_ups.schedule.assert_called_once()


def test_agent_command_error_is_contained(engine, resolver, transport, monkeypatch):
    resolver.create(cr.AGENT_COMMANDS, {"trigger": "#pix", "responseTemplate": "x"})
    monkeypatch.setattr(resolver, "variables_map", MagicMock(side_effect=RuntimeError("bad")))
    out = engine.handle_event(agent_msg("#pix"))
    assert out["handled"] is True
    transport.send.assert_not_called()


def test_follow_up_sender_checks_session_and_marks_echo(engine, transport):
    rec = FollowUpRecord(id="r1", contactPhone="+5511999990000", chatId=CHANNEL,
                         createdAt="2024-01-01T00:00:00Z", clientName="Ana", sessionName="loja", deviceId=DEVICE)
    engine.send_follow_up(rec, "Seu teste terminou. Ana, como foi o teste?")

    transport.ensure_ready.assert_called_once_with(DEVICE)
    assert engine.handle_event(agent_msg("Seu teste terminou. Ana, como foi o teste?"))["status"] == "echo"


def test_follow_up_sender_propagates_not_ready(engine, transport):
    transport.ensure_ready.side_effect = SessionNotReady("offline")
    rec = FollowUpRecord(id="r1", contactPhone="+55", chatId=CHANNEL, createdAt="x", deviceId=DEVICE)
    try:
        engine.send_follow_up(rec, "oi")
    except SessionNotReady:
        pass
    else:
        raise AssertionError("expected SessionNotReady")
    transport.send.assert_not_called()


def _smarters(resolver):
    resolver.create(cr.AGENT_COMMANDS, {
        "trigger": "#smarters",
        "commandType": "test",
        "responseTemplate": "Usuario {#usuario} / Senha {#senha}",
    })


def test_agent_test_command_limit_clears_state(engine, resolver, transport, provisioning, follow_ups):
    _smarters(resolver)
    engine.handle_event(agent_msg("Chegando nessa tela voce me avisa aqui"))
    assert engine.store.get(KEY).kind == st.AWAITING_PHOTO
    provisioning.request_trial.return_value = "Voce ja solicitou um teste hoje."

    engine.handle_event(agent_msg("#smarters"))

    assert engine.store.get(KEY).is_idle
    assert sent_texts(transport) == [ph.MSG_LIMIT_REACHED]
    follow_ups.schedule.assert_not_called()


def test_agent_test_command_upstream_failure_keeps_state(engine, resolver, transport, provisioning, follow_ups):
    _smarters(resolver)
    engine.handle_event(agent_msg("Chegando nessa tela voce me avisa aqui"))
    provisioning.request_trial.side_effect = UpstreamFailure("timeout")

    out = engine.handle_event(agent_msg("#smarters"))

    assert out["handled"] is True
    assert engine.store.get(KEY).kind == st.AWAITING_PHOTO
    assert sent_texts(transport) == [ph.MSG_FALLBACK]
    follow_ups.schedule.assert_not_called()
