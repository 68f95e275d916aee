import pytest
from unittest.mock import MagicMock, patch

import httpx

from salesbot.clients.provisioning import ProvisioningClient, build_observations
from salesbot.errors import UpstreamFailure


def _client(mock_cls, status=200, data=None, error=None):
    client = MagicMock()
    mock_cls.return_value.__enter__.return_value = client
    if error is not None:
        client.post.side_effect = error
    else:
        resp = MagicMock()
        resp.status_code = status
        resp.json.return_value = data if data is not None else {}
        client.post.return_value = resp
    return client


@patch("salesbot.clients.provisioning.settings")
@patch("salesbot.clients.provisioning.httpx.Client")
def test_request_trial_payload_and_reply(mock_cls, mock_settings):
    mock_settings.PROVISIONING_USER = "bot"
    mock_settings.PROVISIONING_PASSWORD = "pw"
    mock_settings.PROVISIONING_USER_AGENT = "+TVBot"
    mock_settings.PROVISIONING_SOURCE_IP = ""
    mock_settings.DEVICE_NAME = "Loja"
    mock_settings.DEVICE_PHONE = ""
    client = _client(mock_cls, data={"data": {"reply": "Usuario: a\nSenha: b"}})

    reply = ProvisioningClient(url="http://gen/api", timeout=3).request_trial(
        product_name="assist",
        device_phone="5511888880000",
        contact_name=" Ana ",
        contact_phone_e164="+5511999990000",
        label="assist",
    )

    assert reply == "Usuario: a\nSenha: b"
    url = client.post.call_args.args[0]
    kwargs = client.post.call_args.kwargs
    assert url == "http://gen/api"
    assert kwargs["auth"] == ("bot", "pw")
    payload = kwargs["json"]
    assert payload["appName"] == "assist"
    assert payload["devicePhone"] == "5511888880000"
    assert payload["senderName"] == "Ana"
    assert payload["customerWhatsapp"] == "+5511999990000"
    assert payload["senderMessage"].startswith("Gerado com ChatBot\nApp: assist")


@patch("salesbot.clients.provisioning.httpx.Client")
def test_request_trial_without_name_omits_name_fields(mock_cls):
    client = _client(mock_cls, data={"data": {"reply": "ok"}})
    ProvisioningClient(url="http://gen/api").request_trial("fun", "55", "", "+5511999990000", "fun")
    payload = client.post.call_args.kwargs["json"]
    assert "senderName" not in payload
    assert "customerName" not in payload


@patch("salesbot.clients.provisioning.httpx.Client")
def test_non_2xx_is_upstream_failure(mock_cls):
    _client(mock_cls, status=502)
    with pytest.raises(UpstreamFailure):
        ProvisioningClient(url="http://gen/api").request_trial("fun", "55", "", "+55", "fun")


@patch("salesbot.clients.provisioning.httpx.Client")
def test_network_error_is_upstream_failure(mock_cls):
    _client(mock_cls, error=httpx.ReadTimeout("slow"))
    with pytest.raises(UpstreamFailure) as exc:
        ProvisioningClient(url="http://gen/api").request_trial("fun", "55", "", "+55", "fun")
    assert exc.value.reason == "UPSTREAM_ERROR"


def test_missing_url_is_upstream_failure():
    with pytest.raises(UpstreamFailure):
        ProvisioningClient(url="").request_trial("fun", "55", "", "+55", "fun")


@patch("salesbot.clients.provisioning.httpx.Client")
def test_missing_reply_is_empty_text(mock_cls):
    _client(mock_cls, data={"data": None})
    assert ProvisioningClient(url="http://gen/api").request_trial("fun", "55", "", "+55", "fun") == ""


@patch("salesbot.clients.provisioning.settings")
def test_observations_include_source_ip(mock_settings):
    mock_settings.PROVISIONING_SOURCE_IP = "10.0.0.1"
    mock_settings.PROVISIONING_USER_AGENT = "+TVBot"
    assert build_observations("ibo revenda - MAC AA") == (
        "Gerado com ChatBot\nApp: ibo revenda - MAC AA\nIP: 10.0.0.1\nUser-Agent: +TVBot"
    )
