import pytest
from unittest.mock import MagicMock, patch

from salesbot.queue.jobs import deliver_interaction_job


@patch("salesbot.queue.jobs.settings")
@patch("salesbot.queue.jobs.httpx.Client")
def test_job_posts_event(mock_cls, mock_settings):
    mock_settings.AUDIT_SINK_URL = "http://audit/events"
    mock_settings.AUDIT_TIMEOUT_SEC = 2
    client = MagicMock()
    client.post.return_value = MagicMock(status_code=201)
    mock_cls.return_value.__enter__.return_value = client

    deliver_interaction_job({"eventType": "message_received", "deviceId": "dev1"})

    client.post.assert_called_once_with("http://audit/events", json={"eventType": "message_received", "deviceId": "dev1"})


@patch("salesbot.queue.jobs.settings")
@patch("salesbot.queue.jobs.httpx.Client")
def test_job_reraises_for_rq_retry(mock_cls, mock_settings):
    mock_settings.AUDIT_SINK_URL = "http://audit/events"
    client = MagicMock()
    client.post.return_value = MagicMock(status_code=503)
    mock_cls.return_value.__enter__.return_value = client

    with pytest.raises(RuntimeError, match="503"):
        deliver_interaction_job({"eventType": "reply_sent"})


@patch("salesbot.queue.jobs.settings")
@patch("salesbot.queue.jobs.httpx.Client")
def test_job_noop_without_sink(mock_cls, mock_settings):
    mock_settings.AUDIT_SINK_URL = ""
    deliver_interaction_job({"eventType": "reply_sent"})
    mock_cls.assert_not_called()
