"""
Client for the chat transport bridge (the process that holds the device
sessions). The engine only needs four calls: send, download media, fetch a
quoted message and check whether a device session can send.
"""
from dataclasses import dataclass
from typing import Optional

import httpx

from salesbot.errors import MediaDownloadFailure, SendFailure, SessionNotFound, SessionNotReady
from salesbot.observability.logging import log
from salesbot.settings import settings


@dataclass
class QuotedMessage:
    id: str
    senderId: str = ""
    body: str = ""
    hasMedia: bool = False


class HttpTransport:
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.TRANSPORT_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.TRANSPORT_TIMEOUT_SEC

    def _url(self, device_id: str, path: str) -> str:
        return f"{self.base_url}/devices/{device_id}{path}"

    def send(self, device_id: str, channel_id: str, text: str, quoted_ref: Optional[str] = None) -> Optional[str]:
        payload = {"chatId": channel_id, "text": text}
        if quoted_ref:
            payload["quotedMessageId"] = quoted_ref
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(self._url(device_id, "/messages"), json=payload)
        except httpx.HTTPError as e:
            raise SendFailure(channel_id, text, f"{type(e).__name__}: {str(e)[:200]}") from e
        if not (200 <= resp.status_code < 300):
            raise SendFailure(channel_id, text, f"status {resp.status_code}")
        try:
            return (resp.json() or {}).get("id")
        except ValueError:
            return None

    def download_media(self, device_id: str, message_ref: str) -> bytes:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.get(self._url(device_id, f"/messages/{message_ref}/media"))
        except httpx.HTTPError as e:
            raise MediaDownloadFailure(f"{type(e).__name__}: {str(e)[:200]}") from e
        if resp.status_code != 200 or not resp.content:
            raise MediaDownloadFailure(f"status {resp.status_code}")
        return resp.content

    def get_quoted_message(self, device_id: str, message_ref: str) -> Optional[QuotedMessage]:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.get(self._url(device_id, f"/messages/{message_ref}/quoted"))
        except httpx.HTTPError as e:
            log(event="transport_quoted_fetch_failed", deviceId=device_id, error=str(e)[:200])
            return None
        if resp.status_code != 200:
            return None
        data = resp.json() or {}
        if not data.get("id"):
            return None
        return QuotedMessage(
            id=str(data["id"]),
            senderId=data.get("senderId") or "",
            body=data.get("body") or "",
            hasMedia=bool(data.get("hasMedia")),
        )

    def ensure_ready(self, device_id: str) -> None:
        """Raise SessionNotFound / SessionNotReady when the device cannot send now."""
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.get(self._url(device_id, "/status"))
        except httpx.HTTPError as e:
            raise SessionNotReady(f"status check failed: {str(e)[:200]}") from e
        if resp.status_code == 404:
            raise SessionNotFound(f"no session for device {device_id}")
        if resp.status_code != 200 or not (resp.json() or {}).get("ready"):
            raise SessionNotReady(f"session for device {device_id} not ready")
