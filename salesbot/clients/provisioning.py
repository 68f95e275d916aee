import time
from typing import Optional

import httpx

from salesbot.errors import UpstreamFailure
from salesbot.observability.logging import log
from salesbot.settings import settings


def build_observations(label: str) -> str:
    lines = ["Gerado com ChatBot", f"App: {(label or '').strip()}".rstrip()]
    if settings.PROVISIONING_SOURCE_IP:
        lines.append(f"IP: {settings.PROVISIONING_SOURCE_IP}")
    lines.append(f"User-Agent: {settings.PROVISIONING_USER_AGENT}")
    return "\n".join(lines)


class ProvisioningClient:
    """Trial generation upstream. Returns the free-form reply text."""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url if url is not None else settings.PROVISIONING_URL
        self.timeout = timeout or settings.PROVISIONING_TIMEOUT_SEC

    def request_trial(self, product_name: str, device_phone: str, contact_name: str,
                      contact_phone_e164: str, label: str) -> str:
        if not self.url:
            raise UpstreamFailure("PROVISIONING_URL is not set")

        payload = {
            "appName": product_name,
            "messageDateTime": int(time.time()),
            "devicePhone": device_phone or settings.DEVICE_PHONE,
            "deviceName": settings.DEVICE_NAME,
            "senderMessage": build_observations(label),
            "senderPhone": contact_phone_e164,
            "userAgent": settings.PROVISIONING_USER_AGENT,
            "customerWhatsapp": contact_phone_e164,
        }
        if (contact_name or "").strip():
            payload["senderName"] = contact_name.strip()
            payload["customerName"] = contact_name.strip()

        auth = None
        if settings.PROVISIONING_USER:
            auth = (settings.PROVISIONING_USER, settings.PROVISIONING_PASSWORD)

        start = time.time()
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(self.url, json=payload, auth=auth)
        except httpx.HTTPError as e:
            log(event="provisioning_exception", appName=product_name, errorType=type(e).__name__, error=str(e)[:300])
            raise UpstreamFailure(f"{type(e).__name__}: {str(e)[:200]}") from e

        elapsed_ms = int((time.time() - start) * 1000)
        if not (200 <= resp.status_code < 300):
            log(event="provisioning_failed", appName=product_name, statusCode=resp.status_code, elapsedMs=elapsed_ms)
            raise UpstreamFailure(f"status {resp.status_code}")

        try:
            reply = ((resp.json() or {}).get("data") or {}).get("reply") or ""
        except ValueError as e:
            raise UpstreamFailure("response is not JSON") from e

        log(event="provisioning_success", appName=product_name, elapsedMs=elapsed_ms, replyChars=len(reply))
        return reply
