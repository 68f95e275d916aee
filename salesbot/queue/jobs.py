import httpx

from salesbot.observability.logging import log
from salesbot.settings import settings


def deliver_interaction(event: dict) -> None:
    with httpx.Client(timeout=settings.AUDIT_TIMEOUT_SEC) as client:
        resp = client.post(settings.AUDIT_SINK_URL, json=event)
    if not (200 <= resp.status_code < 300):
        raise RuntimeError(f"Audit sink failed: {resp.status_code}")


def deliver_interaction_job(event: dict):
    """
    Background job posting one interaction event to the audit sink.
    Failures re-raise so RQ records them on the failed registry.
    """
    if not settings.AUDIT_SINK_URL:
        return

    try:
        deliver_interaction(event)
        log(event="audit_delivered", eventType=event.get("eventType"), deviceId=event.get("deviceId"))
    except Exception as e:
        log(event="audit_job_exception", eventType=event.get("eventType"), error=str(e)[:300])
        raise
