"""
Interaction audit sink.

Events are logged and, when AUDIT_SINK_URL is configured, delivered to the
external interaction store (through RQ by default). Nothing in here may raise
into message processing.
"""
from typing import Optional

from rq import Retry

from salesbot.observability.logging import log
from salesbot.settings import settings
from salesbot.utils.time import now_iso

ORIGIN_CONTACT = "CLIENTE"
ORIGIN_AGENT = "AGENTE"
ORIGIN_BOT = "BOT"

CONTACT_TYPE_CONTACT = "CONTATO"


def build_event(device_id, phone, name, contact_type, origin, event_type, content="",
                error_type: Optional[str] = None, error_details: Optional[str] = None, **extra) -> dict:
    event = {
        "deviceId": device_id,
        "phone": phone or "",
        "name": (name or "").strip(),
        "contactType": contact_type,
        "origin": origin,
        "eventType": event_type,
        "content": content or "",
        "createdAt": now_iso(),
    }
    if error_type:
        event["errorType"] = error_type
        event["errorDetails"] = (error_details or "")[:500]
    event.update({k: v for k, v in extra.items() if v is not None})
    return event


def record_interaction(device_id, phone, name, contact_type, origin, event_type, content="",
                       error_type=None, error_details=None, **extra) -> None:
    try:
        event = build_event(device_id, phone, name, contact_type, origin, event_type, content,
                            error_type=error_type, error_details=error_details, **extra)
        log(event="interaction", **event)
        if not settings.AUDIT_SINK_URL:
            return
        if settings.AUDIT_ENQUEUE:
            from salesbot.queue.jobs import deliver_interaction_job
            from salesbot.queue.rq_conn import get_queue
            get_queue().enqueue(deliver_interaction_job, event, retry=Retry(max=3, interval=[5, 30, 120]))
        else:
            from salesbot.queue.jobs import deliver_interaction
            deliver_interaction(event)
    except Exception as e:
        log(event="audit_emit_failed", eventType=event_type, errorType=type(e).__name__, error=str(e)[:300])
