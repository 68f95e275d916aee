from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from salesbot.api.auth import require_api_key
from salesbot.api.deps import get_engine
from salesbot.api.schemas import EventResponse, InboundMessage

router = APIRouter()


@router.post("/events", response_model=EventResponse, dependencies=[Depends(require_api_key)])
async def post_event(msg: InboundMessage, engine=Depends(get_engine)):
    """
    One message event from the transport bridge. Processing is synchronous
    (OCR, upstream calls) so it runs on the threadpool.
    """
    out = await run_in_threadpool(engine.handle_event, msg)
    return EventResponse(**out)


@router.get("/health")
def health():
    return {"status": "ok"}
