import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from salesbot.api.deps import get_engine
from salesbot.api.routes import router
from salesbot.api.admin_routes import router as admin_router
from salesbot.observability.logging import log
from salesbot.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    stop = threading.Event()
    if settings.FOLLOW_UP_WORKER_ENABLED:
        engine = get_engine()
        engine.follow_ups.load()
        worker = threading.Thread(target=engine.follow_ups.run_forever, kwargs={"stop": stop}, daemon=True)
        worker.start()
        log(event="follow_up_worker_start", tickSec=settings.FOLLOW_UP_TICK_SEC)
    yield
    stop.set()


app = FastAPI(title="Sales Support Chatbot", lifespan=lifespan)

origins = [x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(admin_router)


@app.get("/")
def root():
    return {"status": "ok", "message": "Chatbot engine is running. POST message events to /events."}


@app.exception_handler(Exception)
async def universal_exception_handler(request: Request, exc: Exception):
    # The bridge only needs to know the event was not processed; details stay in the logs.
    log(event="request_failed", path=request.url.path, errorType=type(exc).__name__, error=str(exc)[:300])
    return JSONResponse(status_code=500, content={"status": "error", "handled": False, "replies": []})
