"""
SynapseLink — FastAPI Server

================================================================================
Architecture:
  • One pipeline per app: StreamSynchronizer → StateInferencer →
    AlertnessController, driven by the AdaptiveScheduler task
  • External feature extractors POST samples; the scheduler pairs them
  • Cognitive states and alertness changes streamed over WebSocket
  • Optional simulated sensor feed for running without hardware
================================================================================

Endpoints:
  GET  /health           — scheduler state, telemetry, pending samples
  GET  /alertness        — current alertness + marker
  POST /samples/visual   — submit one VisualSample (JSON)
  POST /samples/audio    — submit one AudioSample (JSON)
  POST /override         — external crisis trigger
  POST /demo/start       — start the simulated feed
  POST /demo/stop        — stop the simulated feed
  WS   /ws/states        — live stream

Client → Server messages (WS):
  { type: "override" }                       → trigger override
  { type: "ping" }                           → keepalive

Server → Client messages (WS):
  { type: "cognitive_state", data: {...} }   → each processed pair
  { type: "alertness", data: {...} }         → each alertness change
  { type: "pong" }                           → keepalive ack
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import server_cfg, sync_cfg, scheduler_cfg, demo_cfg
from .core.models import AlertnessState, AudioSample, CognitiveState, VisualSample
from .processing.alertness import AlertnessController
from .processing.inference import StateInferencer
from .processing.synchronizer import StreamSynchronizer
from .services.demo_feed import SimulatedSensorFeed
from .services.scheduler import AdaptiveScheduler

VERSION = "0.3.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("synapselink")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

# ---------------------------------------------------------------------------
# FastAPI Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 SynapseLink starting...")
    synchronizer = StreamSynchronizer(sync_cfg)
    scheduler = AdaptiveScheduler(
        synchronizer=synchronizer,
        inferencer=StateInferencer(),
        controller=AlertnessController(),
        config=scheduler_cfg,
    )
    app.state.scheduler = scheduler
    app.state.demo = SimulatedSensorFeed(synchronizer, demo_cfg)
    await scheduler.start()
    yield
    logger.info("🛑 Shutting down...")
    await app.state.demo.stop()
    await scheduler.stop()
    logger.info("🛑 SynapseLink stopped")


# ---------------------------------------------------------------------------
# FastAPI App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SynapseLink — Multi-Modal Cognitive State Pipeline",
    version=VERSION,
    description=(
        "Pairs visual and audio feature samples in time, infers a cognitive "
        "state with alertness-adjusted rules and streams the results."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(server_cfg.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _scheduler(request: Request) -> AdaptiveScheduler:
    return request.app.state.scheduler


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message})


# ---------------------------------------------------------------------------
# REST Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
async def health(request: Request):
    return {
        "status": "ok",
        "version": VERSION,
        "demo_active": request.app.state.demo.is_active,
        **_scheduler(request).status(),
    }


@app.get("/alertness")
async def alertness(request: Request):
    return _scheduler(request).controller.current().to_dict()


@app.post("/samples/visual")
async def submit_visual(request: Request, payload: Dict[str, Any]):
    try:
        sample = VisualSample.from_dict(payload)
    except (KeyError, TypeError, ValueError) as e:
        return _bad_request(f"Invalid visual sample: {str(e)[:200]}")
    _scheduler(request).synchronizer.submit_visual(sample)
    return {"accepted": True, "timestamp_ms": sample.timestamp_ms}


@app.post("/samples/audio")
async def submit_audio(request: Request, payload: Dict[str, Any]):
    try:
        sample = AudioSample.from_dict(payload)
    except (KeyError, TypeError, ValueError) as e:
        return _bad_request(f"Invalid audio sample: {str(e)[:200]}")
    _scheduler(request).synchronizer.submit_audio(sample)
    return {"accepted": True, "timestamp_ms": sample.timestamp_ms}


@app.post("/override")
async def override(request: Request):
    state = _scheduler(request).controller.trigger_override()
    return state.to_dict()


@app.post("/demo/start")
async def demo_start(request: Request):
    return await request.app.state.demo.start()


@app.post("/demo/stop")
async def demo_stop(request: Request):
    return await request.app.state.demo.stop()


# ---------------------------------------------------------------------------
# WebSocket: Live State Stream
# ---------------------------------------------------------------------------

@app.websocket("/ws/states")
async def websocket_states(ws: WebSocket):
    """
    Streams every delivered cognitive state and every alertness change.
    Controller listeners may fire off the event loop thread, so all
    messages go through a queue owned by this connection.
    """
    await ws.accept()
    scheduler: AdaptiveScheduler = ws.app.state.scheduler
    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue[Dict[str, Any]] = asyncio.Queue(maxsize=256)

    def enqueue(message: Dict[str, Any]) -> None:
        if outbox.full():
            outbox.get_nowait()  # Slow client: drop oldest
        outbox.put_nowait(message)

    def on_state(state: CognitiveState) -> None:
        enqueue({"type": "cognitive_state", "data": state.to_dict()})

    def on_alertness(state: AlertnessState) -> None:
        loop.call_soon_threadsafe(enqueue, {"type": "alertness", "data": state.to_dict()})

    async def sender() -> None:
        while True:
            message = await outbox.get()
            await ws.send_text(json.dumps(message))

    scheduler.add_observer(on_state)
    unsubscribe = scheduler.controller.subscribe(on_alertness)
    send_task = asyncio.create_task(sender(), name="ws-sender")

    try:
        while True:
            raw = await ws.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                continue

            msg_type = message.get("type", "")
            if msg_type == "override":
                scheduler.controller.trigger_override()
            elif msg_type == "ping":
                enqueue({"type": "pong"})

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
    finally:
        scheduler.remove_observer(on_state)
        unsubscribe()
        send_task.cancel()
        try:
            await send_task
        except (asyncio.CancelledError, Exception):
            pass


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    import uvicorn
    uvicorn.run(
        "synapselink.server:app",
        host=server_cfg.host,
        port=server_cfg.port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
