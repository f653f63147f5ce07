from __future__ import annotations

from threading import Thread

import uvicorn
from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse

from . import db
from .api_models import EventOut, HealthResponse, StatusResponse
from .controller import LifecycleController
from .runtime import Phase


def create_app(controller: LifecycleController) -> FastAPI:
    app = FastAPI(title="Replica Search Node")

    @app.get("/health", response_model=HealthResponse)
    def health():
        phase = controller.state.phase
        if phase is Phase.MONITORING:
            return HealthResponse(status="healthy", phase=phase.value)
        body = HealthResponse(status="unhealthy", phase=phase.value)
        return JSONResponse(status_code=503, content=body.model_dump())

    @app.get("/status", response_model=StatusResponse)
    def status():
        return StatusResponse(instance_id=controller.settings.instance_id, **controller.state.as_dict())

    @app.get("/events", response_model=list[EventOut])
    def events(limit: int = Query(50, ge=1, le=1000)):
        return [EventOut(**e) for e in db.latest_events(limit)]

    return app


def serve_in_thread(app: FastAPI, host: str, port: int) -> uvicorn.Server:
    """Run the status API on a daemon thread; returns the server so it can be stopped."""
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))
    Thread(target=server.run, daemon=True).start()
    return server
