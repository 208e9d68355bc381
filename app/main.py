from __future__ import annotations

import threading

import uvicorn
from fastapi import FastAPI

from app.api import router
from services.orchestrator import Orchestrator


def create_app(orchestrator: Orchestrator) -> FastAPI:
    app = FastAPI(
        title="Iceman Fan Controller",
        description="Read-only view of the cabinet fan controller.",
        version="0.1.0",
    )
    app.state.orchestrator = orchestrator
    app.include_router(router)
    return app


def serve_in_background(app: FastAPI, host: str, port: int) -> uvicorn.Server:
    """Run the status API on a daemon thread; set ``should_exit`` to stop it."""
    server = uvicorn.Server(
        uvicorn.Config(app, host=host, port=port, log_config=None, access_log=False)
    )
    thread = threading.Thread(target=server.run, name="status-api", daemon=True)
    thread.start()
    return server
