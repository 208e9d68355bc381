from __future__ import annotations

import logging
import signal
from typing import Optional

import typer

from app.main import create_app, serve_in_background
from logging_config import configure_logging
from models.errors import ActuatorError
from services.orchestrator import build_orchestrator
from settings import get_settings

logger = logging.getLogger(__name__)

EXIT_ACTUATOR_FAILURE = 1
EXIT_STARTUP_FAILURE = 2

app = typer.Typer(
    help="Cabinet fan controller for the ice maker.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def main() -> None:
    """Entry point for the CLI."""


@app.command("run")
def run_command(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ...).",
    ),
    status_port: Optional[int] = typer.Option(
        None,
        "--status-port",
        help="Serve the read-only status API on this port (defaults to STATUS_API_PORT).",
    ),
    shutdown_timeout: float = typer.Option(
        10.0,
        "--shutdown-timeout",
        help="Seconds to wait for running loops to finish their iteration on stop.",
    ),
) -> None:
    """Run the control loop, tachometer sampler and metrics reporter until signalled."""
    try:
        settings = get_settings()
    except RuntimeError as exc:
        typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_STARTUP_FAILURE)

    configure_logging(log_level.upper() if log_level else settings.log_level)
    logger.info("Starting fan controller", extra={"component": "cli"})

    try:
        orchestrator = build_orchestrator(settings)
    except ActuatorError as exc:
        logger.critical("Could not drive the fan at startup: %s", exc, extra={"component": "cli"})
        typer.secho(f"Fan actuator failure: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_ACTUATOR_FAILURE)
    except (RuntimeError, ValueError) as exc:
        logger.error("Could not initialise fan controller: %s", exc, extra={"component": "cli"})
        raise typer.Exit(code=EXIT_STARTUP_FAILURE)

    def _request_stop(signum: int, _frame: object) -> None:
        logger.info("Received %s, shutting down", signal.Signals(signum).name, extra={"component": "cli"})
        orchestrator.request_stop()

    previous_handlers = {
        signum: signal.signal(signum, _request_stop) for signum in (signal.SIGINT, signal.SIGTERM)
    }

    server = None
    port = status_port if status_port is not None else settings.status_port
    try:
        if port:
            server = serve_in_background(create_app(orchestrator), settings.status_host, port)
            logger.info(
                "Status API listening on %s:%d", settings.status_host, port, extra={"component": "cli"}
            )
        orchestrator.start()
        orchestrator.wait()
    finally:
        orchestrator.stop(timeout=shutdown_timeout)
        if server is not None:
            server.should_exit = True
        for signum, handler in previous_handlers.items():
            if handler is not None:
                signal.signal(signum, handler)

    if orchestrator.fatal_error is not None:
        typer.secho(f"Fan actuator failure: {orchestrator.fatal_error}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_ACTUATOR_FAILURE)
