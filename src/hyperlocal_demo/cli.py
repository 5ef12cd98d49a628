"""CLI entry point for the hyperlocal demo client."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from hyperlocal_demo.core.controller import CaptureProgress, WorkflowController
from hyperlocal_demo.errors import WorkflowError, describe_error
from hyperlocal_demo.metrics.logging import LogWriter
from hyperlocal_demo.modules import payload_parser
from hyperlocal_demo.modules.config_store import (
    PAYLOAD_TEMPLATE,
    ConfigStore,
    JsonFileStorage,
)
from hyperlocal_demo.modules.frame_materializer import FrameMaterializer
from hyperlocal_demo.modules.stubs import (
    MockPositionEstimator,
    StaticCameraStream,
    StubFrameCapture,
    StubGeolocationProvider,
)
from hyperlocal_demo.schemas import Config, Environment, InputMode, Phase, WorkflowState
from hyperlocal_demo.utils.config import DEFAULT_STORAGE_PATH, HTTP_TIMEOUT_SECONDS
from hyperlocal_demo.utils.logging import setup_logging

app = typer.Typer(
    name="hyperlocal-demo",
    help="Camera- and payload-driven position estimation demo",
    add_completion=False,
)
config_app = typer.Typer(help="Show and edit persisted settings", add_completion=False)
payload_app = typer.Typer(help="Show, edit and validate the test payload", add_completion=False)
app.add_typer(config_app, name="config")
app.add_typer(payload_app, name="payload")


def storage_option():
    return typer.Option(
        DEFAULT_STORAGE_PATH,
        "--storage",
        envvar="HYPERLOCAL_DEMO_STORAGE",
        help="JSON file holding persisted settings and payload text",
    )


def open_store(storage: Path) -> ConfigStore:
    """Create a ConfigStore over a JSON file."""
    return ConfigStore(JsonFileStorage(storage))


def build_controller(
    store: ConfigStore,
    frame_interval: float = 0.0,
    http_timeout: float = HTTP_TIMEOUT_SECONDS,
) -> WorkflowController:
    """Wire a controller to the stub collaborators."""
    return WorkflowController(
        config_store=store,
        capture=StubFrameCapture(frame_interval=frame_interval),
        estimator=MockPositionEstimator(),
        camera=StaticCameraStream(),
        materializer=FrameMaterializer(timeout=http_timeout),
        geolocation=StubGeolocationProvider(),
    )


def format_status(state: WorkflowState, progress: CaptureProgress) -> str:
    """Format a single-line status for console output.

    Args:
        state: Workflow state after a change.
        progress: Capture progress at that moment.

    Returns:
        Formatted status string.
    """
    prefix = f"[{state.attempt:03d}] {state.mode.value:7s}"
    if state.phase == Phase.CAPTURING:
        return f"{prefix} Capturing... {progress.captured_count} frames"
    if state.phase == Phase.ESTIMATING:
        return f"{prefix} Estimating position..."
    if state.phase == Phase.DONE:
        return f"{prefix} Done"
    if state.phase == Phase.ERROR:
        return f"{prefix} Error"
    return f"{prefix} Idle"


async def run_attempt(controller: WorkflowController, timeout: float) -> WorkflowState:
    """Start one attempt and wait until it settles in done or error.

    Raises:
        asyncio.TimeoutError: The attempt did not settle in time. The
            controller is reset before raising.
    """
    settled = asyncio.Event()

    def on_change(event, before, after) -> None:
        if after.phase in (Phase.DONE, Phase.ERROR):
            settled.set()

    async def attempt() -> None:
        # Payload mode settles inside start(), camera mode from the capture task
        await controller.start()
        await settled.wait()

    unsubscribe = controller.subscribe(on_change)
    try:
        await asyncio.wait_for(attempt(), timeout)
    except asyncio.TimeoutError:
        controller.reset()
        raise
    finally:
        unsubscribe()
    return controller.state


@app.command()
def run(
    mode: InputMode = typer.Option(
        InputMode.CAMERA,
        "--mode",
        "-m",
        help="Input mode: camera (synthetic capture) or payload",
    ),
    payload_file: Optional[Path] = typer.Option(
        None,
        "--payload-file",
        "-p",
        exists=True,
        dir_okay=False,
        help="Replace the stored payload text with this file before running",
    ),
    storage: Path = storage_option(),
    output_dir: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write run.jsonl and events.jsonl under <output>/<run id>",
    ),
    timeout: float = typer.Option(
        60.0,
        "--timeout",
        "-t",
        help="Seconds to wait for the attempt to settle",
    ),
    frame_interval: float = typer.Option(
        0.05,
        "--frame-interval",
        help="Seconds between synthetic camera frames",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress per-transition output",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """Run one position-estimation attempt.

    Examples:

        # Mock camera capture with the stored settings
        hyperlocal-demo run --mode camera

        # Estimate from a payload file
        hyperlocal-demo run --mode payload --payload-file payload.json
    """
    run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = output_dir / run_id if output_dir else None
    handler = setup_logging(verbose, run_dir / "events.jsonl" if run_dir else None)

    controller = build_controller(open_store(storage), frame_interval=frame_interval)
    if payload_file is not None:
        controller.set_payload_text(payload_file.read_text(encoding="utf-8"))
    controller.select_mode(mode)

    ready, hint = controller.readiness()
    if not ready:
        typer.echo(f"Not ready: {hint}", err=True)
        if handler is not None:
            logging.getLogger("hyperlocal_demo").removeHandler(handler)
            handler.close()
        raise typer.Exit(1)

    if not quiet:
        controller.subscribe(
            lambda event, before, after: typer.echo(
                format_status(after, controller.capture_progress)
            )
        )
    writer = LogWriter(run_dir / "run.jsonl", run_id=run_id) if run_dir else None
    if writer is not None:
        controller.subscribe(writer)

    try:
        if not quiet:
            typer.echo(f"Run ID: {run_id}")
            typer.echo(f"Mode: {mode.value} | {controller.start_label}")
            typer.echo("-" * 60)
        state = asyncio.run(run_attempt(controller, timeout))
    except asyncio.TimeoutError:
        typer.echo(f"Timed out after {timeout:.0f}s, workflow reset", err=True)
        raise typer.Exit(1)
    except WorkflowError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        if writer is not None:
            writer.close()
        if handler is not None:
            logging.getLogger("hyperlocal_demo").removeHandler(handler)
            handler.close()

    if not quiet:
        typer.echo("-" * 60)
    if state.result is not None:
        typer.echo(json.dumps(state.result.model_dump(mode="json"), indent=2))
    if state.error is not None:
        typer.echo(describe_error(state.error), err=True)
    if run_dir and not quiet:
        typer.echo(f"Logs written to: {run_dir}")

    if state.phase != Phase.DONE:
        raise typer.Exit(1)


# =============================================================================
# Config commands
# =============================================================================

def _print_config(config: Config) -> None:
    typer.echo(f"  {'mockEnabled':12s} {str(config.mock_enabled).lower()}")
    typer.echo(f"  {'locationId':12s} {config.location_id or '(blank)'}")
    typer.echo(f"  {'environment':12s} {config.environment.label} ({int(config.environment)})")
    typer.echo(f"  {'latitude':12s} {config.latitude or '(blank)'}")
    typer.echo(f"  {'longitude':12s} {config.longitude or '(blank)'}")
    typer.echo(f"  {'gpsAuto':12s} {str(config.gps_auto).lower()}")


@config_app.command("show")
def config_show(storage: Path = storage_option()) -> None:
    """Show the persisted settings (defaults applied)."""
    _print_config(open_store(storage).load())


@config_app.command("set")
def config_set(
    mock: Optional[bool] = typer.Option(None, "--mock/--no-mock", help="Use the mock estimation path"),
    location_id: Optional[str] = typer.Option(None, "--location-id", help="Location identifier"),
    environment: Optional[str] = typer.Option(
        None,
        "--environment",
        "-e",
        help="Environment label or number (Unspecified, DevPreview, DevPublic, ProdPreview, ProdPublic)",
    ),
    lat: Optional[str] = typer.Option(None, "--lat", help="Latitude hint"),
    lng: Optional[str] = typer.Option(None, "--lng", help="Longitude hint"),
    gps_auto: Optional[bool] = typer.Option(
        None,
        "--gps-auto/--no-gps-auto",
        help="Fill coordinates from a geolocation lookup",
    ),
    storage: Path = storage_option(),
) -> None:
    """Change persisted settings. Each change is saved immediately."""
    changes = {}
    if mock is not None:
        changes["mock_enabled"] = mock
    if location_id is not None:
        changes["location_id"] = location_id
    if environment is not None:
        try:
            changes["environment"] = Environment.parse(environment)
        except ValueError as e:
            raise typer.BadParameter(str(e), param_hint="--environment")
    if lat is not None:
        changes["latitude"] = lat
    if lng is not None:
        changes["longitude"] = lng

    controller = build_controller(open_store(storage))
    try:
        controller.update_config(**changes)
    except ValidationError as e:
        typer.echo(f"Invalid setting: {e}", err=True)
        raise typer.Exit(1)

    if gps_auto is not None:
        was_enabled = controller.config.gps_auto
        before = (controller.config.latitude, controller.config.longitude)
        asyncio.run(controller.set_gps_auto(gps_auto))
        after = (controller.config.latitude, controller.config.longitude)
        looked_up = gps_auto and not was_enabled and not controller.config.mock_enabled
        if looked_up and before == after:
            typer.echo("GPS unavailable, keeping manual coordinates", err=True)

    _print_config(controller.config)
    ready, hint = controller.readiness()
    if not ready:
        typer.echo(f"Camera mode not ready: {hint}", err=True)


@config_app.command("reset")
def config_reset(storage: Path = storage_option()) -> None:
    """Restore default settings."""
    store = open_store(storage)
    store.save(Config())
    _print_config(store.load())


# =============================================================================
# Payload commands
# =============================================================================

@payload_app.command("show")
def payload_show(storage: Path = storage_option()) -> None:
    """Print the stored payload text (the template if none is stored)."""
    typer.echo(open_store(storage).load_payload_text())


@payload_app.command("template")
def payload_template() -> None:
    """Print the payload template."""
    typer.echo(PAYLOAD_TEMPLATE)


@payload_app.command("set")
def payload_set(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Payload JSON file"),
    storage: Path = storage_option(),
) -> None:
    """Store a payload file verbatim (it may be invalid)."""
    text = file.read_text(encoding="utf-8")
    open_store(storage).save_payload_text(text)
    reason = payload_parser.explain(text)
    if reason is None:
        typer.echo("Payload stored")
    else:
        typer.echo(f"Payload stored, but it will be rejected: {reason}", err=True)


@payload_app.command("validate")
def payload_validate(
    file: Optional[Path] = typer.Option(
        None,
        "--file",
        "-f",
        exists=True,
        dir_okay=False,
        help="Validate this file instead of the stored payload",
    ),
    storage: Path = storage_option(),
) -> None:
    """Check whether a payload would be accepted."""
    text = file.read_text(encoding="utf-8") if file else open_store(storage).load_payload_text()
    reason = payload_parser.explain(text)
    if reason is not None:
        typer.echo(f"Rejected: {reason}", err=True)
        raise typer.Exit(1)

    payload = payload_parser.parse(text)
    environment = payload.environment.label if payload.environment is not None else "(default)"
    mock = "(default)" if payload.mock is None else str(payload.mock).lower()
    typer.echo(
        f"Accepted: locationId={payload.location_id} "
        f"lat={payload.latitude} lng={payload.longitude} "
        f"images={len(payload.images)} mock={mock} environment={environment}"
    )


@app.command()
def version() -> None:
    """Show version information."""
    from hyperlocal_demo import __version__
    typer.echo(f"hyperlocal-demo v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
