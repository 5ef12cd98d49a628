"""Workflow controller - drives one position-estimation attempt at a time.

The controller owns the WorkflowState and is the only place side effects
happen: starting capture, materializing payload frames, calling the
estimator, persisting settings and looking up the device location.
Every phase change goes through ``transitions.reduce``.

Camera mode::

    start() -> capturing -> (capture threshold callback) -> estimating
            -> done | error

Payload mode::

    start() -> estimating (materialize frames, then estimate) -> done | error

Each attempt carries a tag. Completions that arrive after a reset or a
newer start carry an old tag and are dropped by the reducer.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from hyperlocal_demo.core.interfaces import CaptureOptions
from hyperlocal_demo.core.transitions import (
    AttemptFailed,
    AttemptStarted,
    EstimationResolved,
    FramesCaptured,
    ModeSelected,
    Reset,
    WorkflowEvent,
    reduce,
)
from hyperlocal_demo.errors import (
    CaptureUnavailableError,
    NotReadyError,
    WorkflowBusyError,
)
from hyperlocal_demo.modules import payload_parser
from hyperlocal_demo.modules.frame_materializer import FrameMaterializer
from hyperlocal_demo.schemas import (
    CapturedFrame,
    Config,
    Environment,
    EstimationOptions,
    EstimationRequest,
    GeoHint,
    InputMode,
    ParsedPayload,
    Phase,
    WorkflowState,
)
from hyperlocal_demo.utils.config import (
    FALLBACK_COORDINATE,
    FRAME_THRESHOLD,
    MOCK_LATITUDE,
    MOCK_LOCATION_ID,
    MOCK_LONGITUDE,
    SHOW_PREVIEW,
)

if TYPE_CHECKING:
    from hyperlocal_demo.core.interfaces import (
        CameraStream,
        FrameCaptureService,
        GeolocationProvider,
        PositionEstimator,
    )
    from hyperlocal_demo.modules.config_store import ConfigStore

logger = logging.getLogger(__name__)

StateListener = Callable[[WorkflowEvent, WorkflowState, WorkflowState], None]


# =============================================================================
# Estimation Parameters
# =============================================================================

def is_numeric_text(text: str) -> bool:
    """Whether user-entered text is a non-blank finite number."""
    try:
        return math.isfinite(float(text.strip()))
    except ValueError:
        return False


def _coordinate(text: str) -> float:
    return float(text.strip()) if is_numeric_text(text) else FALLBACK_COORDINATE


def build_request(
    mode: InputMode,
    config: Config,
    payload: ParsedPayload | None = None,
) -> EstimationRequest:
    """Choose the estimation parameters for an attempt.

    - Camera mode with mock enabled: placeholder location id, fixed hint,
      ``{mock: true}``; user-entered fields are ignored.
    - Camera mode without mock: the entered location id, coordinates and
      environment. A malformed coordinate becomes FALLBACK_COORDINATE.
    - Payload mode: the payload's own fields. ``mock`` defaults to false
      and ``environment`` to ProdPublic.

    Raises:
        ValueError: Payload mode without a parsed payload.
    """
    if mode == InputMode.PAYLOAD:
        if payload is None:
            raise ValueError("Payload mode requires a parsed payload")
        if payload.mock:
            options = EstimationOptions.mock_mode()
        else:
            environment = payload.environment
            if environment is None:
                environment = Environment.PROD_PUBLIC
            options = EstimationOptions.for_environment(environment)
        return EstimationRequest(
            location_id=payload.location_id,
            hint=GeoHint(latitude=payload.latitude, longitude=payload.longitude),
            options=options,
        )

    if config.mock_enabled:
        return EstimationRequest(
            location_id=MOCK_LOCATION_ID,
            hint=GeoHint(latitude=MOCK_LATITUDE, longitude=MOCK_LONGITUDE),
            options=EstimationOptions.mock_mode(),
        )

    return EstimationRequest(
        location_id=config.location_id.strip(),
        hint=GeoHint(
            latitude=_coordinate(config.latitude),
            longitude=_coordinate(config.longitude),
        ),
        options=EstimationOptions.for_environment(config.environment),
    )


@dataclass(frozen=True)
class CaptureProgress:
    """Live view of the capture service for status displays."""

    captured_count: int
    preview_urls: list[str]


# =============================================================================
# Controller
# =============================================================================

class WorkflowController:
    """Orchestrates mode selection, readiness, capture and estimation.

    All collaborators are injected, so the controller never touches a
    real camera, network or storage directly.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        capture: FrameCaptureService,
        estimator: PositionEstimator,
        camera: CameraStream,
        materializer: FrameMaterializer | None = None,
        geolocation: GeolocationProvider | None = None,
        frame_threshold: int = FRAME_THRESHOLD,
        show_preview: bool = SHOW_PREVIEW,
    ) -> None:
        """Initialize the controller.

        Args:
            config_store: Persistence for Config and payload text.
            capture: Frame-capture service used in camera mode.
            estimator: Position-estimation service.
            camera: Provider of the live video source.
            materializer: Frame materializer for payload mode.
            geolocation: Optional geolocation lookup for GPS-auto.
            frame_threshold: Frames to capture before estimating.
            show_preview: Ask the capture service to keep previews.
        """
        self._store = config_store
        self._capture = capture
        self._estimator = estimator
        self._camera = camera
        self._materializer = materializer or FrameMaterializer()
        self._geolocation = geolocation
        self._frame_threshold = frame_threshold
        self._show_preview = show_preview

        self._config = config_store.load()
        self._payload_text = config_store.load_payload_text()
        self._state = WorkflowState()
        self._listeners: list[StateListener] = []

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def mode(self) -> InputMode:
        return self._state.mode

    @property
    def config(self) -> Config:
        return self._config

    @property
    def payload_text(self) -> str:
        return self._payload_text

    @property
    def parsed_payload(self) -> ParsedPayload | None:
        """The payload text, re-parsed on every access."""
        return payload_parser.parse(self._payload_text)

    @property
    def capture_progress(self) -> CaptureProgress:
        return CaptureProgress(
            captured_count=self._capture.captured_count,
            preview_urls=list(self._capture.preview_urls),
        )

    @property
    def start_label(self) -> str:
        """Label for the start action ("Try Again" after an attempt)."""
        return "Find My Position" if self._state.phase == Phase.IDLE else "Try Again"

    def readiness(self) -> tuple[bool, str | None]:
        """Check whether a start is currently allowed.

        Returns:
            Tuple of (ready, hint). The hint explains what is missing and
            is None when ready.
        """
        if self.mode == InputMode.PAYLOAD:
            reason = payload_parser.explain(self._payload_text)
            return reason is None, reason

        config = self._config
        if config.mock_enabled:
            return True, None
        if not config.location_id.strip():
            return False, "Enter a location id or enable mock mode"
        if not (is_numeric_text(config.latitude) and is_numeric_text(config.longitude)):
            return False, "Latitude and longitude must both be numbers"
        return True, None

    @property
    def is_ready(self) -> bool:
        return self.readiness()[0]

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state-change listener.

        Args:
            listener: Called with (event, before, after) on every change.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _dispatch(self, event: WorkflowEvent) -> bool:
        """Apply an event and notify listeners. Returns True if state changed."""
        before = self._state
        after = reduce(before, event)
        name = type(event).__name__
        if after is before:
            logger.debug(
                f"[WORKFLOW] Ignored {name} in phase {before.phase.value} "
                f"(attempt {before.attempt})"
            )
            return False

        self._state = after
        if not after.is_consistent:
            logger.error(f"[WORKFLOW] Inconsistent state after {name}: {after}")
        logger.info(
            f"[WORKFLOW] {before.phase.value} -> {after.phase.value} on {name} "
            f"(attempt {after.attempt}, mode {after.mode.value})"
        )

        for listener in list(self._listeners):
            try:
                listener(event, before, after)
            except Exception as e:
                logger.warning(f"[WORKFLOW] State listener error: {e}")
        return True

    # -------------------------------------------------------------------------
    # Settings (write-through)
    # -------------------------------------------------------------------------

    def select_mode(self, mode: InputMode | str) -> bool:
        """Switch input mode. Ignored while an attempt is in flight.

        Returns:
            True if the mode is now ``mode``.
        """
        mode = InputMode(mode)
        if self._state.is_busy:
            logger.warning(f"[WORKFLOW] Cannot switch to {mode.value} mode while {self._state.phase.value}")
            return False
        self._dispatch(ModeSelected(mode))
        return self._state.mode == mode

    def update_config(self, **changes: Any) -> Config:
        """Apply field changes to the Config and persist it.

        Args:
            **changes: Config field names (snake_case) and new values.

        Returns:
            The updated Config.

        Raises:
            ValueError: Unknown field name.
            pydantic.ValidationError: A value of the wrong type.
        """
        unknown = set(changes) - set(Config.model_fields)
        if unknown:
            raise ValueError(f"Unknown config fields: {sorted(unknown)}")
        updated = Config.model_validate({**self._config.model_dump(), **changes})
        if updated != self._config:
            self._config = updated
            self._store.save(updated)
        return self._config

    def set_payload_text(self, text: str) -> None:
        """Replace the raw payload text and persist it verbatim."""
        if text == self._payload_text:
            return
        self._payload_text = text
        self._store.save_payload_text(text)

    async def set_gps_auto(self, enabled: bool) -> None:
        """Toggle GPS auto-detection.

        Switching it from off to on in camera mode with mock disabled
        triggers one geolocation lookup.
        """
        was_enabled = self._config.gps_auto
        self.update_config(gps_auto=enabled)
        if enabled and not was_enabled and self.mode == InputMode.CAMERA \
                and not self._config.mock_enabled:
            await self.detect_location()

    async def detect_location(self) -> bool:
        """Fill latitude/longitude from a geolocation lookup.

        Denial or failure leaves the fields untouched so manual entry
        remains the fallback.

        Returns:
            True if the coordinates were updated.
        """
        if self._geolocation is None:
            logger.info("[GEO] No geolocation provider, keeping manual coordinates")
            return False
        try:
            hint = await self._geolocation.locate()
        except Exception as e:
            logger.info(f"[GEO] Lookup failed, keeping manual coordinates: {e}")
            return False
        self.update_config(latitude=str(hint.latitude), longitude=str(hint.longitude))
        logger.info(f"[GEO] Coordinates set to {hint.latitude}, {hint.longitude}")
        return True

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start a new attempt in the current mode.

        Clears any previous result and error. In camera mode this returns
        once capture has started; estimation then runs from the capture
        callback. In payload mode it returns after the attempt settles.

        Raises:
            WorkflowBusyError: An attempt is capturing or estimating.
            NotReadyError: The readiness check fails (``hint`` says why).
        """
        if self._state.is_busy:
            raise WorkflowBusyError(f"Attempt {self._state.attempt} is {self._state.phase.value}")
        ready, hint = self.readiness()
        if not ready:
            raise NotReadyError(hint or "Not ready")

        attempt = self._state.attempt + 1
        if self.mode == InputMode.CAMERA:
            self._start_camera(attempt)
        else:
            await self._run_payload(attempt)

    def reset(self) -> None:
        """Return to idle and discard captured frames and previews."""
        self._dispatch(Reset())
        self._capture.reset()

    def _start_camera(self, attempt: int) -> None:
        request = build_request(InputMode.CAMERA, self._config)
        self._dispatch(AttemptStarted(attempt, Phase.CAPTURING))

        video_source = self._camera.video_source
        if video_source is None:
            logger.warning("[CAPTURE] No live video source, cannot capture")
            self._dispatch(AttemptFailed(attempt, CaptureUnavailableError()))
            return

        fired = False

        async def on_frame_threshold(frames: list[CapturedFrame]) -> None:
            nonlocal fired
            if fired:
                logger.warning(f"[CAPTURE] Duplicate threshold callback for attempt {attempt}")
                return
            fired = True
            if attempt != self._state.attempt:
                logger.info(f"[CAPTURE] Dropping frames from stale attempt {attempt}")
                return
            logger.info(f"[CAPTURE] Threshold reached with {len(frames)} frames")
            self._dispatch(FramesCaptured(attempt))
            await self._estimate(attempt, list(frames), request)

        options = CaptureOptions(
            frame_threshold=self._frame_threshold,
            show_preview=self._show_preview,
            on_frame_threshold=on_frame_threshold,
        )
        try:
            self._capture.start_capture(video_source, options)
        except Exception as e:
            logger.error(f"[CAPTURE] start_capture failed: {e}", exc_info=True)
            self._dispatch(AttemptFailed(attempt, e))
            return
        logger.info(f"[CAPTURE] Capturing {self._frame_threshold} frames (attempt {attempt})")

    async def _run_payload(self, attempt: int) -> None:
        payload = payload_parser.parse(self._payload_text)
        request = build_request(InputMode.PAYLOAD, self._config, payload)
        self._dispatch(AttemptStarted(attempt, Phase.ESTIMATING))

        try:
            frames = await self._materializer.materialize(payload.images)
        except Exception as e:
            logger.error(f"[FRAMES] Materialization failed: {e}", exc_info=True)
            self._dispatch(AttemptFailed(attempt, e))
            return

        if attempt != self._state.attempt:
            logger.info(f"[FRAMES] Dropping frames from stale attempt {attempt}")
            return
        await self._estimate(attempt, frames, request)

    async def _estimate(
        self,
        attempt: int,
        frames: list[CapturedFrame],
        request: EstimationRequest,
    ) -> None:
        logger.info(
            f"[ESTIMATE] Estimating with {len(frames)} frames "
            f"(location={request.location_id}, options={request.options.to_dict()})"
        )
        try:
            result = await self._estimator.estimate_position(
                frames,
                request.location_id,
                request.hint,
                request.options,
            )
        except Exception as e:
            logger.error(f"[ESTIMATE] estimate_position failed: {e}", exc_info=True)
            self._dispatch(AttemptFailed(attempt, e))
            return

        if not self._dispatch(EstimationResolved(attempt, result)):
            logger.info(f"[ESTIMATE] Dropped {result.type} result from stale attempt {attempt}")
