"""Tests for the workflow controller."""

from __future__ import annotations

import asyncio

import httpx
import pytest
from pydantic import ValidationError

from hyperlocal_demo.core.controller import WorkflowController, build_request
from hyperlocal_demo.core.interfaces import (
    CaptureOptions,
    FrameCaptureService,
    PositionEstimator,
)
from hyperlocal_demo.errors import (
    CaptureUnavailableError,
    MaterializationError,
    NotReadyError,
    WorkflowBusyError,
)
from hyperlocal_demo.modules.frame_materializer import FrameMaterializer
from hyperlocal_demo.modules.stubs import (
    MockPositionEstimator,
    StaticCameraStream,
    StubFrameCapture,
    StubGeolocationProvider,
)
from hyperlocal_demo.schemas import (
    Config,
    Environment,
    EstimationOptions,
    EstimationResult,
    GeoHint,
    InputMode,
    Phase,
)
from hyperlocal_demo.utils.config import (
    FALLBACK_COORDINATE,
    FRAME_THRESHOLD,
    MOCK_LATITUDE,
    MOCK_LOCATION_ID,
    MOCK_LONGITUDE,
)

from conftest import FAKE_JPEG, make_payload_text


# =============================================================================
# Fake Collaborators
# =============================================================================

class ManualFrameCapture(FrameCaptureService):
    """Capture service whose threshold callback is fired by the test."""

    def __init__(self, fail: bool = False):
        self.sessions: list[CaptureOptions] = []
        self.video_sources = []
        self.reset_count = 0
        self.frames_seen = 0
        self._fail = fail

    def start_capture(self, video_source, options):
        if self._fail:
            raise RuntimeError("camera busy")
        self.video_sources.append(video_source)
        self.sessions.append(options)

    @property
    def captured_count(self) -> int:
        return self.frames_seen

    @property
    def preview_urls(self) -> list[str]:
        return ["data:image/jpeg;base64,preview"] * self.frames_seen

    def reset(self):
        self.reset_count += 1
        self.frames_seen = 0

    async def complete(self, frames, session: int = -1):
        self.frames_seen = len(frames)
        await self.sessions[session].on_frame_threshold(frames)


class RecordingEstimator(PositionEstimator):
    """Estimator that records calls and returns or raises as configured."""

    def __init__(self, result: EstimationResult | None = None, error: Exception | None = None):
        self.calls: list[dict] = []
        self.result = result or EstimationResult.success(position={"latitude": 1.0, "longitude": 2.0})
        self.error = error
        self.gate: asyncio.Event | None = None

    async def estimate_position(self, frames, location_id, hint, options):
        self.calls.append({
            "frames": frames,
            "location_id": location_id,
            "hint": hint,
            "options": options,
        })
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def capture():
    return ManualFrameCapture()


@pytest.fixture
def estimator():
    return RecordingEstimator()


@pytest.fixture
def make_controller(config_store, capture, estimator):
    """Factory for controllers with fake collaborators."""

    def factory(**overrides) -> WorkflowController:
        kwargs = {
            "config_store": config_store,
            "capture": capture,
            "estimator": estimator,
            "camera": StaticCameraStream(),
        }
        kwargs.update(overrides)
        return WorkflowController(**kwargs)

    return factory


@pytest.fixture
def controller(make_controller):
    return make_controller()


def frames_of(count: int, sample_frame) -> list:
    return [sample_frame] * count


# =============================================================================
# Readiness
# =============================================================================

class TestReadiness:
    """Tests for the readiness check."""

    def test_mock_camera_ready_by_default(self, controller):
        assert controller.readiness() == (True, None)
        assert controller.start_label == "Find My Position"

    def test_blank_location_not_ready(self, controller):
        controller.update_config(mock_enabled=False, location_id="   ")

        ready, hint = controller.readiness()

        assert not ready
        assert "location id" in hint

    @pytest.mark.parametrize("lat,lng", [("abc", "1"), ("1", ""), ("", ""), ("nan", "2")])
    def test_non_numeric_coordinates_not_ready(self, controller, lat, lng):
        controller.update_config(mock_enabled=False, location_id="loc-1", latitude=lat, longitude=lng)

        ready, hint = controller.readiness()

        assert not ready
        assert "numbers" in hint

    def test_complete_manual_entry_ready(self, controller):
        controller.update_config(mock_enabled=False, location_id="loc-1", latitude=" 10.5 ", longitude="-3")

        assert controller.is_ready

    def test_payload_mode_uses_validator(self, controller):
        controller.select_mode(InputMode.PAYLOAD)
        controller.set_payload_text("{}")

        ready, hint = controller.readiness()

        assert not ready
        assert "locationId" in hint

    def test_start_when_not_ready_raises(self, controller, capture):
        controller.update_config(mock_enabled=False)

        with pytest.raises(NotReadyError) as exc_info:
            asyncio.run(controller.start())

        assert exc_info.value.hint
        assert controller.state.phase == Phase.IDLE
        assert controller.state.attempt == 0
        assert capture.sessions == []


# =============================================================================
# Camera Mode
# =============================================================================

class TestCameraMode:
    """Tests for camera-mode attempts."""

    def test_mock_attempt_completes(self, controller, capture, estimator, sample_frame):
        async def scenario():
            await controller.start()
            assert controller.state.phase == Phase.CAPTURING
            await capture.complete(frames_of(FRAME_THRESHOLD, sample_frame))

        asyncio.run(scenario())

        assert controller.state.phase == Phase.DONE
        assert controller.state.result == estimator.result
        assert controller.start_label == "Try Again"
        assert capture.video_sources == ["stub-camera"]
        assert capture.sessions[0].frame_threshold == FRAME_THRESHOLD
        assert capture.sessions[0].show_preview is True

        call = estimator.calls[0]
        assert len(call["frames"]) == FRAME_THRESHOLD
        assert call["location_id"] == MOCK_LOCATION_ID
        assert call["hint"] == GeoHint(latitude=MOCK_LATITUDE, longitude=MOCK_LONGITUDE)
        assert call["options"].to_dict() == {"mock": True}

    def test_manual_parameters_used(self, controller, capture, estimator, sample_frame):
        controller.update_config(
            mock_enabled=False,
            location_id="  loc-7 ",
            latitude="48.85",
            longitude="2.35",
            environment=Environment.DEV_PREVIEW,
        )

        async def scenario():
            await controller.start()
            await capture.complete([sample_frame])

        asyncio.run(scenario())

        call = estimator.calls[0]
        assert call["location_id"] == "loc-7"
        assert call["hint"] == GeoHint(latitude=48.85, longitude=2.35)
        assert call["options"].to_dict() == {"environment": 1}

    def test_parameters_snapshot_at_start(self, controller, capture, estimator, sample_frame):
        controller.update_config(mock_enabled=False, location_id="loc-a", latitude="1", longitude="2")

        async def scenario():
            await controller.start()
            controller.update_config(location_id="loc-b")
            await capture.complete([sample_frame])

        asyncio.run(scenario())

        assert estimator.calls[0]["location_id"] == "loc-a"

    def test_start_while_capturing_raises(self, controller):
        async def scenario():
            await controller.start()
            with pytest.raises(WorkflowBusyError):
                await controller.start()

        asyncio.run(scenario())

        assert controller.state.attempt == 1

    def test_mode_switch_while_capturing_ignored(self, controller):
        asyncio.run(controller.start())

        assert controller.select_mode(InputMode.PAYLOAD) is False
        assert controller.mode == InputMode.CAMERA

    def test_no_video_source(self, make_controller, capture, estimator):
        camera = StaticCameraStream()
        camera.detach()
        controller = make_controller(camera=camera)

        asyncio.run(controller.start())

        assert controller.state.phase == Phase.ERROR
        assert isinstance(controller.state.error, CaptureUnavailableError)
        assert controller.state.is_consistent
        assert capture.sessions == []
        assert estimator.calls == []

    def test_start_capture_failure(self, make_controller):
        controller = make_controller(capture=ManualFrameCapture(fail=True))

        asyncio.run(controller.start())

        assert controller.state.phase == Phase.ERROR
        assert str(controller.state.error) == "camera busy"

    def test_estimator_raises(self, make_controller, capture, sample_frame):
        error = ConnectionError("service unreachable")
        controller = make_controller(estimator=RecordingEstimator(error=error))

        async def scenario():
            await controller.start()
            await capture.complete([sample_frame])

        asyncio.run(scenario())

        assert controller.state.phase == Phase.ERROR
        assert controller.state.error is error
        assert controller.state.result is None

    def test_failure_result(self, make_controller, capture, sample_frame):
        failure = EstimationResult.failure(reason="no_match")
        controller = make_controller(estimator=RecordingEstimator(result=failure))

        async def scenario():
            await controller.start()
            await capture.complete([sample_frame])

        asyncio.run(scenario())

        assert controller.state.phase == Phase.ERROR
        assert controller.state.result == failure
        assert controller.state.error is None

    def test_duplicate_threshold_callback_ignored(self, controller, capture, estimator, sample_frame):
        async def scenario():
            await controller.start()
            await capture.complete([sample_frame])
            await capture.complete([sample_frame])

        asyncio.run(scenario())

        assert len(estimator.calls) == 1

    def test_capture_progress(self, controller, capture, sample_frame):
        async def scenario():
            await controller.start()
            await capture.complete(frames_of(3, sample_frame))

        asyncio.run(scenario())

        progress = controller.capture_progress
        assert progress.captured_count == 3
        assert len(progress.preview_urls) == 3


# =============================================================================
# Reset and Stale Completions
# =============================================================================

class TestReset:
    """Tests for reset and attempt tagging."""

    def test_reset_returns_to_idle(self, controller, capture, sample_frame):
        async def scenario():
            await controller.start()
            await capture.complete([sample_frame])

        asyncio.run(scenario())
        controller.reset()

        assert controller.state.phase == Phase.IDLE
        assert controller.state.result is None
        assert controller.start_label == "Find My Position"
        assert capture.reset_count == 1
        assert controller.capture_progress.captured_count == 0

    def test_frames_after_reset_dropped(self, controller, capture, estimator, sample_frame):
        async def scenario():
            await controller.start()
            controller.reset()
            await capture.complete([sample_frame])

        asyncio.run(scenario())

        assert controller.state.phase == Phase.IDLE
        assert estimator.calls == []

    def test_old_session_dropped_after_restart(self, controller, capture, estimator, sample_frame):
        async def scenario():
            await controller.start()
            controller.reset()
            await controller.start()
            await capture.complete([sample_frame], session=0)
            assert controller.state.phase == Phase.CAPTURING
            await capture.complete([sample_frame], session=1)

        asyncio.run(scenario())

        assert controller.state.phase == Phase.DONE
        assert controller.state.attempt == 3
        assert len(estimator.calls) == 1

    def test_late_result_after_reset_dropped(self, controller, estimator, valid_payload_text):
        controller.select_mode(InputMode.PAYLOAD)
        controller.set_payload_text(valid_payload_text)

        async def scenario():
            estimator.gate = asyncio.Event()
            task = asyncio.create_task(controller.start())
            while not estimator.calls:
                await asyncio.sleep(0)
            assert controller.state.phase == Phase.ESTIMATING
            controller.reset()
            estimator.gate.set()
            await task

        asyncio.run(scenario())

        assert controller.state.phase == Phase.IDLE
        assert controller.state.result is None
        assert controller.state.error is None

    def test_start_clears_previous_result(self, controller, capture, sample_frame):
        async def scenario():
            await controller.start()
            await capture.complete([sample_frame])
            assert controller.state.result is not None
            await controller.start()

        asyncio.run(scenario())

        assert controller.state.phase == Phase.CAPTURING
        assert controller.state.result is None
        assert controller.state.error is None


# =============================================================================
# Payload Mode
# =============================================================================

class TestPayloadMode:
    """Tests for payload-mode attempts."""

    def test_payload_attempt_completes(self, controller, estimator):
        controller.select_mode(InputMode.PAYLOAD)
        controller.set_payload_text(make_payload_text(locationId="loc-p", lat=10, lng=20))

        asyncio.run(controller.start())

        assert controller.state.phase == Phase.DONE
        call = estimator.calls[0]
        assert [f.image_data for f in call["frames"]] == [FAKE_JPEG]
        assert call["location_id"] == "loc-p"
        assert call["hint"] == GeoHint(latitude=10.0, longitude=20.0)
        assert call["options"].to_dict() == {"environment": int(Environment.PROD_PUBLIC)}

    def test_payload_mock_flag(self, controller, estimator):
        controller.select_mode(InputMode.PAYLOAD)
        controller.set_payload_text(make_payload_text(mock=True, environment=1))

        asyncio.run(controller.start())

        assert estimator.calls[0]["options"].to_dict() == {"mock": True}

    def test_payload_ignores_camera_settings(self, controller, estimator):
        controller.update_config(mock_enabled=True, location_id="camera-loc")
        controller.select_mode(InputMode.PAYLOAD)
        controller.set_payload_text(make_payload_text(environment=2))

        asyncio.run(controller.start())

        assert estimator.calls[0]["location_id"] == "loc-1"
        assert estimator.calls[0]["options"].to_dict() == {"environment": 2}

    def test_fetch_failure_aborts_attempt(self, make_controller, estimator):
        url = "https://example.com/frames/missing.jpg"

        async def scenario():
            transport = httpx.MockTransport(lambda request: httpx.Response(404))
            async with httpx.AsyncClient(transport=transport) as client:
                controller = make_controller(materializer=FrameMaterializer(client=client))
                controller.select_mode(InputMode.PAYLOAD)
                controller.set_payload_text(make_payload_text(images=[url]))
                await controller.start()
                return controller

        controller = asyncio.run(scenario())

        assert controller.state.phase == Phase.ERROR
        assert isinstance(controller.state.error, MaterializationError)
        assert controller.state.error.status == 404
        assert estimator.calls == []


# =============================================================================
# Settings and Listeners
# =============================================================================

class TestSettings:
    """Tests for write-through settings."""

    def test_update_config_persists(self, controller, config_store):
        controller.update_config(location_id="loc-9", environment=2)

        assert config_store.load().location_id == "loc-9"
        assert config_store.load().environment == Environment.DEV_PUBLIC

    def test_update_config_unknown_field(self, controller):
        with pytest.raises(ValueError):
            controller.update_config(theme="dark")

    def test_update_config_bad_value(self, controller):
        with pytest.raises(ValidationError):
            controller.update_config(environment=42)

        assert controller.config == Config()

    def test_payload_text_persisted_verbatim(self, controller, config_store):
        controller.set_payload_text("{ not yet valid")

        assert config_store.load_payload_text() == "{ not yet valid"
        assert controller.parsed_payload is None

    def test_settings_restored_by_new_controller(self, make_controller, controller):
        controller.update_config(mock_enabled=False, location_id="loc-r")
        controller.set_payload_text("draft")

        restored = make_controller()

        assert restored.config.location_id == "loc-r"
        assert restored.payload_text == "draft"

    def test_select_mode(self, controller):
        assert controller.select_mode("payload") is True
        assert controller.mode == InputMode.PAYLOAD

    def test_listeners(self, controller):
        seen = []

        def broken(event, before, after):
            raise RuntimeError("listener bug")

        unsubscribe = controller.subscribe(lambda e, b, a: seen.append((b.phase, a.phase)))
        controller.subscribe(broken)

        asyncio.run(controller.start())
        unsubscribe()
        controller.reset()

        assert seen == [(Phase.IDLE, Phase.CAPTURING)]
        assert controller.state.phase == Phase.IDLE


class TestGeolocation:
    """Tests for GPS auto-detection."""

    def test_enable_fills_coordinates(self, make_controller, config_store):
        geo = StubGeolocationProvider(GeoHint(latitude=48.85, longitude=2.35))
        controller = make_controller(geolocation=geo)
        controller.update_config(mock_enabled=False)

        asyncio.run(controller.set_gps_auto(True))

        assert geo.lookup_count == 1
        assert controller.config.gps_auto is True
        assert controller.config.latitude == "48.85"
        assert controller.config.longitude == "2.35"
        assert config_store.load().latitude == "48.85"

    def test_denied_keeps_manual_coordinates(self, make_controller):
        geo = StubGeolocationProvider()
        controller = make_controller(geolocation=geo)
        controller.update_config(mock_enabled=False, latitude="1.5", longitude="2.5")

        asyncio.run(controller.set_gps_auto(True))

        assert geo.lookup_count == 1
        assert controller.config.latitude == "1.5"
        assert controller.config.longitude == "2.5"

    def test_no_lookup_in_mock_mode(self, make_controller):
        geo = StubGeolocationProvider(GeoHint(latitude=1, longitude=2))
        controller = make_controller(geolocation=geo)

        asyncio.run(controller.set_gps_auto(True))

        assert geo.lookup_count == 0

    def test_no_second_lookup_when_already_enabled(self, make_controller):
        geo = StubGeolocationProvider(GeoHint(latitude=48.85, longitude=2.35))
        controller = make_controller(geolocation=geo)
        controller.update_config(mock_enabled=False)

        asyncio.run(controller.set_gps_auto(True))
        controller.update_config(latitude="1", longitude="2")
        asyncio.run(controller.set_gps_auto(True))

        assert geo.lookup_count == 1
        assert controller.config.latitude == "1"

    def test_no_lookup_when_disabling(self, make_controller):
        geo = StubGeolocationProvider(GeoHint(latitude=1, longitude=2))
        controller = make_controller(geolocation=geo)
        controller.update_config(mock_enabled=False)

        asyncio.run(controller.set_gps_auto(False))

        assert geo.lookup_count == 0


# =============================================================================
# Request Building
# =============================================================================

class TestBuildRequest:
    """Tests for estimation parameter selection."""

    def test_mock_ignores_user_fields(self):
        config = Config(mock_enabled=True, location_id="user-loc", latitude="5", longitude="6")

        request = build_request(InputMode.CAMERA, config)

        assert request.location_id == MOCK_LOCATION_ID
        assert request.options == EstimationOptions.mock_mode()

    def test_malformed_coordinate_falls_back(self):
        config = Config(mock_enabled=False, location_id="loc", latitude="abc", longitude="7")

        request = build_request(InputMode.CAMERA, config)

        assert request.hint.latitude == FALLBACK_COORDINATE
        assert request.hint.longitude == 7.0

    def test_payload_mode_requires_payload(self):
        with pytest.raises(ValueError):
            build_request(InputMode.PAYLOAD, Config())

    def test_options_exclusive(self):
        with pytest.raises(ValidationError):
            EstimationOptions(mock=True, environment=Environment.DEV_PUBLIC)
        with pytest.raises(ValidationError):
            EstimationOptions()


# =============================================================================
# Stub Collaborators
# =============================================================================

@pytest.mark.integration
class TestStubCollaborators:
    """End-to-end attempts with the synthetic collaborators."""

    def test_synthetic_capture_end_to_end(self, config_store):
        from hyperlocal_demo.cli import run_attempt

        capture = StubFrameCapture()
        controller = WorkflowController(
            config_store=config_store,
            capture=capture,
            estimator=MockPositionEstimator(),
            camera=StaticCameraStream(),
        )

        state = asyncio.run(run_attempt(controller, timeout=10))

        assert state.phase == Phase.DONE
        assert state.result.data["frameCount"] == FRAME_THRESHOLD
        assert state.result.data["locationId"] == MOCK_LOCATION_ID
        assert capture.captured_count == FRAME_THRESHOLD
        assert len(controller.capture_progress.preview_urls) == FRAME_THRESHOLD
        assert controller.capture_progress.preview_urls[0].startswith("data:image/jpeg;base64,")

    def test_slow_payload_attempt_times_out(self, controller, estimator, valid_payload_text):
        from hyperlocal_demo.cli import run_attempt

        controller.select_mode(InputMode.PAYLOAD)
        controller.set_payload_text(valid_payload_text)

        async def scenario():
            # Never released, so the estimator call hangs inside start()
            estimator.gate = asyncio.Event()
            await run_attempt(controller, timeout=0.05)

        with pytest.raises(asyncio.TimeoutError):
            asyncio.run(scenario())

        assert len(estimator.calls) == 1
        assert controller.state.phase == Phase.IDLE
        assert controller.state.result is None

    def test_stub_capture_reset_abandons_session(self):
        capture = StubFrameCapture()
        called = []

        async def handler(frames):
            called.append(frames)

        async def scenario():
            capture.start_capture("cam", CaptureOptions(3, False, handler))
            capture.reset()
            await capture.task

        asyncio.run(scenario())

        assert called == []
        assert capture.captured_count == 0

    def test_mock_estimator_empty_batch_fails(self):
        result = asyncio.run(MockPositionEstimator().estimate_position(
            [], "loc", GeoHint(latitude=0, longitude=0), EstimationOptions.mock_mode(),
        ))

        assert not result.is_success
        assert result.data["reason"] == "no_frames"
