"""
Tests for Layer 1 auto-capture: stability gate, capturer, session loop.
"""
from unittest import mock

import numpy as np
import pytest

from conftest import FakeCamera, draw_check
from error_handlers import (
    CameraInitError,
    CameraNotInitializedError,
    InvalidToneParametersError,
    NoCapturedStillError,
)
from layer1_auto_capture import (
    AutoCaptureEngine,
    CameraHandler,
    CaptureConfig,
    CapturedStill,
    FrameCapturer,
    SessionState,
    StabilityGate,
)
from layer2_readjustment import CandidateRectangle, CaptureZone, Rectangle


def no_sleep(_seconds):
    pass


@pytest.fixture
def zone():
    return CaptureZone(640, 480)


@pytest.fixture
def good():
    """Candidate fully inside the default VGA zone, filling >= 80% of its width."""
    return CandidateRectangle(Rectangle(50, 100, 500, 150), 75000.0)


class TestStabilityGate:
    """Test the consecutive-frame stability state machine."""

    @pytest.mark.parametrize("streak", [0, 1, 2, 3, 4, 5])
    def test_counter_resets_on_failing_frame(self, zone, good, streak):
        gate = StabilityGate(zone, stability_frames=5)
        for _ in range(streak):
            gate.observe(good)
        assert gate.count == min(streak, 5)

        gate.observe(None)
        assert gate.count == 0
        assert gate.state is SessionState.STREAMING

    def test_triggers_once_on_sixth_frame(self, zone, good):
        gate = StabilityGate(zone, stability_frames=5)
        fired = [gate.observe(good) for _ in range(6)]
        assert fired == [False] * 5 + [True]
        assert gate.state is SessionState.PAUSED

    def test_paused_gate_ignores_frames(self, zone, good):
        gate = StabilityGate(zone, stability_frames=5)
        fired = [gate.observe(good) for _ in range(12)]
        assert fired.count(True) == 1
        gate.observe(None)
        assert gate.state is SessionState.PAUSED

    def test_reset_resumes_streaming(self, zone, good):
        gate = StabilityGate(zone, stability_frames=1)
        gate.observe(good)
        assert gate.observe(good)
        gate.reset()
        assert gate.count == 0
        assert gate.is_streaming

    def test_candidate_outside_zone_fails(self, zone):
        # y=90 is above the zone top (96)
        outside = CandidateRectangle(Rectangle(50, 90, 500, 150), 75000.0)
        assert not StabilityGate(zone).qualifies(outside)

    def test_narrow_candidate_fails_width_fill(self, zone):
        narrow = CandidateRectangle(Rectangle(50, 100, 400, 150), 60000.0)
        assert not StabilityGate(zone).qualifies(narrow)

    def test_area_fill_metric(self, zone, good):
        gate = StabilityGate(zone, fill_metric='area')
        # 75000 < 80% of 178560
        assert not gate.qualifies(good)
        big = CandidateRectangle(Rectangle(10, 96, 620, 240), 148800.0)
        assert gate.qualifies(big)

    def test_unknown_fill_metric_rejected(self, zone):
        with pytest.raises(ValueError):
            StabilityGate(zone, fill_metric='height')


class TestFrameCapturer:
    """Test crop, scale and centering of the captured still."""

    def test_canvas_size_and_centering(self, check_frame):
        capturer = FrameCapturer(640, 480)
        canvas = capturer.normalize(check_frame, Rectangle(50, 100, 500, 150))
        assert canvas.shape == (480, 640, 3)
        # 500x150 scaled by 1.28 -> 640x192, offset 144 from the top
        assert tuple(canvas[10, 320]) == (128, 128, 128)
        assert tuple(canvas[240, 320]) == (255, 255, 255)
        assert tuple(canvas[470, 320]) == (128, 128, 128)

    def test_small_region_is_scaled_up(self, check_frame):
        canvas = FrameCapturer(640, 480).normalize(check_frame, Rectangle(100, 150, 100, 40))
        # scale = min(6.4, 12) -> 640x256 centered vertically
        assert tuple(canvas[240, 5]) == (255, 255, 255)
        assert tuple(canvas[100, 320]) == (128, 128, 128)

    def test_renormalizing_full_canvas_is_noop(self, check_frame):
        capturer = FrameCapturer(640, 480)
        still = capturer.normalize(check_frame, Rectangle(40, 90, 520, 170))
        again = capturer.normalize(still, Rectangle(0, 0, 640, 480))
        assert np.array_equal(still, again)

    def test_grayscale_capture_has_equal_channels(self):
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        frame[:, :] = (0, 0, 255)
        canvas = FrameCapturer(grayscale=True).normalize(frame, Rectangle(0, 0, 640, 240))
        assert np.array_equal(canvas[..., 0], canvas[..., 1])
        assert np.array_equal(canvas[..., 1], canvas[..., 2])

    def test_color_capture_keeps_color(self):
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        frame[:, :] = (0, 0, 255)
        canvas = FrameCapturer(grayscale=False).normalize(frame, Rectangle(0, 0, 640, 240))
        assert tuple(canvas[240, 320]) == (0, 0, 255)

    def test_captured_still_keeps_original(self, check_frame):
        still = FrameCapturer().capture(check_frame, Rectangle(50, 100, 500, 150))
        assert isinstance(still, CapturedStill)
        with pytest.raises(ValueError):
            still.original[0, 0] = 0
        still.working[:] = 0
        still.reset()
        assert np.array_equal(still.working, still.original)


class TestCaptureConfig:
    """Test environment configuration."""

    def test_defaults(self):
        cfg = CaptureConfig()
        assert cfg.target_fps == 15.0
        assert cfg.stability_frames == 5
        assert cfg.min_area_ratio == 0.15
        assert cfg.zone_fill_metric == 'width'

    def test_default_fill_metric_accepts_wide_check(self, good):
        # 500x150 on VGA: width fill 500 >= 496, area fill 75000 < 142848
        cfg = CaptureConfig()
        zone = CaptureZone(640, 480, cfg.zone_margin_x, cfg.zone_margin_y)
        gate = StabilityGate(zone, fill_ratio=cfg.zone_fill_ratio, fill_metric=cfg.zone_fill_metric)
        assert gate.qualifies(good)

    @pytest.mark.parametrize("value", ['0', '-15'])
    def test_non_positive_fps_rejected(self, value):
        with pytest.raises(ValueError):
            CaptureConfig.from_env({'CHECKSCAN_TARGET_FPS': value})

    def test_zero_stability_frames_rejected(self):
        with pytest.raises(ValueError):
            CaptureConfig(stability_frames=0)

    def test_from_env_casts_values(self):
        cfg = CaptureConfig.from_env({
            'CHECKSCAN_CAMERA_INDEX': '2',
            'CHECKSCAN_TARGET_FPS': '10',
            'CHECKSCAN_GRAYSCALE_CAPTURE': 'false',
            'CHECKSCAN_BACKGROUND_COLOR': '255,255,255',
            'CHECKSCAN_ZONE_FILL_METRIC': 'area',
        })
        assert cfg.camera_index == 2
        assert cfg.target_fps == 10.0
        assert cfg.grayscale_capture is False
        assert cfg.background_color == (255, 255, 255)
        assert cfg.zone_fill_metric == 'area'


class TestCameraHandler:
    """Test camera resource acquisition failures."""

    def test_get_frame_before_initialize(self):
        with pytest.raises(CameraNotInitializedError):
            CameraHandler(0).get_frame()

    def test_unopenable_device_raises(self):
        camera = CameraHandler(7)
        with mock.patch.object(CameraHandler, '_check_device_exists', return_value=True), \
                mock.patch('layer1_auto_capture.camera.cv2.VideoCapture') as capture:
            capture.return_value.isOpened.return_value = False
            with pytest.raises(CameraInitError):
                camera.initialize()
        assert not camera.is_opened()


class TestAutoCaptureEngine:
    """Test the per-session frame loop."""

    def test_six_qualifying_frames_capture_once(self, engine_factory, check_frame):
        engine = engine_factory([check_frame])
        with mock.patch.object(engine.capturer, 'capture', wraps=engine.capturer.capture) as capture:
            still = engine.run(max_steps=20, sleep=no_sleep)

        assert still is not None
        assert capture.call_count == 1
        assert engine.camera.reads == 6

        _, rect = capture.call_args[0]
        assert abs(rect.x - 50) <= 2 and abs(rect.y - 100) <= 2
        assert abs(rect.width - 500) <= 3 and abs(rect.height - 150) <= 3

    def test_loop_stops_after_capture(self, engine_factory, check_frame):
        engine = engine_factory([check_frame])
        engine.run(sleep=no_sleep)
        assert engine.step() is None
        assert engine.stats['captures'] == 1

    def test_failing_frame_restarts_streak(self, engine_factory, check_frame, empty_frame):
        frames = [check_frame] * 5 + [empty_frame] + [check_frame] * 6
        engine = engine_factory(frames)
        engine.start()
        results = list(engine.frames(sleep=no_sleep))
        assert [r.stable_count for r in results] == [1, 2, 3, 4, 5, 0, 1, 2, 3, 4, 5, 6]
        assert [r.triggered for r in results].count(True) == 1

    def test_bad_frame_does_not_stop_loop(self, engine_factory, check_frame):
        frames = [RuntimeError("corrupt frame")] + [check_frame] * 6
        engine = engine_factory(frames)
        still = engine.run(sleep=no_sleep)
        assert still is not None
        assert engine.stats['errors'] == 1

    def test_stop_ends_loop(self, engine_factory, empty_frame):
        engine = engine_factory([empty_frame])
        engine.start()
        seen = 0
        for _ in engine.frames(sleep=no_sleep):
            seen += 1
            if seen == 3:
                engine.stop()
        assert seen == 3
        assert engine.step() is None

    def test_pacing_delays(self, engine_factory, empty_frame):
        engine = engine_factory([empty_frame])
        engine.start()
        clock = mock.Mock(side_effect=[0.0, 0.01, 1.0, 1.2, 2.0])
        sleep = mock.Mock()
        for count, _ in enumerate(engine.frames(clock=clock, sleep=sleep), start=1):
            if count == 2:
                engine.stop()
        delays = [c.args[0] for c in sleep.call_args_list]
        assert delays[0] == pytest.approx(1 / 15 - 0.01)
        assert delays[1] == 0.0

    def test_loop_requires_open_source(self, check_frame):
        engine = AutoCaptureEngine(camera=FakeCamera([check_frame]), extractor=mock.Mock())
        with pytest.raises(CameraNotInitializedError):
            engine.frames()
        with pytest.raises(CameraNotInitializedError):
            engine.start()

    def test_reset_discards_still_and_resumes(self, engine_factory, check_frame):
        engine = engine_factory([check_frame])
        engine.run(sleep=no_sleep)
        assert engine.still is not None

        engine.reset()
        assert engine.still is None
        assert engine.is_streaming
        result = engine.step()
        assert result.stable_count == 1

    def test_reset_after_stop_stays_stopped(self, engine_factory, check_frame):
        engine = engine_factory([check_frame])
        engine.start()
        engine.stop()
        engine.reset()
        assert not engine.is_streaming
        assert engine.step() is None
        assert engine.camera.reads == 0

    def test_reset_after_release_stays_stopped(self, engine_factory, check_frame):
        engine = engine_factory([check_frame])
        engine.start()
        engine.release()
        engine.reset()
        assert not engine.is_streaming
        assert engine.status()['streaming'] is False
        assert engine.step() is None
        assert engine.stats['errors'] == 0

    def test_tone_requires_still(self, engine_factory, check_frame):
        engine = engine_factory([check_frame])
        with pytest.raises(NoCapturedStillError):
            engine.adjust_tone(10, 10)
        with pytest.raises(NoCapturedStillError):
            engine.extract_micr()

    def test_tone_and_ocr_on_held_still(self, engine_factory, check_frame, mock_extractor):
        engine = engine_factory([check_frame])
        engine.run(sleep=no_sleep)

        engine.adjust_tone(brightness=-20, contrast=0)
        assert engine.still.working.max() == 235
        with pytest.raises(InvalidToneParametersError):
            engine.adjust_tone(brightness=150)

        results = engine.extract_micr()
        mock_extractor.extract.assert_called_once_with(engine.still)
        assert results['tesseract'].routing_number == '124003116'

    def test_status(self, engine_factory, check_frame):
        engine = engine_factory([check_frame])
        engine.start()
        engine.step()
        status = engine.status()
        assert status['streaming'] is True
        assert status['state'] == 'streaming'
        assert status['stable_count'] == 1
        assert status['capture_zone'] == {'x': 10, 'y': 96, 'width': 620, 'height': 288}

    def test_multiple_sessions_are_independent(self, engine_factory, check_frame, empty_frame):
        first = engine_factory([check_frame])
        second = engine_factory([empty_frame])
        first.start()
        second.start()
        first.step()
        second.step()
        assert first.gate.count == 1
        assert second.gate.count == 0
