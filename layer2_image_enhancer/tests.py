"""
Tests for Layer 2 image enhancement: tone adjustment and OCR preprocessing.
"""
import numpy as np
import pytest

from error_handlers import InvalidToneParametersError, NoCapturedStillError
from layer1_auto_capture import CapturedStill
from layer2_image_enhancer import BridgeConfig, ImageBridge, ToneAdjuster, ToneParameters


@pytest.fixture
def gradient_still():
    """Still whose pixels cover the full 0..255 range."""
    row = np.arange(256, dtype=np.uint8)
    image = np.repeat(np.tile(row, (64, 1))[:, :, None], 3, axis=2)
    return CapturedStill(image)


class TestToneParameters:
    """Test operator input validation."""

    def test_defaults_are_identity(self):
        assert ToneParameters().is_identity
        assert ToneParameters(contrast=30).alpha == pytest.approx(1.3)

    @pytest.mark.parametrize("kwargs", [
        {'brightness': 101},
        {'brightness': -101},
        {'contrast': 200},
        {'contrast': 12.5},
        {'brightness': '10'},
        {'brightness': True},
    ])
    def test_rejects_invalid_values(self, kwargs):
        with pytest.raises(InvalidToneParametersError):
            ToneParameters(**kwargs)


class TestToneAdjuster:
    """Test brightness/contrast application."""

    def test_brightness_offset(self, gradient_still):
        out = ToneAdjuster().apply(gradient_still, ToneParameters(brightness=20))
        assert out[0, 0, 0] == 20
        assert out[0, 100, 0] == 120

    def test_adjusts_working_copy_in_place(self, gradient_still):
        working = gradient_still.working
        out = ToneAdjuster().apply(gradient_still, ToneParameters(brightness=20))
        assert out is working
        assert gradient_still.original[0, 100, 0] == 100

    def test_order_independent(self, gradient_still):
        adjuster = ToneAdjuster()
        adjuster.apply(gradient_still, ToneParameters(brightness=20, contrast=0))
        adjuster.apply(gradient_still, ToneParameters(brightness=0, contrast=30))
        sequential = gradient_still.working.copy()

        fresh = CapturedStill(gradient_still.original)
        adjuster.apply(fresh, ToneParameters(brightness=0, contrast=30))
        assert np.array_equal(sequential, fresh.working)

    def test_saturates_at_upper_bound(self, gradient_still):
        out = ToneAdjuster().apply(gradient_still, ToneParameters(brightness=0, contrast=50))
        # 200 * 1.5 = 300 -> 255
        assert out[0, 200, 0] == 255
        assert out[0, 255, 0] == 255
        assert out[0, 100, 0] == 150

    def test_saturates_at_lower_bound(self, gradient_still):
        out = ToneAdjuster().apply(gradient_still, ToneParameters(brightness=-50, contrast=0))
        assert out[0, 10, 0] == 0
        assert out[0, 60, 0] == 10

    def test_clamps_once_after_linear_map(self, gradient_still):
        # 250 * 1.5 - 100 = 275 -> 255; clamping before the offset would give 155
        out = ToneAdjuster().apply(gradient_still, ToneParameters(brightness=-100, contrast=50))
        assert out[0, 250, 0] == 255
        assert out[0, 100, 0] == 50

    def test_full_negative_contrast_flattens(self, gradient_still):
        out = ToneAdjuster().apply(gradient_still, ToneParameters(brightness=40, contrast=-100))
        assert (out == 40).all()

    def test_no_drift_after_saturation(self, gradient_still):
        adjuster = ToneAdjuster()
        adjuster.apply(gradient_still, ToneParameters(brightness=100, contrast=100))
        adjuster.apply(gradient_still, ToneParameters())
        assert np.array_equal(gradient_still.working, gradient_still.original)

    def test_requires_still(self):
        with pytest.raises(NoCapturedStillError):
            ToneAdjuster().apply(None, ToneParameters())


class TestImageBridge:
    """Test OCR preprocessing."""

    def test_prepare_for_ocr_is_binary(self, check_frame):
        binary = ImageBridge().prepare_for_ocr(check_frame)
        assert binary.shape == check_frame.shape[:2]
        assert set(np.unique(binary)) <= {0, 255}

    def test_micr_band_is_bottom_fifth(self, check_frame):
        band = ImageBridge().micr_band(check_frame)
        assert band.shape[0] == 96
        assert np.array_equal(band, check_frame[384:])

    def test_band_ratio_configurable(self, check_frame):
        bridge = ImageBridge(BridgeConfig(micr_band_ratio=0.5))
        assert bridge.process(check_frame).shape == (240, 640)

    def test_dark_text_stays_dark(self):
        image = np.full((60, 200), 255, dtype=np.uint8)
        image[25:35, 50:150] = 0
        binary = ImageBridge().prepare_for_ocr(image)
        assert binary[30, 100] == 0
        assert binary[5, 10] == 255
