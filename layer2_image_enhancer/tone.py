"""
Layer 2 — Tone Adjustment
Operator brightness/contrast correction of a captured still before OCR.

Every adjustment is recomputed from the still's original pixels, so the
result depends only on the latest (brightness, contrast) pair.
"""
import cv2
import logging
from dataclasses import dataclass

from error_handlers import InvalidToneParametersError, NoCapturedStillError

logger = logging.getLogger(__name__)

TONE_MIN = -100
TONE_MAX = 100


@dataclass(frozen=True)
class ToneParameters:
    """Brightness offset and contrast basis (0 = unchanged)."""
    brightness: int = 0
    contrast: int = 0

    def __post_init__(self):
        for name in ('brightness', 'contrast'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidToneParametersError(name, value, TONE_MIN, TONE_MAX)
            if value < TONE_MIN or value > TONE_MAX:
                raise InvalidToneParametersError(name, value, TONE_MIN, TONE_MAX)

    @property
    def alpha(self) -> float:
        return 1.0 + self.contrast / 100.0

    @property
    def is_identity(self) -> bool:
        return self.brightness == 0 and self.contrast == 0


class ToneAdjuster:
    """Applies output = saturate(input * (1 + contrast/100) + brightness)"""

    def apply(self, still, params: ToneParameters):
        """
        Adjust the still's working copy in place

        Args:
            still: CapturedStill holding original and working buffers
            params: ToneParameters to apply

        Returns:
            numpy.ndarray: The still's working buffer
        """
        if still is None:
            raise NoCapturedStillError()

        if params.is_identity:
            still.reset()
        else:
            # Single saturate_cast after the linear map
            cv2.addWeighted(still.original, params.alpha, still.original, 0.0,
                            float(params.brightness), dst=still.working)

        still.tone = params
        logger.debug(f"Tone applied: brightness={params.brightness}, contrast={params.contrast}")
        return still.working
