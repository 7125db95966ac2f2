"""
Layer 1 — Frame Capturer
Turns the triggering frame region into a normalized still: crop, uniform
scale, centered on a fixed-size neutral canvas.
"""
import cv2
import numpy as np
import logging
from datetime import datetime
from typing import Optional, Tuple

from layer2_readjustment import Rectangle

logger = logging.getLogger(__name__)


class CapturedStill:
    """
    Normalized still held for tone adjustment and OCR.

    `original` is read-only; `working` is the buffer ToneAdjuster writes.
    """

    def __init__(self, image: np.ndarray, source_rect: Optional[Rectangle] = None):
        self.original = image.copy()
        self.original.setflags(write=False)
        self.working = image.copy()
        self.source_rect = source_rect
        self.timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.tone = None

    @property
    def shape(self):
        return self.original.shape

    def reset(self):
        """Restore the working copy from the original pixels."""
        np.copyto(self.working, self.original)
        self.tone = None

    def to_dict(self):
        h, w = self.original.shape[:2]
        return {
            'timestamp': self.timestamp,
            'size': [w, h],
            'source_rect': self.source_rect.to_dict() if self.source_rect else None,
            'tone': {
                'brightness': self.tone.brightness,
                'contrast': self.tone.contrast,
            } if self.tone else None,
        }


class FrameCapturer:
    """Crops, scales and centers the detected check onto a fixed canvas"""

    def __init__(self, output_width=640, output_height=480,
                 background_color: Tuple[int, int, int] = (128, 128, 128),
                 grayscale=True):
        """
        Args:
            output_width: Canvas width
            output_height: Canvas height
            background_color: BGR fill for the area around the check
            grayscale: Convert the still to gray (stored as 3 equal channels)
        """
        self.output_width = output_width
        self.output_height = output_height
        self.background_color = tuple(int(c) for c in background_color)
        self.grayscale = grayscale

        logger.info(f"FrameCapturer initialized: {output_width}x{output_height}, grayscale={grayscale}")

    @staticmethod
    def _to_bgr(image):
        if image.ndim == 2:
            return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        if image.shape[2] == 4:
            return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
        return image

    def normalize(self, frame: np.ndarray, rect: Rectangle) -> np.ndarray:
        """
        Crop `rect` from `frame` and fit it, centered, on the output canvas.

        Args:
            frame: Source frame
            rect: Region in frame pixels

        Returns:
            numpy.ndarray: BGR canvas of output_width x output_height
        """
        frame_h, frame_w = frame.shape[:2]
        rect = rect.clipped_to(frame_w, frame_h)

        crop = self._to_bgr(frame[rect.y:rect.bottom, rect.x:rect.right])

        if self.grayscale:
            gray = cv2.cvtColor(crop, cv2.COLOR_BGR2GRAY)
            crop = cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)

        scale = min(self.output_width / rect.width, self.output_height / rect.height)
        new_w = max(1, min(self.output_width, int(round(rect.width * scale))))
        new_h = max(1, min(self.output_height, int(round(rect.height * scale))))

        if (new_w, new_h) != (rect.width, rect.height):
            interpolation = cv2.INTER_AREA if scale < 1 else cv2.INTER_LINEAR
            crop = cv2.resize(crop, (new_w, new_h), interpolation=interpolation)

        canvas = np.full((self.output_height, self.output_width, 3), self.background_color, dtype=np.uint8)
        off_x = (self.output_width - new_w) // 2
        off_y = (self.output_height - new_h) // 2
        canvas[off_y:off_y + new_h, off_x:off_x + new_w] = crop

        logger.debug(f"Normalized {rect.width}x{rect.height} region by {scale:.3f} "
                     f"to {new_w}x{new_h} at ({off_x}, {off_y})")
        return canvas

    def capture(self, frame: np.ndarray, rect: Rectangle) -> CapturedStill:
        """
        Produce the session's captured still.

        Args:
            frame: Raw frame that triggered capture
            rect: Triggering candidate's rectangle

        Returns:
            CapturedStill
        """
        still = CapturedStill(self.normalize(frame, rect), source_rect=rect)
        logger.info(f"Captured still from region {rect.as_tuple()}")
        return still
