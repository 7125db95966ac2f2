"""
Layer 2 — Image Bridge
Prepares a captured still for MICR recognition.

This layer sits between the held still (Layer 1 + tone adjustment) and
MICR extraction (Layer 3). It isolates the MICR band at the bottom of the
check and binarizes it with the still-image preprocessing chain:
grayscale, 3x3 Gaussian blur, adaptive threshold, morphological close.
"""
import cv2
import numpy as np
import logging
from typing import Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class BridgeConfig:
    """Configuration for OCR preprocessing."""
    # MICR band (fraction of still height, measured from the bottom)
    micr_band_ratio: float = 0.2

    # Noise suppression
    blur_kernel: int = 3

    # Adaptive threshold
    threshold_block_size: int = 11   # Must be odd
    threshold_c: int = 2

    # Morphological close to reconnect broken strokes
    close_kernel: int = 3


class ImageBridge:
    """
    Image processing bridge between capture and MICR extraction.

    Stateless; safe to share between backends.
    """

    def __init__(self, config: Optional[BridgeConfig] = None):
        """
        Initialize image bridge.

        Args:
            config: Preprocessing configuration (defaults if None)
        """
        self.config = config or BridgeConfig()

        logger.info("ImageBridge initialized")
        logger.debug(f"Preprocess: blur={self.config.blur_kernel}, "
                     f"block={self.config.threshold_block_size}, "
                     f"C={self.config.threshold_c}, "
                     f"close={self.config.close_kernel}")

    def micr_band(self, image: np.ndarray) -> np.ndarray:
        """
        Crop the bottom band of the still where the MICR line is printed.
        """
        h = image.shape[0]
        top = int(h * (1.0 - self.config.micr_band_ratio))
        top = min(max(top, 0), h - 1)
        return image[top:h]

    def prepare_for_ocr(self, image: np.ndarray) -> np.ndarray:
        """
        Binarize an image for OCR.

        Args:
            image: Gray, BGR or BGRA image

        Returns:
            Single-channel binary image (text dark on white)
        """
        cfg = self.config

        if image.ndim == 2:
            gray = image.copy()
        elif image.shape[2] == 4:
            gray = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        else:
            gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

        blurred = cv2.GaussianBlur(gray, (cfg.blur_kernel, cfg.blur_kernel), 0)

        binary = cv2.adaptiveThreshold(
            blurred, 255,
            cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
            cv2.THRESH_BINARY,
            cfg.threshold_block_size,
            cfg.threshold_c
        )

        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (cfg.close_kernel, cfg.close_kernel))
        morphed = cv2.morphologyEx(binary, cv2.MORPH_CLOSE, kernel)

        return morphed

    def process(self, image: np.ndarray) -> np.ndarray:
        """
        Crop the MICR band and binarize it.

        Args:
            image: Captured still (working copy)

        Returns:
            Binary MICR band ready for Layer 3
        """
        band = self.micr_band(image)
        logger.debug(f"MICR band: {band.shape[1]}x{band.shape[0]}")
        return self.prepare_for_ocr(band)
