"""
Layer 3 — OCR Gateway
Component: Recognition backends behind a single scan() call
Responsibility: Accept a PNG scan request, return MICR fields per backend
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import cv2
import numpy as np
import pytesseract

from error_handlers import OCRBackendError
from layer2_image_enhancer import ImageBridge
from .parser import MICRFields, parse_micr_line

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanRequest:
    """Identified, encoded still submitted for recognition."""
    id: str
    image: bytes
    format: str = "png"

    def decode(self) -> np.ndarray:
        buffer = np.frombuffer(self.image, dtype=np.uint8)
        image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
        if image is None:
            raise ValueError(f"Scan request {self.id} does not hold a decodable {self.format} image")
        return image


class RecognitionBackend(ABC):
    """One recognition engine: image in, MICR fields out."""

    name = "backend"

    @abstractmethod
    def recognize(self, image: np.ndarray) -> MICRFields:
        """Recognize the MICR line of a decoded still."""


class TesseractBackend(RecognitionBackend):
    """MICR recognition with Tesseract restricted to digits and symbols"""

    name = "tesseract"

    DEFAULT_CONFIG = '--oem 3 --psm 7 -c tessedit_char_whitelist=0123456789ABCD'

    def __init__(self, bridge: Optional[ImageBridge] = None, tesseract_config: Optional[str] = None,
                 lang: str = "eng"):
        """
        Args:
            bridge: OCR preprocessing (MICR band + binarization)
            tesseract_config: Extra Tesseract CLI options
            lang: Tesseract language/traineddata (e.g. an E-13B model)
        """
        self.bridge = bridge or ImageBridge()
        self.tesseract_config = tesseract_config or self.DEFAULT_CONFIG
        self.lang = lang

    def recognize(self, image: np.ndarray) -> MICRFields:
        prepared = self.bridge.process(image)
        text = pytesseract.image_to_string(prepared, lang=self.lang, config=self.tesseract_config)
        logger.debug(f"[{self.name}] raw MICR text: {text.strip()!r}")
        return parse_micr_line(text)


class OcrGateway:
    """
    Runs every configured backend on a scan request.

    A failing backend raises OCRBackendError; callers map that to a
    not-found result.
    """

    def __init__(self, backends: Iterable[RecognitionBackend]):
        self.backends: Dict[str, RecognitionBackend] = {b.name: b for b in backends}
        if not self.backends:
            raise ValueError("OcrGateway needs at least one backend")
        logger.info(f"OcrGateway initialized with backends: {list(self.backends)}")

    @property
    def backend_names(self):
        return list(self.backends)

    def scan(self, request: ScanRequest) -> Dict[str, MICRFields]:
        """
        Args:
            request: ScanRequest with an encoded still

        Returns:
            dict: backend name -> MICRFields
        """
        logger.info(f"Scanning request {request.id}...")
        image = request.decode()

        results = {}
        for name, backend in self.backends.items():
            try:
                results[name] = backend.recognize(image)
            except Exception as e:
                raise OCRBackendError(name, e) from e
            logger.info(f"[{name}] {results[name].to_dict()}")
        return results
