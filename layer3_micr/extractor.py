"""
Layer 3 — MICR Extraction
Component: MICR extractor
Responsibility: Submit the held still to the OCR gateway; never let OCR
failures reach the operator as exceptions
"""
import logging
import uuid
from typing import Dict, Iterable, Optional

import cv2

from error_handlers import ImageEncodeError, NoCapturedStillError
from .gateway import OcrGateway, ScanRequest
from .parser import MICRFields

logger = logging.getLogger(__name__)


class MICRExtractor:
    """Handles MICR extraction from captured check stills"""

    def __init__(self, gateway: OcrGateway, backends: Optional[Iterable[str]] = None):
        """
        Initialize MICR extractor

        Args:
            gateway: OCR gateway to submit scan requests to
            backends: Backend names expected in every result
                      (defaults to the gateway's backends)
        """
        self.gateway = gateway
        self.backends = list(backends) if backends else list(gateway.backend_names)
        logger.info(f"MICRExtractor initialized for backends: {self.backends}")

    @staticmethod
    def encode(image, image_format="png") -> bytes:
        """
        Encode an image losslessly for the gateway

        Raises:
            ImageEncodeError: If OpenCV cannot encode the image
        """
        ok, buffer = cv2.imencode(f".{image_format}", image)
        if not ok:
            raise ImageEncodeError(image_format)
        return buffer.tobytes()

    def fallback(self) -> Dict[str, MICRFields]:
        """All-"Not Found" result for every configured backend."""
        return {name: MICRFields.not_found() for name in self.backends}

    def extract(self, still, request_id=None) -> Dict[str, MICRFields]:
        """
        Extract MICR fields from a captured still

        Args:
            still: CapturedStill (its working copy is submitted)
            request_id: Optional scan request id

        Returns:
            dict: backend name -> MICRFields

        Raises:
            NoCapturedStillError: If no still is given
        """
        if still is None:
            raise NoCapturedStillError()

        request_id = request_id or f"check_{uuid.uuid4().hex[:8]}"
        logger.info(f"Starting MICR extraction ({request_id})...")

        try:
            request = ScanRequest(id=request_id, image=self.encode(still.working))
            results = self.gateway.scan(request)
        except Exception as e:
            logger.error(f"MICR extraction failed, reporting not found: {e}")
            logger.debug("Full traceback:", exc_info=True)
            return self.fallback()

        merged = self.fallback()
        for name, fields in (results or {}).items():
            if isinstance(fields, MICRFields):
                merged[name] = fields
            else:
                logger.warning(f"Backend {name} returned {type(fields).__name__}, ignoring")

        found = [name for name, fields in merged.items() if fields.found]
        if found:
            logger.info(f"✓ MICR fields found by: {found}")
        else:
            logger.warning("No MICR fields found in image")
        return merged

    @staticmethod
    def to_dict(results: Dict[str, MICRFields]):
        return {name: fields.to_dict() for name, fields in results.items()}
