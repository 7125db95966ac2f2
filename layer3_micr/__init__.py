"""
Layer 3 — MICR Extraction
Handles OCR submission, MICR line parsing and not-found fallbacks
"""
from .parser import MICRFields, NOT_FOUND, parse_micr_line, validate_aba_routing
from .gateway import OcrGateway, RecognitionBackend, ScanRequest, TesseractBackend
from .extractor import MICRExtractor

__all__ = [
    'MICRFields',
    'NOT_FOUND',
    'parse_micr_line',
    'validate_aba_routing',
    'OcrGateway',
    'RecognitionBackend',
    'ScanRequest',
    'TesseractBackend',
    'MICRExtractor',
]
