"""
Layer 2 — Image Readjustment
Check detection in live frames: edge map, contours, rectangle selection.
"""
from .geometry import Rectangle, CandidateRectangle, CaptureZone
from .processor import EdgeExtractor, ContourScanner, RectangleSelector, DocumentProcessor

__all__ = [
    'Rectangle',
    'CandidateRectangle',
    'CaptureZone',
    'EdgeExtractor',
    'ContourScanner',
    'RectangleSelector',
    'DocumentProcessor',
]
