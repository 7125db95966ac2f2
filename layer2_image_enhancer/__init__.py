"""
Layer 2 — Image Enhancer
Operator tone correction of the held still and OCR preprocessing.
"""
from .bridge import ImageBridge, BridgeConfig
from .tone import ToneAdjuster, ToneParameters

__all__ = ['ImageBridge', 'BridgeConfig', 'ToneAdjuster', 'ToneParameters']
