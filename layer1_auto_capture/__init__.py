"""
Layer 1 — Auto-Capture
Live check detection with stability gating.
Handles the camera, per-frame detection loop, and returns a single
normalized still per stabilization event.
"""
from .auto_capture import AutoCaptureEngine, CaptureConfig, FrameResult
from .camera import CameraHandler
from .capturer import CapturedStill, FrameCapturer
from .stability import SessionState, StabilityGate

__all__ = [
    'AutoCaptureEngine',
    'CaptureConfig',
    'FrameResult',
    'CameraHandler',
    'CapturedStill',
    'FrameCapturer',
    'SessionState',
    'StabilityGate',
]
