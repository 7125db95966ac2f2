"""
Pytest configuration and fixtures for Check Scanner tests.
"""
import pytest
import os
import sys
from unittest import mock

import cv2
import numpy as np

# Add the app directory to the path
sys.path.insert(0, os.path.dirname(__file__))


class FakeCamera:
    """Frame source serving a fixed list of frames, then repeating the last."""

    def __init__(self, frames, width=640, height=480):
        self.frames = list(frames)
        self.width = width
        self.height = height
        self.reads = 0
        self.opened = False

    def initialize(self):
        self.opened = True
        return True

    def is_opened(self):
        return self.opened

    def get_resolution(self):
        return (self.width, self.height)

    def get_frame(self):
        frame = self.frames[min(self.reads, len(self.frames) - 1)]
        self.reads += 1
        if isinstance(frame, Exception):
            raise frame
        return frame

    def release(self):
        self.opened = False


def draw_check(x=50, y=100, width=500, height=150, frame_size=(640, 480), channels=3):
    """Black frame with a filled white rectangle."""
    fw, fh = frame_size
    shape = (fh, fw) if channels == 1 else (fh, fw, channels)
    frame = np.zeros(shape, dtype=np.uint8)
    cv2.rectangle(frame, (x, y), (x + width - 1, y + height - 1), (255,) * max(channels, 1), -1)
    return frame


@pytest.fixture
def check_frame():
    """640x480 frame holding a check-shaped white region at (50, 100, 500, 150)."""
    return draw_check()


@pytest.fixture
def empty_frame():
    """640x480 black frame."""
    return np.zeros((480, 640, 3), dtype=np.uint8)


@pytest.fixture
def fake_camera_factory():
    """Build a FakeCamera from a list of frames."""
    return FakeCamera


@pytest.fixture
def mock_extractor():
    """MICR extractor stand-in returning a parsed tesseract result."""
    from layer3_micr import MICRFields
    extractor = mock.Mock()
    extractor.backends = ['tesseract']
    extractor.extract.return_value = {
        'tesseract': MICRFields('124003116', '1062296907', '1103')
    }
    return extractor


@pytest.fixture
def engine_factory(mock_extractor):
    """AutoCaptureEngine over a FakeCamera with an opened source."""
    from layer1_auto_capture import AutoCaptureEngine, CaptureConfig

    def build(frames, config=None, extractor=None):
        camera = FakeCamera(frames)
        engine = AutoCaptureEngine(
            config or CaptureConfig(),
            camera=camera,
            extractor=extractor or mock_extractor
        )
        engine.initialize()
        return engine

    return build


@pytest.fixture
def app(monkeypatch, engine_factory, check_frame):
    """Create Flask test application with a fake camera session."""
    import app as app_module
    monkeypatch.setattr(app_module, 'engine', engine_factory([check_frame]))
    flask_app = app_module.app
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()


@pytest.fixture
def sample_micr_line():
    """MICR line as rendered with a font mapping A=transit, C=on-us."""
    return "A124003116A  1062296907C  1103"
