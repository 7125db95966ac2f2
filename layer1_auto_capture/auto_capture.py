"""
Layer 1 — Auto-Capture Engine
Live check detection and stabilized capture for one video session.

Features:
- Contour-based check detection on every frame
- Stability gating (check must stay inside the capture zone)
- Single normalized still per stabilization event
- Operator tone correction and MICR extraction of the held still
- Paced frame loop (explicit loop or cooperative generator)
"""
import logging
import os
import threading
import time
from dataclasses import dataclass, field, fields
from typing import Callable, Dict, Iterator, Optional, Tuple

import numpy as np

from error_handlers import CameraNotInitializedError, NoCapturedStillError
from layer2_image_enhancer import ToneAdjuster, ToneParameters
from layer2_readjustment import CandidateRectangle, CaptureZone, DocumentProcessor
from layer3_micr import MICRExtractor, OcrGateway, TesseractBackend
from .camera import CameraHandler
from .capturer import CapturedStill, FrameCapturer
from .stability import StabilityGate

logger = logging.getLogger(__name__)

ENV_PREFIX = "CHECKSCAN_"


@dataclass
class CaptureConfig:
    """Configuration for auto-capture engine."""
    # Camera settings
    camera_index: int = 0
    camera_width: int = 640
    camera_height: int = 480
    target_fps: float = 15.0

    # Detection settings
    blur_kernel: int = 5
    canny_low: int = 50
    canny_high: int = 150
    epsilon_ratio: float = 0.02       # approxPolyDP tolerance (fraction of perimeter)
    min_area_ratio: float = 0.15      # Minimum rect area (fraction of frame)
    min_aspect_ratio: float = 2.0     # Checks are at least twice as wide as tall

    # Capture zone (margins as fractions of frame width/height)
    zone_margin_x: float = 0.015625
    zone_margin_y: float = 0.2
    zone_fill_ratio: float = 0.8
    zone_fill_metric: str = "width"   # 'area' rejects a 500x150 check on VGA (75000 < 0.8 * 178560)

    # Stability settings
    stability_frames: int = 5         # Capture once the streak exceeds this

    # Output settings
    output_width: int = 640
    output_height: int = 480
    background_color: Tuple[int, int, int] = (128, 128, 128)
    grayscale_capture: bool = True

    def __post_init__(self):
        if self.target_fps <= 0:
            raise ValueError(f"target_fps must be positive, got {self.target_fps}")
        if self.stability_frames < 1:
            raise ValueError("stability_frames must be at least 1")

    @classmethod
    def from_env(cls, environ=None) -> "CaptureConfig":
        """
        Build a config from CHECKSCAN_* environment variables.

        e.g. CHECKSCAN_CAMERA_INDEX=2, CHECKSCAN_BACKGROUND_COLOR=255,255,255
        """
        environ = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            default = f.default
            if isinstance(default, bool):
                value = raw.strip().lower() in ('1', 'true', 'yes', 'on')
            elif isinstance(default, tuple):
                value = tuple(int(part) for part in raw.split(','))
            else:
                value = type(default)(raw)
            overrides[f.name] = value
        if overrides:
            logger.debug(f"Config overrides from environment: {overrides}")
        return cls(**overrides)


@dataclass
class FrameResult:
    """Outcome of one per-frame step."""
    candidate: Optional[CandidateRectangle] = None
    stable_count: int = 0
    triggered: bool = False
    still: Optional[CapturedStill] = None
    error: Optional[str] = None
    frame: Optional[np.ndarray] = field(default=None, repr=False)

    def to_dict(self) -> Dict:
        """Convert to dictionary for API response."""
        return {
            'detected': self.candidate is not None,
            'candidate': self.candidate.to_dict() if self.candidate else None,
            'stable_count': self.stable_count,
            'triggered': self.triggered,
            'error': self.error,
        }


class AutoCaptureEngine:
    """
    One video session: frame source, detection, stability gate, held still.

    Steps never overlap; operator controls are serialized with steps.
    """

    def __init__(self, config: Optional[CaptureConfig] = None, camera=None,
                 extractor: Optional[MICRExtractor] = None):
        """
        Initialize auto-capture engine.

        Args:
            config: Capture configuration (uses defaults if not provided)
            camera: Frame source (CameraHandler is created on initialize() if None)
            extractor: MICR extractor (Tesseract-backed if None)
        """
        self.config = config or CaptureConfig()
        cfg = self.config

        # Components
        self.camera = camera
        self.processor = DocumentProcessor(
            blur_kernel=cfg.blur_kernel,
            canny_low=cfg.canny_low,
            canny_high=cfg.canny_high,
            epsilon_ratio=cfg.epsilon_ratio,
            min_area_ratio=cfg.min_area_ratio,
            min_aspect_ratio=cfg.min_aspect_ratio,
        )
        self.capturer = FrameCapturer(
            output_width=cfg.output_width,
            output_height=cfg.output_height,
            background_color=cfg.background_color,
            grayscale=cfg.grayscale_capture,
        )
        self.tone_adjuster = ToneAdjuster()
        self.extractor = extractor or MICRExtractor(OcrGateway([TesseractBackend()]))

        # Session state
        self.gate: Optional[StabilityGate] = None
        self.still: Optional[CapturedStill] = None
        self.last_result: Optional[FrameResult] = None
        self._is_running: bool = False
        self._lock = threading.RLock()
        self.stats = {'frames': 0, 'errors': 0, 'captures': 0}

        logger.info("AutoCaptureEngine initialized")
        logger.debug(f"Config: {self.config}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> bool:
        """
        Open the frame source and compute the session capture zone.

        Raises:
            CameraNotFoundError, CameraInitError: If the source cannot be opened
        """
        cfg = self.config
        if self.camera is None:
            self.camera = CameraHandler(
                camera_index=cfg.camera_index,
                config={
                    'width': cfg.camera_width,
                    'height': cfg.camera_height,
                    'fps': cfg.target_fps,
                }
            )

        self.camera.initialize()

        width, height = self.camera.get_resolution()
        if width and height:
            self._setup_session(width, height)

        logger.info("AutoCaptureEngine fully initialized")
        return True

    def _setup_session(self, width: int, height: int):
        cfg = self.config
        zone = CaptureZone(width, height, cfg.zone_margin_x, cfg.zone_margin_y)
        self.gate = StabilityGate(
            zone,
            stability_frames=cfg.stability_frames,
            fill_ratio=cfg.zone_fill_ratio,
            fill_metric=cfg.zone_fill_metric,
        )
        logger.info(f"Session capture zone: {zone}")

    def _require_source(self):
        if self.camera is None or not self.camera.is_opened():
            raise CameraNotInitializedError()

    def start(self):
        """Enable the per-frame loop."""
        with self._lock:
            self._require_source()
            self._is_running = True
            logger.info("Streaming started")

    def stop(self):
        """Disable the per-frame loop; the next step releases and returns."""
        with self._lock:
            self._is_running = False
            logger.info("Streaming stopped")

    def reset(self):
        """
        Discard the held still and return the gate to streaming.

        Does not start the loop: a stopped or released session stays stopped.
        """
        with self._lock:
            if self.gate is not None:
                self.gate.reset()
            self.still = None
            self.last_result = None
            logger.info(f"Session reset (running={self._is_running})")

    def release(self):
        """Release all resources."""
        with self._lock:
            self._is_running = False
            self.still = None
            if self.camera:
                self.camera.release()
            logger.info("AutoCaptureEngine released")

    @property
    def lock(self):
        """Session lock; hold it to read the still consistently with steps and controls."""
        return self._lock

    @property
    def is_streaming(self) -> bool:
        return self._is_running and (self.gate is None or self.gate.is_streaming)

    # ------------------------------------------------------------------
    # Per-frame processing
    # ------------------------------------------------------------------

    def process_frame(self, frame: np.ndarray) -> FrameResult:
        """
        Detect, gate and (on trigger) capture one frame.

        Args:
            frame: Raw frame from the source

        Returns:
            FrameResult
        """
        height, width = frame.shape[:2]
        zone = self.gate.zone if self.gate is not None else None
        if zone is None or (zone.frame_width, zone.frame_height) != (width, height):
            if zone is not None:
                logger.warning(f"Frame size changed to {width}x{height}, rebuilding capture zone")
            self._setup_session(width, height)

        candidate = self.processor.detect(frame)
        triggered = self.gate.observe(candidate)

        still = None
        if triggered:
            try:
                still = self.capturer.capture(frame, candidate.rect)
            except Exception:
                self.gate.reset()
                raise
            self.still = still
            self.stats['captures'] += 1

        self.stats['frames'] += 1
        result = FrameResult(
            candidate=candidate,
            stable_count=self.gate.count,
            triggered=triggered,
            still=still,
            frame=frame,
        )
        self.last_result = result
        return result

    def step(self) -> Optional[FrameResult]:
        """
        Run one per-frame step.

        Returns:
            FrameResult, or None when streaming is off (loop must not reschedule)
        """
        with self._lock:
            if not self.is_streaming:
                return None

            try:
                frame = self.camera.get_frame()
                return self.process_frame(frame)
            except Exception as e:
                # One bad frame must not stop the loop
                self.stats['errors'] += 1
                logger.warning(f"Frame processing error: {e}")
                return FrameResult(
                    stable_count=self.gate.count if self.gate else 0,
                    error=str(e),
                )

    def frames(self, clock: Callable[[], float] = time.monotonic,
               sleep: Callable[[float], None] = time.sleep) -> Iterator[FrameResult]:
        """
        Cooperative frame loop paced to the target FPS.

        Yields one FrameResult per step; the caller regains control between
        steps. Ends when streaming is stopped or a capture pauses the session.

        Raises:
            CameraNotInitializedError: If the frame source is not open
        """
        self._require_source()
        return self._frame_loop(clock, sleep)

    def _frame_loop(self, clock, sleep) -> Iterator[FrameResult]:
        interval = 1.0 / self.config.target_fps

        while True:
            begin = clock()
            result = self.step()
            if result is None:
                logger.info("Frame loop finished")
                return
            yield result

            # Late frames shrink the delay to zero, they are never dropped
            delay = interval - (clock() - begin)
            sleep(max(0.0, delay))

    def run(self, max_steps: Optional[int] = None,
            clock: Callable[[], float] = time.monotonic,
            sleep: Callable[[float], None] = time.sleep) -> Optional[CapturedStill]:
        """
        Stream until capture, stop, or max_steps.

        Returns:
            CapturedStill if a capture happened, else None
        """
        self.start()
        for count, result in enumerate(self.frames(clock=clock, sleep=sleep), start=1):
            if result.triggered:
                return result.still
            if max_steps is not None and count >= max_steps:
                break
        return self.still

    # ------------------------------------------------------------------
    # Operator actions on the held still
    # ------------------------------------------------------------------

    def adjust_tone(self, brightness: int = 0, contrast: int = 0) -> np.ndarray:
        """
        Apply brightness/contrast to the held still.

        Raises:
            NoCapturedStillError: If nothing has been captured
            InvalidToneParametersError: If a value is out of range
        """
        with self._lock:
            if self.still is None:
                raise NoCapturedStillError()
            params = ToneParameters(brightness=brightness, contrast=contrast)
            return self.tone_adjuster.apply(self.still, params)

    def extract_micr(self):
        """
        Run OCR on the held still.

        Returns:
            dict: backend name -> MICRFields (not-found on OCR failure)

        Raises:
            NoCapturedStillError: If nothing has been captured
        """
        with self._lock:
            if self.still is None:
                raise NoCapturedStillError()
            return self.extractor.extract(self.still)

    def status(self) -> Dict:
        """Session status for API responses."""
        with self._lock:
            gate = self.gate
            return {
                'streaming': self.is_streaming,
                'state': gate.state.value if gate else None,
                'stable_count': gate.count if gate else 0,
                'stable_required': self.config.stability_frames + 1,
                'progress': gate.progress if gate else 0.0,
                'capture_zone': gate.zone.rect.to_dict() if gate else None,
                'has_still': self.still is not None,
                'still': self.still.to_dict() if self.still else None,
                'stats': dict(self.stats),
            }

    def __enter__(self):
        """Context manager entry."""
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.release()
        return False
