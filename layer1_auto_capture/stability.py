"""
Layer 1 — Stability Gate
Debounces per-frame detections: the check must stay inside the capture zone
for several consecutive frames before a capture is triggered.
"""
import enum
import logging
from typing import Optional

from layer2_readjustment import CandidateRectangle, CaptureZone

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    STREAMING = "streaming"
    PAUSED = "paused"


class StabilityGate:
    """
    Per-session state machine: STREAMING -> PAUSED on trigger,
    PAUSED -> STREAMING only through reset().
    """

    FILL_METRICS = ('width', 'area')

    def __init__(self, zone: CaptureZone, stability_frames: int = 5,
                 fill_ratio: float = 0.8, fill_metric: str = 'width'):
        """
        Args:
            zone: Session capture zone
            stability_frames: Trigger once the streak exceeds this count
            fill_ratio: How much of the zone the candidate must cover
            fill_metric: 'width' (candidate width vs zone width) or 'area'
        """
        if fill_metric not in self.FILL_METRICS:
            raise ValueError(f"fill_metric must be one of {self.FILL_METRICS}, got {fill_metric!r}")
        if stability_frames < 1:
            raise ValueError("stability_frames must be at least 1")

        self.zone = zone
        self.stability_frames = stability_frames
        self.fill_ratio = fill_ratio
        self.fill_metric = fill_metric

        self.count = 0
        self.state = SessionState.STREAMING

    @property
    def is_streaming(self) -> bool:
        return self.state is SessionState.STREAMING

    @property
    def progress(self) -> float:
        return min(self.count / (self.stability_frames + 1), 1.0)

    def qualifies(self, candidate: Optional[CandidateRectangle]) -> bool:
        """Containment and fill test for a single frame."""
        if candidate is None:
            return False
        if not self.zone.contains(candidate.rect):
            return False
        if self.fill_metric == 'width':
            return candidate.rect.width >= self.fill_ratio * self.zone.rect.width
        return candidate.area >= self.fill_ratio * self.zone.area

    def observe(self, candidate: Optional[CandidateRectangle]) -> bool:
        """
        Feed one frame's candidate.

        Returns:
            bool: True exactly once per qualifying streak, when capture fires
        """
        if not self.is_streaming:
            return False

        if not self.qualifies(candidate):
            if self.count:
                logger.debug(f"Stability streak broken at {self.count}")
            self.count = 0
            return False

        self.count += 1
        if self.count > self.stability_frames:
            self.state = SessionState.PAUSED
            logger.info(f"Check stable for {self.count} frames, capture triggered")
            return True
        return False

    def reset(self):
        self.count = 0
        self.state = SessionState.STREAMING
        logger.debug("Stability gate reset")
