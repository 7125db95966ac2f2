"""
Layer 2 — Geometry
Axis-aligned rectangles in frame-pixel coordinates.
"""
from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np


@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned region (x, y, width, height) in frame pixels."""
    x: int
    y: int
    width: int
    height: int

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Rectangle must have positive size, got {self.width}x{self.height}")

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @classmethod
    def from_polygon(cls, points: np.ndarray) -> "Rectangle":
        """Bounding rectangle of an OpenCV point array."""
        x, y, w, h = cv2.boundingRect(points)
        return cls(int(x), int(y), int(w), int(h))

    def contains(self, other: "Rectangle") -> bool:
        """True if `other` lies fully inside this rectangle."""
        return (
            other.x >= self.x
            and other.y >= self.y
            and other.right <= self.right
            and other.bottom <= self.bottom
        )

    def within(self, frame_width: int, frame_height: int) -> bool:
        return self.x >= 0 and self.y >= 0 and self.right <= frame_width and self.bottom <= frame_height

    def clipped_to(self, frame_width: int, frame_height: int) -> "Rectangle":
        x0 = min(max(self.x, 0), frame_width - 1)
        y0 = min(max(self.y, 0), frame_height - 1)
        x1 = min(max(self.right, x0 + 1), frame_width)
        y1 = min(max(self.bottom, y0 + 1), frame_height)
        return Rectangle(x0, y0, x1 - x0, y1 - y0)

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)

    def to_dict(self):
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}


@dataclass(frozen=True)
class CandidateRectangle:
    """Best rectangle of a single frame, before stability filtering."""
    rect: Rectangle
    contour_area: float

    @property
    def area(self) -> int:
        return self.rect.area

    def to_dict(self):
        return {**self.rect.to_dict(), 'contour_area': round(self.contour_area, 1)}


class CaptureZone:
    """
    Target region the check must sit inside before capture.

    Computed once per session from the frame size and margins expressed as
    fractions of the frame width and height.
    """

    def __init__(self, frame_width: int, frame_height: int,
                 margin_x: float = 0.015625, margin_y: float = 0.2):
        if not (0 <= margin_x < 0.5 and 0 <= margin_y < 0.5):
            raise ValueError(f"Zone margins must be in [0, 0.5), got ({margin_x}, {margin_y})")

        self.frame_width = frame_width
        self.frame_height = frame_height

        mx = int(round(frame_width * margin_x))
        my = int(round(frame_height * margin_y))
        self.rect = Rectangle(mx, my, frame_width - 2 * mx, frame_height - 2 * my)

    @property
    def area(self) -> int:
        return self.rect.area

    def contains(self, rect: Rectangle) -> bool:
        return self.rect.contains(rect)

    def __repr__(self):
        return f"CaptureZone({self.rect.as_tuple()} in {self.frame_width}x{self.frame_height})"
