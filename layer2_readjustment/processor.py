"""
Layer 2 – Image Readjustment
Responsibility: Check detection in live frames (edges, contours, rectangle selection)
Output: At most one CandidateRectangle per frame
"""
import cv2
import numpy as np
import logging
from typing import List, Optional, Sequence

from .geometry import CandidateRectangle, CaptureZone, Rectangle

logger = logging.getLogger(__name__)


class EdgeExtractor:
    """Grayscale, blur and Canny edge detection with static thresholds"""

    def __init__(self, blur_kernel=5, canny_low=50, canny_high=150):
        """
        Initialize edge extractor

        Args:
            blur_kernel: Gaussian kernel size (odd, default: 5)
            canny_low: Canny hysteresis low threshold (default: 50)
            canny_high: Canny hysteresis high threshold (default: 150)
        """
        if blur_kernel % 2 == 0 or blur_kernel < 1:
            raise ValueError(f"blur_kernel must be a positive odd number, got {blur_kernel}")

        self.blur_kernel = blur_kernel
        self.canny_low = canny_low
        self.canny_high = canny_high

    @staticmethod
    def to_gray(frame):
        """
        Convert any supported frame layout to a single channel

        Args:
            frame: numpy.ndarray (gray, BGR or BGRA)

        Returns:
            numpy.ndarray: Single-channel image
        """
        if frame.ndim == 2:
            return frame.copy()
        channels = frame.shape[2]
        if channels == 1:
            return frame[:, :, 0].copy()
        if channels == 3:
            return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        if channels == 4:
            return cv2.cvtColor(frame, cv2.COLOR_BGRA2GRAY)
        raise ValueError(f"Unsupported channel count: {channels}")

    def extract(self, frame):
        """
        Produce a binary edge map with the frame's dimensions

        Args:
            frame: Input image

        Returns:
            numpy.ndarray: uint8 edge map (0 or 255)
        """
        gray = self.to_gray(frame)
        blurred = cv2.GaussianBlur(gray, (self.blur_kernel, self.blur_kernel), 0)
        return cv2.Canny(blurred, self.canny_low, self.canny_high)


class ContourScanner:
    """Finds outer contours and reduces each to a polygon"""

    def __init__(self, epsilon_ratio=0.02):
        """
        Args:
            epsilon_ratio: approxPolyDP tolerance as a fraction of arc length
        """
        self.epsilon_ratio = epsilon_ratio

    def scan(self, edges) -> List[np.ndarray]:
        """
        Args:
            edges: Binary edge map

        Returns:
            list: Polygon approximations, one per external contour
        """
        contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        polygons = []
        for contour in contours:
            peri = cv2.arcLength(contour, True)
            polygons.append(cv2.approxPolyDP(contour, self.epsilon_ratio * peri, True))
        return polygons


class RectangleSelector:
    """Greedy per-frame choice of the largest check-shaped rectangle"""

    def __init__(self, min_area_ratio=0.15, min_aspect_ratio=2.0):
        """
        Args:
            min_area_ratio: Minimum bounding-rect area as a fraction of the frame (default: 15%)
            min_aspect_ratio: Minimum width / height (default: 2.0, checks are wide)
        """
        self.min_area_ratio = min_area_ratio
        self.min_aspect_ratio = min_aspect_ratio

    def select(self, polygons: Sequence[np.ndarray], frame_width: int,
               frame_height: int) -> Optional[CandidateRectangle]:
        """
        Pick the largest valid rectangle among the polygons

        Args:
            polygons: Output of ContourScanner.scan
            frame_width: Frame width in pixels
            frame_height: Frame height in pixels

        Returns:
            CandidateRectangle or None
        """
        min_area = frame_width * frame_height * self.min_area_ratio

        best = None
        for polygon in polygons:
            if len(polygon) != 4:
                continue

            rect = Rectangle.from_polygon(polygon)
            if rect.area < min_area:
                continue
            if rect.width < self.min_aspect_ratio * rect.height:
                continue
            if not rect.within(frame_width, frame_height):
                rect = rect.clipped_to(frame_width, frame_height)

            if best is None or rect.area > best.area:
                best = CandidateRectangle(rect, float(cv2.contourArea(polygon)))

        return best


class DocumentProcessor:
    """
    Check detection for live video frames

    Chains EdgeExtractor, ContourScanner and RectangleSelector.
    """

    def __init__(self,
                 blur_kernel=5,
                 canny_low=50,
                 canny_high=150,
                 epsilon_ratio=0.02,
                 min_area_ratio=0.15,
                 min_aspect_ratio=2.0):
        self.edges = EdgeExtractor(blur_kernel, canny_low, canny_high)
        self.contours = ContourScanner(epsilon_ratio)
        self.selector = RectangleSelector(min_area_ratio, min_aspect_ratio)

        logger.info("DocumentProcessor initialized")
        logger.debug(f"  Blur kernel: {blur_kernel}x{blur_kernel}")
        logger.debug(f"  Canny thresholds: {canny_low}/{canny_high}")
        logger.debug(f"  Min area ratio: {min_area_ratio}")
        logger.debug(f"  Min aspect ratio: {min_aspect_ratio}")

    def detect(self, frame) -> Optional[CandidateRectangle]:
        """
        Find the best check candidate in one frame

        Args:
            frame: Raw frame from Layer 1

        Returns:
            CandidateRectangle or None if nothing qualifies
        """
        height, width = frame.shape[:2]
        edges = self.edges.extract(frame)
        polygons = self.contours.scan(edges)
        candidate = self.selector.select(polygons, width, height)

        if candidate is not None:
            logger.debug(f"Candidate {candidate.rect.as_tuple()} "
                         f"({(candidate.area / (width * height)) * 100:.1f}% of frame)")
        return candidate

    def draw_overlay(self, frame, candidate=None, zone: Optional[CaptureZone] = None,
                     progress=0.0):
        """
        Draw the capture zone, current candidate and stability progress

        Args:
            frame: Frame to draw on (copied, not modified)
            candidate: CandidateRectangle from detect()
            zone: Session capture zone
            progress: Stability progress in [0, 1]

        Returns:
            numpy.ndarray: BGR overlay frame
        """
        if frame.ndim == 2:
            overlay = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
        elif frame.shape[2] == 4:
            overlay = cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
        else:
            overlay = frame.copy()

        if zone is not None:
            z = zone.rect
            cv2.rectangle(overlay, (z.x, z.y), (z.right - 1, z.bottom - 1), (255, 255, 255), 1)

        if candidate is not None:
            r = candidate.rect
            cv2.rectangle(overlay, (r.x, r.y), (r.right - 1, r.bottom - 1), (0, 0, 255), 2)

        if progress > 0:
            h, w = overlay.shape[:2]
            bar_w, bar_h = 200, 8
            bar_x = (w - bar_w) // 2
            bar_y = h - 20
            cv2.rectangle(overlay, (bar_x, bar_y), (bar_x + bar_w, bar_y + bar_h), (100, 100, 100), -1)
            cv2.rectangle(overlay, (bar_x, bar_y),
                          (bar_x + int(bar_w * min(progress, 1.0)), bar_y + bar_h), (0, 255, 0), -1)

        return overlay
