"""
Tests for Layer 2 check detection.
"""
import numpy as np
import pytest

from conftest import draw_check
from layer2_readjustment import (
    CaptureZone,
    ContourScanner,
    DocumentProcessor,
    EdgeExtractor,
    Rectangle,
    RectangleSelector,
)


def quad(x, y, w, h):
    """Axis-aligned 4-point polygon in OpenCV contour layout."""
    return np.array([[[x, y]], [[x + w - 1, y]], [[x + w - 1, y + h - 1]], [[x, y + h - 1]]], dtype=np.int32)


class TestRectangle:
    """Test rectangle geometry."""

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            Rectangle(0, 0, 0, 10)
        with pytest.raises(ValueError):
            Rectangle(0, 0, 10, -1)

    def test_from_polygon_is_bounding_box(self):
        rect = Rectangle.from_polygon(quad(50, 100, 500, 150))
        assert rect.as_tuple() == (50, 100, 500, 150)
        assert rect.area == 75000

    def test_contains(self):
        outer = Rectangle(10, 96, 620, 288)
        assert outer.contains(Rectangle(50, 100, 500, 150))
        assert outer.contains(outer)
        assert not outer.contains(Rectangle(5, 100, 500, 150))
        assert not outer.contains(Rectangle(50, 100, 600, 150))

    def test_clipped_to_frame(self):
        rect = Rectangle(-10, 470, 700, 20).clipped_to(640, 480)
        assert rect.within(640, 480)
        assert rect.as_tuple() == (0, 470, 640, 10)


class TestCaptureZone:
    """Test capture zone computation."""

    def test_default_margins_on_vga(self):
        zone = CaptureZone(640, 480)
        assert zone.rect.as_tuple() == (10, 96, 620, 288)
        assert zone.area == 620 * 288

    def test_rejects_margins_that_empty_the_zone(self):
        with pytest.raises(ValueError):
            CaptureZone(640, 480, margin_x=0.5)


class TestEdgeExtractor:
    """Test edge map generation."""

    @pytest.mark.parametrize("channels", [1, 3, 4])
    def test_output_is_single_channel_with_frame_size(self, channels):
        frame = draw_check(channels=channels)
        edges = EdgeExtractor().extract(frame)
        assert edges.shape == (480, 640)
        assert edges.dtype == np.uint8
        assert set(np.unique(edges)) <= {0, 255}

    def test_edges_found_on_check_border(self, check_frame):
        edges = EdgeExtractor().extract(check_frame)
        assert edges[100, 300] == 255 or edges[99, 300] == 255
        assert edges[175, 300] == 0

    def test_blank_frame_has_no_edges(self, empty_frame):
        assert not EdgeExtractor().extract(empty_frame).any()

    def test_even_kernel_rejected(self):
        with pytest.raises(ValueError):
            EdgeExtractor(blur_kernel=4)


class TestContourScanner:
    """Test contour polygon approximation."""

    def test_rectangle_reduces_to_four_vertices(self, check_frame):
        edges = EdgeExtractor().extract(check_frame)
        polygons = ContourScanner().scan(edges)
        assert len(polygons) == 1
        assert len(polygons[0]) == 4

    def test_only_outer_contours(self, check_frame):
        # A dark hole inside the check must not add a contour
        frame = check_frame.copy()
        frame[150:200, 200:300] = 0
        edges = EdgeExtractor().extract(frame)
        assert len(ContourScanner().scan(edges)) == 1


class TestRectangleSelector:
    """Test per-frame rectangle selection."""

    def test_selects_largest_valid(self):
        selector = RectangleSelector()
        polygons = [quad(20, 20, 400, 150), quad(50, 200, 500, 150)]
        candidate = selector.select(polygons, 640, 480)
        assert candidate.rect.as_tuple() == (50, 200, 500, 150)

    def test_rejects_non_quadrilaterals(self):
        triangle = np.array([[[10, 10]], [[600, 10]], [[300, 300]]], dtype=np.int32)
        assert RectangleSelector().select([triangle], 640, 480) is None

    def test_rejects_small_area(self):
        # 300x100 = 30000 < 15% of 307200
        assert RectangleSelector().select([quad(10, 10, 300, 100)], 640, 480) is None

    def test_narrow_rectangle_never_selected_even_if_largest(self):
        square = quad(20, 20, 300, 230)       # 69000, aspect 1.3
        check = quad(15, 300, 610, 100)       # 61000, aspect 6.1
        candidate = RectangleSelector().select([square, check], 640, 480)
        assert candidate.rect.as_tuple() == (15, 300, 610, 100)

    def test_exact_two_to_one_accepted(self):
        candidate = RectangleSelector().select([quad(0, 0, 400, 200)], 640, 480)
        assert candidate is not None

    def test_candidate_inside_frame_bounds(self):
        candidate = RectangleSelector().select([quad(0, 0, 640, 300)], 640, 480)
        assert candidate.rect.within(640, 480)
        assert candidate.area >= 0.15 * 640 * 480
        assert candidate.rect.width >= 2 * candidate.rect.height


class TestDocumentProcessor:
    """Test full frame detection."""

    def test_detects_check_region(self, check_frame):
        candidate = DocumentProcessor().detect(check_frame)
        assert candidate is not None
        x, y, w, h = candidate.rect.as_tuple()
        assert abs(x - 50) <= 2 and abs(y - 100) <= 2
        assert abs(w - 500) <= 3 and abs(h - 150) <= 3

    def test_square_document_ignored(self):
        frame = draw_check(170, 120, 300, 240)
        assert DocumentProcessor().detect(frame) is None

    def test_nothing_in_empty_frame(self, empty_frame):
        assert DocumentProcessor().detect(empty_frame) is None

    def test_overlay_keeps_frame_untouched(self, check_frame):
        processor = DocumentProcessor()
        before = check_frame.copy()
        candidate = processor.detect(check_frame)
        overlay = processor.draw_overlay(check_frame, candidate, CaptureZone(640, 480), 0.5)
        assert overlay.shape == (480, 640, 3)
        assert np.array_equal(check_frame, before)
