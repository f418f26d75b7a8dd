"""
Unit tests for the viewport state and its commands.
"""

import pytest

from pdf_term.config import MAX_ZOOM, MIN_ZOOM
from pdf_term.models import ColorTransform, FitMode, ReadingDirection
from pdf_term.viewport import (
    GotoPage,
    Pan,
    Scroll,
    ScrollScreen,
    SetFitMode,
    SetMaxAcross,
    SetReadingDirection,
    ToggleInvert,
    Viewport,
    ViewportState,
    ZoomIn,
    ZoomOut,
    ZoomReset,
)


@pytest.fixture
def viewport():
    return Viewport(page_count=10)


class TestScrolling:
    """Tests for page navigation commands."""

    def test_scroll_when_next_page_then_moves_forward(self, viewport):
        """Scroll(1) should advance one page and report a change."""
        assert viewport.apply(Scroll(1)) is True
        assert viewport.state.page == 1

    def test_scroll_when_at_last_page_then_unchanged(self, viewport):
        """Scrolling past the end should clamp and report no change."""
        viewport.apply(GotoPage(9))
        assert viewport.apply(Scroll(1)) is False
        assert viewport.state.page == 9

    def test_scroll_when_right_to_left_then_direction_reversed(self):
        """In right-to-left mode the next page is to the left."""
        viewport = Viewport(ViewportState(page=5, direction=ReadingDirection.RIGHT_TO_LEFT), page_count=10)
        viewport.apply(Scroll(1))
        assert viewport.state.page == 4

    def test_scroll_screen_when_right_to_left_then_direction_reversed(self):
        """A screen forward moves the same way as a page forward in right-to-left mode."""
        viewport = Viewport(ViewportState(page=5, direction=ReadingDirection.RIGHT_TO_LEFT), page_count=10)
        viewport.clamp_pan(0, 0, pages_shown=2)
        viewport.apply(ScrollScreen(1))
        assert viewport.state.page == 3
        viewport.apply(ScrollScreen(-1))
        assert viewport.state.page == 5

    def test_scroll_screen_when_several_pages_shown_then_moves_by_that_many(self, viewport):
        """ScrollScreen should move by the number of pages the last layout showed."""
        viewport.clamp_pan(0, 0, pages_shown=3)
        viewport.apply(ScrollScreen(1))
        assert viewport.state.page == 3
        viewport.apply(ScrollScreen(-1))
        assert viewport.state.page == 0

    def test_goto_when_out_of_range_then_clamped(self, viewport):
        """GotoPage should clamp to the document."""
        viewport.apply(GotoPage(999))
        assert viewport.state.page == 9
        viewport.apply(GotoPage(-5))
        assert viewport.state.page == 0

    def test_scroll_when_panned_down_then_vertical_pan_reset(self, viewport):
        """Changing page should start at the top of the new page."""
        viewport.clamp_pan(0, 10)
        viewport.apply(Pan(0, 5))
        assert viewport.state.pan_y == 5
        viewport.apply(Scroll(1))
        assert viewport.state.pan_y == 0

    def test_set_page_count_when_document_shrinks_then_page_clamped(self, viewport):
        """A reload with fewer pages should keep the page inside the document."""
        viewport.apply(GotoPage(8))
        assert viewport.set_page_count(4) is True
        assert viewport.state.page == 3

    def test_scroll_when_empty_document_then_stays_at_zero(self):
        """An empty document should never produce a negative page."""
        viewport = Viewport(page_count=0)
        viewport.apply(Scroll(1))
        assert viewport.state.page == 0


class TestZoomAndPan:
    """Tests for zoom and pan commands."""

    def test_zoom_in_when_default_then_scaled_by_step(self, viewport):
        """ZoomIn should multiply the zoom factor by the zoom step."""
        viewport.apply(ZoomIn())
        assert viewport.state.zoom == pytest.approx(1.2)

    def test_zoom_in_when_at_maximum_then_clamped(self, viewport):
        """Zoom should never exceed the maximum."""
        for _ in range(50):
            viewport.apply(ZoomIn())
        assert viewport.state.zoom == pytest.approx(MAX_ZOOM)
        assert viewport.apply(ZoomIn()) is False

    def test_zoom_out_when_at_minimum_then_clamped(self, viewport):
        """Zoom should never fall below the minimum."""
        for _ in range(50):
            viewport.apply(ZoomOut())
        assert viewport.state.zoom == pytest.approx(MIN_ZOOM)

    def test_zoom_reset_when_zoomed_and_panned_then_back_to_defaults(self, viewport):
        """ZoomReset should restore 100% and remove the pan offset."""
        viewport.clamp_pan(20, 20)
        viewport.apply(ZoomIn())
        viewport.apply(Pan(5, 5))
        viewport.apply(ZoomReset())
        assert viewport.state.zoom == 1.0
        assert (viewport.state.pan_x, viewport.state.pan_y) == (0, 0)

    def test_zoom_when_panned_then_pan_scaled(self, viewport):
        """Zooming should keep the same relative position."""
        viewport.clamp_pan(100, 100)
        viewport.apply(Pan(10, 20))
        viewport.apply(ZoomIn())
        assert (viewport.state.pan_x, viewport.state.pan_y) == (12, 24)

    def test_pan_when_beyond_bounds_then_clamped(self, viewport):
        """Pan should stay within the bounds reported by the layout."""
        viewport.clamp_pan(10, 5)
        viewport.apply(Pan(100, 100))
        assert (viewport.state.pan_x, viewport.state.pan_y) == (10, 5)
        viewport.apply(Pan(-100, -100))
        assert (viewport.state.pan_x, viewport.state.pan_y) == (0, 0)

    def test_pan_when_content_fits_then_no_change(self, viewport):
        """Nothing to pan when the content fits the terminal."""
        assert viewport.apply(Pan(3, 3)) is False

    def test_clamp_pan_when_bounds_shrink_then_pan_pulled_back(self, viewport):
        """A smaller layout should pull an existing pan offset back in."""
        viewport.clamp_pan(50, 50)
        viewport.apply(Pan(40, 40))
        assert viewport.clamp_pan(10, 0) is True
        assert (viewport.state.pan_x, viewport.state.pan_y) == (10, 0)


class TestDisplayOptions:
    """Tests for fit mode, reading direction, page count and color commands."""

    def test_set_fit_mode_when_same_mode_then_no_change(self, viewport):
        """Selecting the current fit mode should be a no-op."""
        assert viewport.apply(SetFitMode(FitMode.FIT_PAGE)) is False

    def test_set_fit_mode_when_different_then_pan_reset(self, viewport):
        """A new fit mode should change the state and reset the pan."""
        viewport.clamp_pan(10, 10)
        viewport.apply(Pan(5, 5))
        assert viewport.apply(SetFitMode(FitMode.FIT_WIDTH)) is True
        assert viewport.state.fit_mode is FitMode.FIT_WIDTH
        assert (viewport.state.pan_x, viewport.state.pan_y) == (0, 0)

    def test_set_reading_direction_when_changed_then_stored(self, viewport):
        """The reading direction should be switchable."""
        viewport.apply(SetReadingDirection(ReadingDirection.RIGHT_TO_LEFT))
        assert viewport.state.direction is ReadingDirection.RIGHT_TO_LEFT

    def test_set_max_across_when_negative_then_unlimited(self, viewport):
        """A negative limit should be treated as no limit."""
        viewport.apply(SetMaxAcross(-3))
        assert viewport.state.max_across == 0

    def test_toggle_invert_when_applied_twice_then_normal_again(self, viewport):
        """Inverting twice should return to the identity transform."""
        viewport.apply(ToggleInvert())
        assert viewport.state.color.inverted is True
        viewport.apply(ToggleInvert())
        assert viewport.state.color == ColorTransform.NORMAL

    def test_apply_when_unknown_command_then_raises_type_error(self, viewport):
        """Unknown commands should be rejected."""
        with pytest.raises(TypeError, match="Unknown viewport command"):
            viewport.apply("zoom")
