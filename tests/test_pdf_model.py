"""
Tests for the PyMuPDF document engine, using small generated PDFs.
"""

import fitz
import pytest
from PIL import Image

from pdf_term.errors import EngineFailure, FatalOpenError, TransientIOError
from pdf_term.models import ColorTransform, ReadingDirection, Rect, RenderKey
from pdf_term.pdf_model import PDFModel, apply_color_transform


@pytest.fixture
def model(sample_pdf):
    doc = PDFModel.open(str(sample_pdf))
    yield doc
    doc.close()


class TestOpen:
    """Tests for PDFModel.open()."""

    def test_open_when_valid_pdf_then_pages_described(self, model):
        """Every page should get a descriptor with its size in points."""
        assert model.page_count == 3
        assert len(model.pages) == 3
        first = model.pages[0]
        assert (first.index, first.width, first.height) == (0, 595, 842)
        assert first.direction_hint is ReadingDirection.LEFT_TO_RIGHT

    def test_open_when_version_given_then_stamped_on_pages(self, sample_pdf):
        """The document version is carried by each page descriptor."""
        doc = PDFModel.open(str(sample_pdf), version=4)
        try:
            assert {page.version for page in doc.pages} == {4}
        finally:
            doc.close()

    def test_open_when_missing_then_transient_error(self, tmp_path):
        """A missing file may be mid-save, so it is transient."""
        with pytest.raises(TransientIOError):
            PDFModel.open(str(tmp_path / "missing.pdf"))

    def test_open_when_empty_then_transient_error(self, tmp_path):
        """An empty file is treated as a save in progress."""
        path = tmp_path / "empty.pdf"
        path.write_bytes(b"")
        with pytest.raises(TransientIOError, match="empty"):
            PDFModel.open(str(path))

    def test_open_when_not_a_pdf_then_fatal_error(self, tmp_path):
        """Data MuPDF cannot open is fatal."""
        path = tmp_path / "junk.pdf"
        path.write_bytes(b"this is not a pdf at all")
        with pytest.raises(FatalOpenError):
            PDFModel.open(str(path))

    def test_open_when_right_to_left_preference_then_hint_set(self, tmp_path):
        """The ViewerPreferences /Direction entry sets the reading direction hint."""
        path = tmp_path / "rtl.pdf"
        doc = fitz.open()
        doc.new_page()
        doc.xref_set_key(doc.pdf_catalog(), "ViewerPreferences", "<</Direction/R2L>>")
        doc.save(str(path))
        doc.close()

        model = PDFModel.open(str(path))
        try:
            assert model.pages[0].direction_hint is ReadingDirection.RIGHT_TO_LEFT
        finally:
            model.close()


class TestRasterize:
    """Tests for PDFModel.rasterize()."""

    def test_rasterize_when_whole_page_then_exact_size(self, model):
        """The bitmap should have exactly the requested pixel size."""
        image = model.rasterize(RenderKey(0, 119, 168))
        assert image.size == (119, 168)
        assert image.mode == "RGB"

    def test_rasterize_when_cropped_then_exact_size(self, model):
        """A cropped region is scaled into the requested size."""
        image = model.rasterize(RenderKey(0, 200, 100, crop=Rect(0, 0, 297.5, 148.75)))
        assert image.size == (200, 100)

    def test_rasterize_when_inverted_then_paper_is_black(self, model):
        """Inversion turns the white page black."""
        normal = model.rasterize(RenderKey(1, 60, 80))
        inverted = model.rasterize(RenderKey(1, 60, 80, color=ColorTransform(inverted=True)))
        assert normal.getpixel((5, 5)) == (255, 255, 255)
        assert inverted.getpixel((5, 5)) == (0, 0, 0)

    def test_rasterize_when_page_out_of_range_then_engine_failure(self, model):
        """Asking for a page that does not exist fails for that page only."""
        with pytest.raises(EngineFailure) as info:
            model.rasterize(RenderKey(7, 10, 10))
        assert info.value.page == 7

    def test_rasterize_when_closed_then_engine_failure(self, sample_pdf):
        """A closed document cannot render."""
        doc = PDFModel.open(str(sample_pdf))
        doc.close()
        with pytest.raises(EngineFailure, match="closed"):
            doc.rasterize(RenderKey(0, 10, 10))


class TestTextSearch:
    """Tests for PDFModel.extract_text_matches()."""

    def test_extract_text_matches_when_present_then_rect_on_page(self, model):
        """Found text should come back as page-space rectangles."""
        (rect,) = model.extract_text_matches(0, "Hello")
        assert 0 <= rect.x0 < rect.x1 <= 595
        assert 0 <= rect.y0 < rect.y1 <= 842

    def test_extract_text_matches_when_absent_then_empty(self, model):
        """A page without the text has no matches."""
        assert model.extract_text_matches(1, "Hello") == []

    def test_extract_text_matches_when_several_pages_then_per_page(self, model):
        """Each page is searched on its own."""
        assert len(model.extract_text_matches(0, "world")) == 1
        assert len(model.extract_text_matches(2, "world")) == 1


class TestColorTransform:
    """Tests for apply_color_transform()."""

    def test_apply_when_identity_then_same_image(self):
        """The identity transform returns the input unchanged."""
        image = Image.new("RGB", (4, 4), "white")
        assert apply_color_transform(image, ColorTransform.NORMAL) is image

    def test_apply_when_custom_colors_then_paper_uses_background(self):
        """Custom colors map white paper to the background color."""
        image = Image.new("RGB", (4, 4), "white")
        result = apply_color_transform(image, ColorTransform(fg=(0, 0, 0), bg=(40, 40, 40)))
        assert result.getpixel((0, 0)) == (40, 40, 40)
