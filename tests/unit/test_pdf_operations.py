"""Unit tests for toolhub.operations.pdf."""

import fitz  # PyMuPDF
import pytest
from docx import Document

from toolhub.core.errors import InputRejected, InvalidParameters
from toolhub.operations import build_registry
from toolhub.operations.pdf import (
    CompressPdfParams,
    ImagesToPdfParams,
    NoPdfParams,
    PageNumberParams,
    PdfToImageParams,
    PdfToPngParams,
    ProtectParams,
    RotatePdfParams,
    SplitParams,
    UnlockParams,
    WatermarkParams,
    compress_pdf,
    images_to_pdf,
    merge_pdfs,
    number_pages,
    parse_ranges,
    pdf_to_images,
    pdf_to_png,
    pdf_to_word,
    protect_pdf,
    rotate_pdf,
    selected_pages,
    split_pdf,
    unlock_pdf,
    watermark_pdf,
    word_to_pdf,
    write_text_pdf,
)
from toolhub.pipeline.media import MediaType


def _page_count(path):
    with fitz.open(str(path)) as doc:
        return doc.page_count


@pytest.fixture
def pdf_asset(asset_factory, pdf_bytes):
    def build(name="report.pdf", pages=3):
        return asset_factory(name, pdf_bytes(pages), MediaType.PDF)
    return build


class TestParseRanges:
    """Tests for page-range parsing."""

    def test_basic(self):
        assert parse_ranges("1-3,5", 10) == [(1, 3), (5, 5)]

    def test_clamped_to_document(self):
        assert parse_ranges("2-50", 4) == [(2, 4)]
        assert parse_ranges("7-9", 4) == []

    def test_params_validate_syntax(self, settings):
        spec = build_registry(settings).lookup("pdf.split")
        with pytest.raises(InvalidParameters, match="Ranges must look like"):
            spec.parse_params({"splitType": "ranges", "ranges": "1-x"})
        with pytest.raises(InvalidParameters, match="ends before it starts"):
            spec.parse_params({"splitType": "ranges", "ranges": "5-2"})
        with pytest.raises(InvalidParameters, match="Page ranges are required"):
            spec.parse_params({"splitType": "ranges"})


class TestMerge:
    def test_page_counts_add_up(self, pdf_asset, work_dir):
        inputs = [pdf_asset("a.pdf", 1), pdf_asset("b.pdf", 2), pdf_asset("c.pdf", 4)]
        result = merge_pdfs(inputs, NoPdfParams(), work_dir)
        assert result.payload == {"totalPages": 7, "filesCount": 3}
        assert _page_count(result.outputs[0].local_path) == 7
        assert result.outputs[0].suggested_name == "merged-document.pdf"

    def test_corrupt_input_rejected(self, asset_factory, pdf_asset, work_dir):
        broken = asset_factory("broken.pdf", b"%PDF-1.4 garbage that is not a pdf", MediaType.PDF)
        with pytest.raises(InputRejected, match="broken.pdf"):
            merge_pdfs([pdf_asset(), broken], NoPdfParams(), work_dir)


class TestSplit:
    def test_every_page(self, pdf_asset, work_dir):
        result = split_pdf([pdf_asset("report.pdf", 3)], SplitParams(), work_dir)
        names = [o.suggested_name for o in result.outputs]
        assert names == ["report-page-1.pdf", "report-page-2.pdf", "report-page-3.pdf"]
        assert result.archive_name == "report-split.zip"

    def test_ranges(self, pdf_asset, work_dir):
        params = SplitParams(split_type="ranges", ranges="1-2,4")
        result = split_pdf([pdf_asset("report.pdf", 5)], params, work_dir)
        assert [o.suggested_name for o in result.outputs] == ["report-pages-1-2.pdf", "report-page-4.pdf"]
        assert _page_count(result.outputs[0].local_path) == 2

    def test_ranges_outside_document(self, pdf_asset, work_dir):
        params = SplitParams(split_type="ranges", ranges="8-9")
        with pytest.raises(InputRejected, match="No requested range"):
            split_pdf([pdf_asset("report.pdf", 2)], params, work_dir)


class TestCompressAndProtect:
    def test_compress(self, pdf_asset, work_dir):
        result = compress_pdf([pdf_asset()], CompressPdfParams(compression_level="high"), work_dir)
        assert result.outputs[0].suggested_name == "report-compressed.pdf"
        assert result.payload["compressionLevel"] == "high"
        assert _page_count(result.outputs[0].local_path) == 3

    def test_protect_requires_password(self):
        with pytest.raises(ValueError):
            ProtectParams()

    def test_protect_encrypts(self, pdf_asset, work_dir):
        params = ProtectParams(user_password="s3cret", permissions="print,copy")
        result = protect_pdf([pdf_asset()], params, work_dir)
        with fitz.open(str(result.outputs[0].local_path)) as doc:
            assert doc.needs_pass
            assert doc.authenticate("s3cret")
        assert result.payload["permissions"] == ["copy", "print"]
        assert result.payload["requiresPasswordToOpen"] is True

    def test_protected_input_rejected(self, pdf_asset, asset_factory, work_dir):
        protected = protect_pdf([pdf_asset()], ProtectParams(user_password="pw"), work_dir)
        locked = asset_factory("locked.pdf", protected.outputs[0].local_path.read_bytes(), MediaType.PDF)
        with pytest.raises(InputRejected, match="password-protected"):
            compress_pdf([locked], CompressPdfParams(), work_dir)


class TestRotateAndUnlock:
    def test_rotate_every_page(self, pdf_asset, work_dir):
        result = rotate_pdf([pdf_asset()], RotatePdfParams(angle=90), work_dir)
        assert result.outputs[0].suggested_name == "report-rotated.pdf"
        assert result.payload == {"rotatedPages": 3, "totalPages": 3, "angle": 90}
        with fitz.open(str(result.outputs[0].local_path)) as doc:
            assert [page.rotation for page in doc] == [90, 90, 90]

    def test_rotate_selected_pages(self, pdf_asset, work_dir):
        result = rotate_pdf([pdf_asset(pages=4)], RotatePdfParams(angle=-90, pages="2,4"), work_dir)
        with fitz.open(str(result.outputs[0].local_path)) as doc:
            assert [page.rotation for page in doc] == [0, 270, 0, 270]

    def test_rotate_pages_outside_document(self, pdf_asset, work_dir):
        with pytest.raises(InputRejected, match="No requested page"):
            rotate_pdf([pdf_asset(pages=2)], RotatePdfParams(pages="5-6"), work_dir)

    def test_rotate_params(self, settings):
        spec = build_registry(settings).lookup("pdf.rotate")
        assert spec.parse_params({"angle": "-90"}).angle == 270
        with pytest.raises(InvalidParameters, match="multiple of 90"):
            spec.parse_params({"angle": "45"})

    def test_selected_pages(self):
        assert selected_pages(None, 3) == [0, 1, 2]
        assert selected_pages("2-3,2", 5) == [1, 2]

    def test_unlock(self, pdf_asset, asset_factory, work_dir):
        protected = protect_pdf([pdf_asset()], ProtectParams(user_password="pw"), work_dir)
        locked = asset_factory("locked.pdf", protected.outputs[0].local_path.read_bytes(), MediaType.PDF)
        result = unlock_pdf([locked], UnlockParams(password="pw"), work_dir)
        assert result.outputs[0].suggested_name == "locked-unlocked.pdf"
        assert result.payload == {"pageCount": 3, "wasEncrypted": True}
        with fitz.open(str(result.outputs[0].local_path)) as doc:
            assert not doc.needs_pass
            assert doc.page_count == 3

    def test_unlock_wrong_password(self, pdf_asset, asset_factory, work_dir):
        protected = protect_pdf([pdf_asset()], ProtectParams(user_password="pw"), work_dir)
        locked = asset_factory("locked.pdf", protected.outputs[0].local_path.read_bytes(), MediaType.PDF)
        with pytest.raises(InputRejected, match="Incorrect password for 'locked.pdf'"):
            unlock_pdf([locked], UnlockParams(password="nope"), work_dir)

    def test_unlock_plain_pdf(self, pdf_asset, work_dir):
        result = unlock_pdf([pdf_asset()], UnlockParams(password="anything"), work_dir)
        assert result.payload["wasEncrypted"] is False


class TestStamping:
    def test_watermark(self, pdf_asset, work_dir):
        params = WatermarkParams(text="CONFIDENTIAL", rotation=0, color="red")
        result = watermark_pdf([pdf_asset(pages=2)], params, work_dir)
        assert result.outputs[0].suggested_name == "report-watermarked.pdf"
        assert result.payload == {"pageCount": 2, "watermark": "CONFIDENTIAL"}
        with fitz.open(str(result.outputs[0].local_path)) as doc:
            assert all("CONFIDENTIAL" in page.get_text() for page in doc)

    def test_watermark_params(self, settings):
        spec = build_registry(settings).lookup("pdf.watermark")
        with pytest.raises(InvalidParameters):
            spec.parse_params({})
        with pytest.raises(InvalidParameters):
            spec.parse_params({"text": "DRAFT", "color": "not-a-colour"})
        assert spec.parse_params({"text": "DRAFT", "color": "#ff0000"}).rgb() == (1.0, 0.0, 0.0)

    def test_page_numbers(self, pdf_asset, work_dir):
        params = PageNumberParams(format="No. {n} of {p}", position="top-right")
        result = number_pages([pdf_asset()], params, work_dir)
        assert result.outputs[0].suggested_name == "report-numbered.pdf"
        with fitz.open(str(result.outputs[0].local_path)) as doc:
            assert "No. 2 of 3" in doc[1].get_text()
            assert "No. 3 of 3" in doc[2].get_text()

    def test_page_numbers_start_number(self, pdf_asset, work_dir):
        result = number_pages([pdf_asset(pages=2)], PageNumberParams(start_number=10), work_dir)
        with fitz.open(str(result.outputs[0].local_path)) as doc:
            assert "11" in doc[1].get_text()
        assert result.payload["startNumber"] == 10

    def test_page_number_format_needs_number(self, settings):
        spec = build_registry(settings).lookup("pdf.page-numbers")
        with pytest.raises(InvalidParameters, match=r"must contain \{n\}"):
            spec.parse_params({"format": "Page"})


class TestImageConversion:
    def test_pdf_to_jpg(self, pdf_asset, work_dir):
        result = pdf_to_images([pdf_asset("scan.pdf", 2)], PdfToImageParams(dpi=72), work_dir)
        assert [o.suggested_name for o in result.outputs] == ["scan-page-1.jpg", "scan-page-2.jpg"]
        assert result.outputs[0].local_path.read_bytes()[:3] == b"\xff\xd8\xff"
        assert result.archive_name == "scan-images.zip"

    def test_pdf_to_png(self, pdf_asset, work_dir):
        result = pdf_to_png([pdf_asset("scan.pdf", 2)], PdfToPngParams(dpi=72), work_dir)
        assert [o.suggested_name for o in result.outputs] == ["scan-page-1.png", "scan-page-2.png"]
        assert result.outputs[0].local_path.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"
        assert result.message == "Converted 2 page(s) to PNG"

    def test_jpg_to_pdf(self, asset_factory, image_bytes, work_dir):
        inputs = [
            asset_factory("a.jpg", image_bytes("JPEG"), MediaType.JPEG),
            asset_factory("b.png", image_bytes("PNG", mode="RGBA", color=(0, 0, 255, 128)), MediaType.PNG),
        ]
        result = images_to_pdf(inputs, ImagesToPdfParams(page_size="a4"), work_dir)
        assert result.payload == {"imageCount": 2, "pageCount": 2}
        assert _page_count(result.outputs[0].local_path) == 2


class TestWordConversion:
    def test_pdf_to_word(self, pdf_asset, work_dir):
        result = pdf_to_word([pdf_asset("notes.pdf", 2)], NoPdfParams(), work_dir)
        assert result.outputs[0].suggested_name == "notes.docx"
        text = "\n".join(p.text for p in Document(str(result.outputs[0].local_path)).paragraphs)
        assert "Page 1" in text
        assert "Page 2" in text

    def test_word_to_pdf(self, asset_factory, work_dir, tmp_path):
        source = tmp_path / "letter.docx"
        document = Document()
        document.add_paragraph("Dear reader,")
        document.add_paragraph("word " * 400)
        document.save(str(source))
        asset = asset_factory("letter.docx", source.read_bytes(), MediaType.DOCX)

        result = word_to_pdf([asset], NoPdfParams(), work_dir)
        assert result.outputs[0].suggested_name == "letter.pdf"
        with fitz.open(str(result.outputs[0].local_path)) as doc:
            assert "Dear reader," in doc[0].get_text()

    def test_word_to_pdf_rejects_non_docx(self, asset_factory, work_dir):
        asset = asset_factory("fake.docx", b"PK\x03\x04 not a zip", MediaType.DOCX)
        with pytest.raises(InputRejected, match="not a readable Word document"):
            word_to_pdf([asset], NoPdfParams(), work_dir)


class TestTextLayout:
    def test_long_text_paginates(self, work_dir):
        output = work_dir / "long.pdf"
        pages = write_text_pdf(["line"] * 200, output, font_size=12, line_spacing=1.5, margin=72)
        assert pages > 1
        assert _page_count(output) == pages
