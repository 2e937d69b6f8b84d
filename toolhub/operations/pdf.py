"""
PDF tools backed by PyMuPDF.

Merge, split, compress, rotate, protect and unlock, watermarks and page
numbers, PDF ↔ images and PDF ↔ Word. The text layout helper used by
Word → PDF is shared with the text-to-PDF tool.
"""

import io
import re
import zipfile
from pathlib import Path
from typing import Iterable, List, Literal, Optional, Tuple

import fitz  # PyMuPDF
from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from PIL import Image, ImageColor
from pydantic import Field, field_validator, model_validator

from toolhub.core.errors import InputRejected
from toolhub.operations.image import flatten_alpha, has_alpha, open_image
from toolhub.pipeline.media import RASTER_IMAGES, MediaType
from toolhub.pipeline.models import Arity, OperationResult, OutputAsset, UploadedAsset
from toolhub.pipeline.registry import OperationSpec, ToolParams
from toolhub.pipeline.settings import PipelineSettings
from toolhub.pipeline.store import sanitize_filename

FONTS = {
    "helvetica": "helv",
    "times": "tiro",
    "courier": "cour",
}

PERMISSIONS = {
    "print": fitz.PDF_PERM_PRINT,
    "modify": fitz.PDF_PERM_MODIFY,
    "copy": fitz.PDF_PERM_COPY,
    "annotate": fitz.PDF_PERM_ANNOTATE,
    "form": fitz.PDF_PERM_FORM,
    "accessibility": fitz.PDF_PERM_ACCESSIBILITY,
    "assemble": fitz.PDF_PERM_ASSEMBLE,
}

# compressionLevel -> Document.save() options
COMPRESSION_LEVELS = {
    "low": {"garbage": 1, "deflate": True},
    "medium": {"garbage": 3, "deflate": True, "clean": True},
    "high": {"garbage": 4, "deflate": True, "deflate_images": True, "deflate_fonts": True, "clean": True},
}

_RANGES = re.compile(r"^\s*\d+\s*(-\s*\d+\s*)?(,\s*\d+\s*(-\s*\d+\s*)?)*$")


# =============================================================================
# Helpers
# =============================================================================

def open_pdf(asset: UploadedAsset, password: Optional[str] = None) -> fitz.Document:
    """Open an uploaded PDF, rejecting unreadable and password-protected files.

    With ``password`` an encrypted file is opened if the password matches
    its user or owner password.
    """
    try:
        doc = fitz.open(str(asset.local_path), filetype="pdf")
    except RuntimeError as e:
        raise InputRejected(f"'{asset.original_name}' is not a readable PDF") from e
    if doc.needs_pass and not (password and doc.authenticate(password)):
        doc.close()
        if password:
            raise InputRejected(f"Incorrect password for '{asset.original_name}'")
        raise InputRejected(f"'{asset.original_name}' is password-protected")
    if doc.page_count == 0:
        doc.close()
        raise InputRejected(f"'{asset.original_name}' has no pages")
    return doc


def parse_ranges(value: str, total_pages: int) -> List[Tuple[int, int]]:
    """Parse "1-3,5" into 1-based inclusive ranges, clamped to the document.

    Ranges lying wholly outside the document are dropped.
    """
    ranges = []
    for part in value.split(","):
        start, _, end = part.strip().partition("-")
        first = int(start)
        last = int(end) if end.strip() else first
        first, last = max(1, first), min(total_pages, last)
        if first <= last:
            ranges.append((first, last))
    return ranges


def selected_pages(ranges: Optional[str], total_pages: int) -> List[int]:
    """0-based page indexes selected by a "1-3,5" string; every page when empty."""
    if not ranges:
        return list(range(total_pages))
    selected = []
    for first, last in parse_ranges(ranges, total_pages):
        selected.extend(i for i in range(first - 1, last) if i not in selected)
    return selected


def anchor(page: fitz.Page, position: str, text_width: float, font_size: float, margin: float = 30) -> fitz.Point:
    """Baseline start for text placed at ``position`` ("bottom-center", "top-right", ...).

    Computed on the page as displayed, then mapped back into the page's
    unrotated coordinate space, which is where insert_text draws.
    """
    rect = page.rect
    vertical, _, horizontal = position.partition("-")
    y = rect.height - margin if vertical == "bottom" else margin + font_size
    if horizontal == "left":
        x = margin
    elif horizontal == "right":
        x = rect.width - margin - text_width
    else:
        x = (rect.width - text_width) / 2
    return fitz.Point(x, y) * page.derotation_matrix


def wrap_line(text: str, fontname: str, fontsize: float, max_width: float) -> List[str]:
    """Greedy word wrap measured with the font's real glyph widths."""
    text = text.expandtabs(4).rstrip()
    if not text.strip():
        return [""]

    def width(s: str) -> float:
        return fitz.get_text_length(s, fontname=fontname, fontsize=fontsize)

    lines: List[str] = []
    current = ""
    for word in text.split(" "):
        candidate = f"{current} {word}" if current else word
        if width(candidate) <= max_width:
            current = candidate
            continue
        if current:
            lines.append(current)
        # Break words longer than a whole line.
        while len(word) > 1 and width(word) > max_width:
            cut = len(word) - 1
            while cut > 1 and width(word[:cut]) > max_width:
                cut -= 1
            lines.append(word[:cut])
            word = word[cut:]
        current = word
    lines.append(current)
    return lines


def write_text_pdf(
    paragraphs: Iterable[str],
    output: Path,
    page_size: str = "a4",
    font: str = "helvetica",
    font_size: float = 12,
    line_spacing: float = 1.5,
    margin: float = 72,
) -> int:
    """Lay plain-text paragraphs out onto pages. Returns the page count."""
    page_width, page_height = fitz.paper_size(page_size)
    fontname = FONTS[font]
    usable_width = page_width - 2 * margin
    line_height = font_size * line_spacing
    bottom = page_height - margin

    with fitz.open() as doc:
        page = doc.new_page(width=page_width, height=page_height)
        y = margin + font_size
        for paragraph in paragraphs:
            for line in wrap_line(paragraph, fontname, font_size, usable_width):
                if y > bottom:
                    page = doc.new_page(width=page_width, height=page_height)
                    y = margin + font_size
                if line:
                    page.insert_text((margin, y), line, fontname=fontname, fontsize=font_size)
                y += line_height
        page_count = doc.page_count
        doc.save(str(output), garbage=3, deflate=True)
    return page_count


def _format_bytes(size: int) -> str:
    mb = size / (1024 * 1024)
    return f"{mb:.2f} MB" if mb >= 1 else f"{size / 1024:.1f} KB"


# =============================================================================
# Parameter schemas
# =============================================================================

def check_ranges(v: Optional[str]) -> Optional[str]:
    """Validate a "1-3,5" page selection; blank means none."""
    if v is None or not v.strip():
        return None
    if not _RANGES.match(v):
        raise ValueError("Ranges must look like '1-3,5'")
    for part in v.split(","):
        start, _, end = part.partition("-")
        if end.strip() and int(end) < int(start):
            raise ValueError(f"Range '{part.strip()}' ends before it starts")
        if int(start) < 1:
            raise ValueError("Page numbers start at 1")
    return v


class SplitParams(ToolParams):
    split_type: Literal["pages", "ranges"] = "pages"
    ranges: Optional[str] = None

    @field_validator("ranges")
    @classmethod
    def _check_ranges(cls, v: Optional[str]) -> Optional[str]:
        return check_ranges(v)

    @model_validator(mode="after")
    def _ranges_for_range_split(self) -> "SplitParams":
        if self.split_type == "ranges" and not self.ranges:
            raise ValueError("Page ranges are required when splitType is 'ranges'")
        return self


class CompressPdfParams(ToolParams):
    compression_level: Literal["low", "medium", "high"] = "medium"


class ProtectParams(ToolParams):
    user_password: Optional[str] = Field(None, min_length=1, max_length=128)
    owner_password: Optional[str] = Field(None, min_length=1, max_length=128)
    permissions: List[Literal["print", "modify", "copy", "annotate", "form", "accessibility", "assemble"]] = ["print"]

    @field_validator("user_password", "owner_password", mode="before")
    @classmethod
    def _blank_is_missing(cls, v):
        return None if isinstance(v, str) and v == "" else v

    @field_validator("permissions", mode="before")
    @classmethod
    def _split_permissions(cls, v):
        if isinstance(v, str):
            return [p.strip().lower() for p in v.split(",") if p.strip()]
        return v

    @model_validator(mode="after")
    def _needs_a_password(self) -> "ProtectParams":
        if not self.user_password and not self.owner_password:
            raise ValueError("A user or owner password is required")
        return self


class PdfToImageParams(ToolParams):
    dpi: int = Field(150, ge=72, le=300)
    quality: int = Field(90, ge=1, le=100)


class PdfToPngParams(ToolParams):
    dpi: int = Field(150, ge=72, le=300)


class RotatePdfParams(ToolParams):
    angle: int = 90
    pages: Optional[str] = None

    @field_validator("angle")
    @classmethod
    def _quarter_turns(cls, v: int) -> int:
        if v % 90:
            raise ValueError("Angle must be a multiple of 90")
        return v % 360

    @field_validator("pages")
    @classmethod
    def _check_pages(cls, v: Optional[str]) -> Optional[str]:
        return check_ranges(v)


class UnlockParams(ToolParams):
    password: str = Field(..., min_length=1, max_length=128)


class WatermarkParams(ToolParams):
    text: str = Field(..., min_length=1, max_length=200)
    font_size: float = Field(50, ge=8, le=200)
    opacity: float = Field(0.25, gt=0, le=1)
    rotation: float = Field(45, ge=-180, le=180)
    color: str = "#bfbfbf"

    @field_validator("color")
    @classmethod
    def _check_color(cls, v: str) -> str:
        ImageColor.getrgb(v.strip())
        return v.strip()

    def rgb(self) -> Tuple[float, float, float]:
        r, g, b = ImageColor.getrgb(self.color)[:3]
        return r / 255, g / 255, b / 255


class PageNumberParams(ToolParams):
    position: Literal[
        "bottom-center", "bottom-left", "bottom-right", "top-center", "top-left", "top-right"
    ] = "bottom-center"
    font_size: float = Field(12, ge=6, le=72)
    start_number: int = Field(1, ge=0)
    format: str = Field("{n}", min_length=1, max_length=50)

    @field_validator("format")
    @classmethod
    def _needs_number(cls, v: str) -> str:
        if "{n}" not in v:
            raise ValueError("Format must contain {n}")
        return v


class ImagesToPdfParams(ToolParams):
    page_size: Literal["fit", "a4", "letter"] = "fit"


class NoPdfParams(ToolParams):
    pass


# =============================================================================
# Handlers
# =============================================================================

def merge_pdfs(inputs: List[UploadedAsset], params: NoPdfParams, work_dir: Path) -> OperationResult:
    output = work_dir / "merged-document.pdf"
    with fitz.open() as merged:
        for asset in inputs:
            with open_pdf(asset) as source:
                merged.insert_pdf(source)
        total_pages = merged.page_count
        merged.save(str(output), garbage=3, deflate=True)

    return OperationResult(
        outputs=[OutputAsset.from_path(output)],
        payload={"totalPages": total_pages, "filesCount": len(inputs)},
        message=f"Successfully merged {len(inputs)} PDF files",
    )


def split_pdf(inputs: List[UploadedAsset], params: SplitParams, work_dir: Path) -> OperationResult:
    asset = inputs[0]
    stem = sanitize_filename(asset.stem)
    outputs = []
    with open_pdf(asset) as doc:
        total = doc.page_count
        if params.split_type == "pages":
            ranges = [(page, page) for page in range(1, total + 1)]
        else:
            ranges = parse_ranges(params.ranges, total)
            if not ranges:
                raise InputRejected(f"No requested range falls inside the document ({total} pages)")

        for first, last in ranges:
            label = f"page-{first}" if first == last else f"pages-{first}-{last}"
            path = work_dir / f"{stem}-{label}.pdf"
            with fitz.open() as part:
                part.insert_pdf(doc, from_page=first - 1, to_page=last - 1)
                part.save(str(path), garbage=3, deflate=True)
            outputs.append(OutputAsset.from_path(path))

    return OperationResult(
        outputs=outputs,
        payload={"splitFiles": len(outputs), "originalPages": total},
        message=f"PDF split into {len(outputs)} file(s)",
        archive_name=f"{stem}-split.zip",
    )


def compress_pdf(inputs: List[UploadedAsset], params: CompressPdfParams, work_dir: Path) -> OperationResult:
    asset = inputs[0]
    output = work_dir / f"{sanitize_filename(asset.stem)}-compressed.pdf"
    with open_pdf(asset) as doc:
        if params.compression_level != "low":
            doc.set_metadata({})
        doc.save(str(output), **COMPRESSION_LEVELS[params.compression_level])

    compressed = OutputAsset.from_path(output)
    ratio = (1 - compressed.size_bytes / asset.size_bytes) * 100 if asset.size_bytes else 0.0
    return OperationResult(
        outputs=[compressed],
        payload={
            "originalSize": _format_bytes(asset.size_bytes),
            "compressedSize": _format_bytes(compressed.size_bytes),
            "compressionRatio": f"{ratio:.1f}%",
            "compressionLevel": params.compression_level,
        },
        message=f"PDF compressed by {max(ratio, 0.0):.1f}%",
    )


def rotate_pdf(inputs: List[UploadedAsset], params: RotatePdfParams, work_dir: Path) -> OperationResult:
    asset = inputs[0]
    output = work_dir / f"{sanitize_filename(asset.stem)}-rotated.pdf"
    with open_pdf(asset) as doc:
        total = doc.page_count
        indexes = selected_pages(params.pages, total)
        if not indexes:
            raise InputRejected(f"No requested page falls inside the document ({total} pages)")
        for index in indexes:
            doc[index].set_rotation(params.angle)
        doc.save(str(output), garbage=3, deflate=True)

    return OperationResult(
        outputs=[OutputAsset.from_path(output)],
        payload={"rotatedPages": len(indexes), "totalPages": total, "angle": params.angle},
        message=f"Rotated {len(indexes)} page(s) to {params.angle}°",
    )


def protect_pdf(inputs: List[UploadedAsset], params: ProtectParams, work_dir: Path) -> OperationResult:
    asset = inputs[0]
    output = work_dir / f"{sanitize_filename(asset.stem)}-protected.pdf"
    permissions = 0
    for name in params.permissions:
        permissions |= PERMISSIONS[name]

    with open_pdf(asset) as doc:
        doc.save(
            str(output),
            encryption=fitz.PDF_ENCRYPT_AES_256,
            owner_pw=params.owner_password or params.user_password,
            user_pw=params.user_password or "",
            permissions=permissions,
            garbage=3,
            deflate=True,
        )

    return OperationResult(
        outputs=[OutputAsset.from_path(output)],
        payload={
            "encryption": "AES-256",
            "permissions": sorted(set(params.permissions)),
            "requiresPasswordToOpen": bool(params.user_password),
        },
        message="PDF protected successfully",
    )


def unlock_pdf(inputs: List[UploadedAsset], params: UnlockParams, work_dir: Path) -> OperationResult:
    asset = inputs[0]
    output = work_dir / f"{sanitize_filename(asset.stem)}-unlocked.pdf"
    with open_pdf(asset, password=params.password) as doc:
        was_encrypted = doc.needs_pass or bool(doc.metadata.get("encryption"))
        page_count = doc.page_count
        doc.save(str(output), encryption=fitz.PDF_ENCRYPT_NONE, garbage=3, deflate=True)

    return OperationResult(
        outputs=[OutputAsset.from_path(output)],
        payload={"pageCount": page_count, "wasEncrypted": was_encrypted},
        message="PDF unlocked successfully" if was_encrypted else "PDF was not encrypted; saved unchanged",
    )


def watermark_pdf(inputs: List[UploadedAsset], params: WatermarkParams, work_dir: Path) -> OperationResult:
    asset = inputs[0]
    output = work_dir / f"{sanitize_filename(asset.stem)}-watermarked.pdf"
    fontname = "hebo"
    text_width = fitz.get_text_length(params.text, fontname=fontname, fontsize=params.font_size)
    with open_pdf(asset) as doc:
        for page in doc:
            center = page.rect.center * page.derotation_matrix
            start = fitz.Point(center.x - text_width / 2, center.y + params.font_size / 3)
            page.insert_text(
                start,
                params.text,
                fontname=fontname,
                fontsize=params.font_size,
                color=params.rgb(),
                fill_opacity=params.opacity,
                morph=(center, fitz.Matrix(params.rotation - page.rotation)),
                overlay=True,
            )
        page_count = doc.page_count
        doc.save(str(output), garbage=3, deflate=True)

    return OperationResult(
        outputs=[OutputAsset.from_path(output)],
        payload={"pageCount": page_count, "watermark": params.text},
        message=f"Watermark added to {page_count} page(s)",
    )


def number_pages(inputs: List[UploadedAsset], params: PageNumberParams, work_dir: Path) -> OperationResult:
    asset = inputs[0]
    output = work_dir / f"{sanitize_filename(asset.stem)}-numbered.pdf"
    with open_pdf(asset) as doc:
        total = doc.page_count
        for index, page in enumerate(doc):
            label = params.format.replace("{n}", str(params.start_number + index)).replace("{p}", str(total))
            width = fitz.get_text_length(label, fontname="helv", fontsize=params.font_size)
            page.insert_text(
                anchor(page, params.position, width, params.font_size),
                label,
                fontname="helv",
                fontsize=params.font_size,
                rotate=page.rotation,
            )
        doc.save(str(output), garbage=3, deflate=True)

    return OperationResult(
        outputs=[OutputAsset.from_path(output)],
        payload={"pageCount": total, "position": params.position, "startNumber": params.start_number},
        message=f"Numbered {total} page(s)",
    )


def _render_pages(asset: UploadedAsset, dpi: int, work_dir: Path, extension: str, **save_options) -> OperationResult:
    stem = sanitize_filename(asset.stem)
    outputs = []
    with open_pdf(asset) as doc:
        for index, page in enumerate(doc, start=1):
            pix = page.get_pixmap(dpi=dpi)
            img = Image.frombytes("RGB", [pix.width, pix.height], pix.samples)
            path = work_dir / f"{stem}-page-{index}.{extension}"
            img.save(path, **save_options)
            outputs.append(OutputAsset.from_path(path))

    return OperationResult(
        outputs=outputs,
        payload={"pageCount": len(outputs), "dpi": dpi},
        message=f"Converted {len(outputs)} page(s) to {extension.upper()}",
        archive_name=f"{stem}-images.zip",
    )


def pdf_to_images(inputs: List[UploadedAsset], params: PdfToImageParams, work_dir: Path) -> OperationResult:
    return _render_pages(inputs[0], params.dpi, work_dir, "jpg", format="JPEG", quality=params.quality)


def pdf_to_png(inputs: List[UploadedAsset], params: PdfToPngParams, work_dir: Path) -> OperationResult:
    return _render_pages(inputs[0], params.dpi, work_dir, "png", format="PNG", optimize=True)


def images_to_pdf(inputs: List[UploadedAsset], params: ImagesToPdfParams, work_dir: Path) -> OperationResult:
    output = work_dir / "images-to-pdf.pdf"
    margin = 36
    with fitz.open() as doc:
        for asset in inputs:
            img, _ = open_image(asset)
            img = flatten_alpha(img) if has_alpha(img) else img.convert("RGB")
            buffer = io.BytesIO()
            img.save(buffer, format="JPEG", quality=92)

            if params.page_size == "fit":
                # 96 dpi pixels -> 72 dpi points
                width, height = img.width * 0.75, img.height * 0.75
                page = doc.new_page(width=width, height=height)
                target = page.rect
            else:
                width, height = fitz.paper_size(params.page_size)
                page = doc.new_page(width=width, height=height)
                target = page.rect + (margin, margin, -margin, -margin)
            page.insert_image(target, stream=buffer.getvalue(), keep_proportion=True)
        page_count = doc.page_count
        doc.save(str(output), garbage=3, deflate=True)

    return OperationResult(
        outputs=[OutputAsset.from_path(output)],
        payload={"imageCount": len(inputs), "pageCount": page_count},
        message=f"Successfully converted {len(inputs)} image(s) to PDF",
    )


def pdf_to_word(inputs: List[UploadedAsset], params: NoPdfParams, work_dir: Path) -> OperationResult:
    asset = inputs[0]
    output = work_dir / f"{sanitize_filename(asset.stem)}.docx"
    document = Document()
    with open_pdf(asset) as doc:
        page_count = doc.page_count
        for index, page in enumerate(doc):
            if index > 0:
                document.add_page_break()
            lines = [line for line in page.get_text("text").splitlines() if line.strip()]
            for line in lines or [""]:
                document.add_paragraph(line)
    document.save(str(output))

    return OperationResult(
        outputs=[OutputAsset.from_path(output)],
        payload={"pageCount": page_count},
        message="PDF converted to Word successfully",
    )


def word_to_pdf(inputs: List[UploadedAsset], params: NoPdfParams, work_dir: Path) -> OperationResult:
    asset = inputs[0]
    try:
        document = Document(str(asset.local_path))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise InputRejected(f"'{asset.original_name}' is not a readable Word document") from e

    paragraphs = [p.text for p in document.paragraphs]
    for table in document.tables:
        paragraphs.append("")
        for row in table.rows:
            paragraphs.append(" | ".join(cell.text.strip() for cell in row.cells))

    output = work_dir / f"{sanitize_filename(asset.stem)}.pdf"
    page_count = write_text_pdf(paragraphs, output, page_size="a4", font_size=11, line_spacing=1.4)
    return OperationResult(
        outputs=[OutputAsset.from_path(output)],
        payload={"pageCount": page_count},
        message="Word document converted to PDF successfully",
    )


# =============================================================================
# Registration
# =============================================================================

def operation_specs(settings: PipelineSettings) -> List[OperationSpec]:
    pdf_only = frozenset({MediaType.PDF})
    limit = settings.pdf_max_bytes
    return [
        OperationSpec(
            id="pdf.merge", title="merge PDF files", arity=Arity.MULTIPLE,
            handler=merge_pdfs, params_model=NoPdfParams, accepted_types=pdf_only,
            max_input_size_bytes=limit, min_inputs=2, max_inputs=settings.max_files,
            arity_message="At least 2 PDF files required for merging",
        ),
        OperationSpec(
            id="pdf.split", title="split PDF", arity=Arity.SINGLE,
            handler=split_pdf, params_model=SplitParams, accepted_types=pdf_only,
            max_input_size_bytes=limit,
        ),
        OperationSpec(
            id="pdf.compress", title="compress PDF", arity=Arity.SINGLE,
            handler=compress_pdf, params_model=CompressPdfParams, accepted_types=pdf_only,
            max_input_size_bytes=limit,
        ),
        OperationSpec(
            id="pdf.rotate", title="rotate PDF", arity=Arity.SINGLE,
            handler=rotate_pdf, params_model=RotatePdfParams, accepted_types=pdf_only,
            max_input_size_bytes=limit,
        ),
        OperationSpec(
            id="pdf.protect", title="protect PDF", arity=Arity.SINGLE,
            handler=protect_pdf, params_model=ProtectParams, accepted_types=pdf_only,
            max_input_size_bytes=limit,
        ),
        OperationSpec(
            id="pdf.unlock", title="unlock PDF", arity=Arity.SINGLE,
            handler=unlock_pdf, params_model=UnlockParams, accepted_types=pdf_only,
            max_input_size_bytes=limit,
        ),
        OperationSpec(
            id="pdf.watermark", title="add watermark to PDF", arity=Arity.SINGLE,
            handler=watermark_pdf, params_model=WatermarkParams, accepted_types=pdf_only,
            max_input_size_bytes=limit,
        ),
        OperationSpec(
            id="pdf.page-numbers", title="add page numbers to PDF", arity=Arity.SINGLE,
            handler=number_pages, params_model=PageNumberParams, accepted_types=pdf_only,
            max_input_size_bytes=limit,
        ),
        OperationSpec(
            id="pdf.pdf-to-jpg", title="convert PDF to images", arity=Arity.SINGLE,
            handler=pdf_to_images, params_model=PdfToImageParams, accepted_types=pdf_only,
            max_input_size_bytes=limit,
        ),
        OperationSpec(
            id="pdf.pdf-to-png", title="convert PDF to PNG", arity=Arity.SINGLE,
            handler=pdf_to_png, params_model=PdfToPngParams, accepted_types=pdf_only,
            max_input_size_bytes=limit,
        ),
        OperationSpec(
            id="pdf.jpg-to-pdf", title="convert images to PDF", arity=Arity.MULTIPLE,
            handler=images_to_pdf, params_model=ImagesToPdfParams, accepted_types=RASTER_IMAGES,
            max_input_size_bytes=settings.image_max_bytes, max_inputs=settings.max_files,
        ),
        OperationSpec(
            id="pdf.pdf-to-word", title="convert PDF to Word", arity=Arity.SINGLE,
            handler=pdf_to_word, params_model=NoPdfParams, accepted_types=pdf_only,
            max_input_size_bytes=limit,
        ),
        OperationSpec(
            id="pdf.word-to-pdf", title="convert Word to PDF", arity=Arity.SINGLE,
            handler=word_to_pdf, params_model=NoPdfParams, accepted_types=frozenset({MediaType.DOCX}),
            max_input_size_bytes=limit,
        ),
    ]
