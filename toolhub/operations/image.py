"""
Image tools: resize, compress, convert, crop, rotate, flip.

Every handler processes each uploaded image independently, writes one
output per input into the work directory and keeps the input's format
unless the tool is a format conversion.
"""

import re
from pathlib import Path
from typing import List, Literal, Optional, Tuple

from PIL import Image, ImageColor, ImageOps, UnidentifiedImageError
from pydantic import Field, field_validator, model_validator

from toolhub.core.errors import InputRejected
from toolhub.pipeline.media import RASTER_IMAGES, MediaType
from toolhub.pipeline.models import Arity, OperationResult, OutputAsset, UploadedAsset
from toolhub.pipeline.registry import OperationSpec, ToolParams
from toolhub.pipeline.settings import PipelineSettings
from toolhub.pipeline.store import sanitize_filename

PIL_FORMATS = {
    MediaType.JPEG: "JPEG",
    MediaType.PNG: "PNG",
    MediaType.GIF: "GIF",
    MediaType.WEBP: "WEBP",
    MediaType.TIFF: "TIFF",
    MediaType.BMP: "BMP",
}

# outputFormat value -> (Pillow format, file extension)
OUTPUT_FORMATS = {
    "jpeg": ("JPEG", ".jpg"),
    "png": ("PNG", ".png"),
    "webp": ("WEBP", ".webp"),
    "tiff": ("TIFF", ".tiff"),
    "bmp": ("BMP", ".bmp"),
    "gif": ("GIF", ".gif"),
}

_ALPHA_FORMATS = {"PNG", "WEBP", "TIFF", "GIF"}


# =============================================================================
# Helpers
# =============================================================================

def open_image(asset: UploadedAsset) -> Tuple[Image.Image, str]:
    """Decode an uploaded image. Returns the image and its Pillow format name."""
    try:
        img = Image.open(asset.local_path)
        img.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise InputRejected(f"'{asset.original_name}' is not a readable image") from e
    return img, img.format or PIL_FORMATS.get(asset.media_type, "PNG")


def flatten_alpha(img: Image.Image, background="white") -> Image.Image:
    """Composite transparent pixels onto a solid background."""
    rgba = img.convert("RGBA")
    canvas = Image.new("RGB", rgba.size, background)
    canvas.paste(rgba, mask=rgba.getchannel("A"))
    return canvas


def has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info)


def prepare_for_format(img: Image.Image, fmt: str) -> Image.Image:
    """Convert modes the target format cannot store."""
    if fmt in ("JPEG", "BMP"):
        if has_alpha(img):
            return flatten_alpha(img)
        if img.mode not in ("RGB", "L"):
            return img.convert("RGB")
    elif fmt == "WEBP" and img.mode not in ("RGB", "RGBA"):
        return img.convert("RGBA" if has_alpha(img) else "RGB")
    elif img.mode == "CMYK":
        return img.convert("RGB")
    return img


def save_image(img: Image.Image, path: Path, fmt: str, **options) -> Path:
    prepare_for_format(img, fmt).save(path, format=fmt, **options)
    return path


def output_path(work_dir: Path, index: int, name: str) -> Path:
    """Unique path inside the work directory for the index-th output."""
    return work_dir / f"{index:03d}-{sanitize_filename(name)}"


def _format_bytes(size: int) -> str:
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def _plural(count: int) -> str:
    return "image" if count == 1 else "images"


# =============================================================================
# Parameter schemas
# =============================================================================

class ResizeParams(ToolParams):
    width: Optional[int] = Field(None, ge=1, le=10000)
    height: Optional[int] = Field(None, ge=1, le=10000)
    maintain_ratio: bool = True

    @model_validator(mode="after")
    def _needs_a_dimension(self) -> "ResizeParams":
        if self.width is None and self.height is None:
            raise ValueError("Width or height must be specified")
        return self


class CompressParams(ToolParams):
    quality: int = Field(80, ge=1, le=100)


class ConvertParams(ToolParams):
    output_format: Literal["jpeg", "png", "webp", "tiff", "bmp", "gif"]
    quality: int = Field(90, ge=1, le=100)

    @field_validator("output_format", mode="before")
    @classmethod
    def _normalize_format(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            return {"jpg": "jpeg", "tif": "tiff"}.get(v, v)
        return v


class CropParams(ToolParams):
    x: int = Field(0, ge=0)
    y: int = Field(0, ge=0)
    width: Optional[int] = Field(None, ge=1)
    height: Optional[int] = Field(None, ge=1)
    aspect_ratio: Optional[str] = Field(None, description="Centred crop such as '16:9'")

    @field_validator("aspect_ratio")
    @classmethod
    def _check_ratio(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        if not re.fullmatch(r"\s*[1-9]\d*\s*:\s*[1-9]\d*\s*", v):
            raise ValueError("Aspect ratio must look like '16:9'")
        return v.replace(" ", "")

    @model_validator(mode="after")
    def _needs_a_box(self) -> "CropParams":
        if self.aspect_ratio is None and (self.width is None or self.height is None):
            raise ValueError("Width and height are required for cropping")
        return self


class RotateParams(ToolParams):
    angle: float = Field(90, ge=-360, le=360)
    background: str = "white"

    @field_validator("background")
    @classmethod
    def _check_color(cls, v: str) -> str:
        v = v.strip()
        if v.lower() == "transparent":
            return "transparent"
        ImageColor.getrgb(v)  # raises ValueError for unknown colours
        return v


class FlipParams(ToolParams):
    direction: Literal["horizontal", "vertical", "both"] = "horizontal"


# =============================================================================
# Handlers
# =============================================================================

def resize_images(inputs: List[UploadedAsset], params: ResizeParams, work_dir: Path) -> OperationResult:
    outputs, files = [], []
    for index, asset in enumerate(inputs):
        img, fmt = open_image(asset)
        width, height = img.size
        if params.maintain_ratio:
            scales = []
            if params.width:
                scales.append(params.width / width)
            if params.height:
                scales.append(params.height / height)
            scale = min(scales)
            size = (max(1, round(width * scale)), max(1, round(height * scale)))
        else:
            size = (params.width or width, params.height or height)

        resized = img.resize(size, Image.Resampling.LANCZOS)
        path = save_image(resized, output_path(work_dir, index, asset.original_name), fmt)
        outputs.append(OutputAsset.from_path(path, asset.original_name))
        files.append({"fileName": asset.original_name, "width": size[0], "height": size[1]})

    return OperationResult(
        outputs=outputs,
        payload={"files": files},
        message=f"Successfully resized {len(outputs)} {_plural(len(outputs))}",
    )


def compress_images(inputs: List[UploadedAsset], params: CompressParams, work_dir: Path) -> OperationResult:
    outputs = []
    original_total = compressed_total = 0
    for index, asset in enumerate(inputs):
        img, fmt = open_image(asset)
        name = asset.original_name
        options = {}
        if fmt == "JPEG":
            options = {"quality": params.quality, "optimize": True, "progressive": True}
        elif fmt == "WEBP":
            options = {"quality": params.quality, "method": 6}
        elif fmt == "PNG":
            options = {"optimize": True}
            if params.quality < 90 and img.mode in ("RGB", "RGBA"):
                img = img.quantize(colors=256, method=Image.Quantize.FASTOCTREE)
        elif fmt == "GIF":
            options = {"optimize": True}
        elif fmt == "TIFF":
            options = {"compression": "tiff_adobe_deflate"}
        else:
            # No lossy mode for this format; re-encode as JPEG.
            fmt = "JPEG"
            name = f"{asset.stem}.jpg"
            options = {"quality": params.quality, "optimize": True}

        path = save_image(img, output_path(work_dir, index, name), fmt, **options)
        output = OutputAsset.from_path(path, name)
        outputs.append(output)
        original_total += asset.size_bytes
        compressed_total += output.size_bytes

    ratio = (1 - compressed_total / original_total) * 100 if original_total else 0.0
    return OperationResult(
        outputs=outputs,
        payload={
            "originalSize": _format_bytes(original_total),
            "compressedSize": _format_bytes(compressed_total),
            "compressionRatio": f"{ratio:.1f}%",
        },
        message=f"Successfully compressed {len(outputs)} {_plural(len(outputs))}",
    )


def convert_images(inputs: List[UploadedAsset], params: ConvertParams, work_dir: Path) -> OperationResult:
    fmt, extension = OUTPUT_FORMATS[params.output_format]
    options = {"quality": params.quality} if fmt in ("JPEG", "WEBP") else {}
    outputs = []
    for index, asset in enumerate(inputs):
        img, _ = open_image(asset)
        name = f"{asset.stem}{extension}"
        path = save_image(img, output_path(work_dir, index, name), fmt, **options)
        outputs.append(OutputAsset.from_path(path, name))

    return OperationResult(
        outputs=outputs,
        payload={"outputFormat": params.output_format},
        message=f"Successfully converted {len(outputs)} {_plural(len(outputs))} to {params.output_format.upper()}",
    )


def _crop_box(img: Image.Image, params: CropParams, name: str) -> Tuple[int, int, int, int]:
    width, height = img.size
    if params.aspect_ratio:
        ratio_w, ratio_h = (int(part) for part in params.aspect_ratio.split(":"))
        target = ratio_w / ratio_h
        if width / height > target:
            box_w, box_h = max(1, round(height * target)), height
        else:
            box_w, box_h = width, max(1, round(width / target))
        left, top = (width - box_w) // 2, (height - box_h) // 2
        return left, top, left + box_w, top + box_h

    right = min(width, params.x + params.width)
    bottom = min(height, params.y + params.height)
    if params.x >= width or params.y >= height or right <= params.x or bottom <= params.y:
        raise InputRejected(f"Crop area lies outside '{name}' ({width}x{height})")
    return params.x, params.y, right, bottom


def crop_images(inputs: List[UploadedAsset], params: CropParams, work_dir: Path) -> OperationResult:
    outputs = []
    for index, asset in enumerate(inputs):
        img, fmt = open_image(asset)
        cropped = img.crop(_crop_box(img, params, asset.original_name))
        path = save_image(cropped, output_path(work_dir, index, asset.original_name), fmt)
        outputs.append(OutputAsset.from_path(path, asset.original_name))

    return OperationResult(
        outputs=outputs,
        message=f"Successfully cropped {len(outputs)} {_plural(len(outputs))}",
    )


def rotate_images(inputs: List[UploadedAsset], params: RotateParams, work_dir: Path) -> OperationResult:
    outputs = []
    for index, asset in enumerate(inputs):
        img, fmt = open_image(asset)
        if params.background == "transparent" and fmt in _ALPHA_FORMATS:
            img = img.convert("RGBA")
            fill = (0, 0, 0, 0)
        else:
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGBA" if has_alpha(img) else "RGB")
            color = "white" if params.background == "transparent" else params.background
            fill = ImageColor.getcolor(color, img.mode)
        # Pillow rotates counter-clockwise; the tool's angle is clockwise.
        rotated = img.rotate(-params.angle, resample=Image.Resampling.BICUBIC, expand=True, fillcolor=fill)
        path = save_image(rotated, output_path(work_dir, index, asset.original_name), fmt)
        outputs.append(OutputAsset.from_path(path, asset.original_name))

    return OperationResult(
        outputs=outputs,
        payload={"rotationAngle": params.angle},
        message=f"Successfully rotated {len(outputs)} {_plural(len(outputs))} by {params.angle:g} degrees",
    )


def flip_images(inputs: List[UploadedAsset], params: FlipParams, work_dir: Path) -> OperationResult:
    outputs = []
    for index, asset in enumerate(inputs):
        img, fmt = open_image(asset)
        if params.direction in ("horizontal", "both"):
            img = ImageOps.mirror(img)
        if params.direction in ("vertical", "both"):
            img = ImageOps.flip(img)
        path = save_image(img, output_path(work_dir, index, asset.original_name), fmt)
        outputs.append(OutputAsset.from_path(path, asset.original_name))

    return OperationResult(
        outputs=outputs,
        payload={"direction": params.direction},
        message=f"Successfully flipped {len(outputs)} {_plural(len(outputs))} {params.direction}",
    )


# =============================================================================
# Registration
# =============================================================================

def operation_specs(settings: PipelineSettings) -> List[OperationSpec]:
    common = dict(
        arity=Arity.MULTIPLE,
        accepted_types=RASTER_IMAGES,
        max_input_size_bytes=settings.image_max_bytes,
        max_inputs=settings.max_files,
    )
    return [
        OperationSpec(
            id="image.resize", title="resize images", handler=resize_images,
            params_model=ResizeParams, output_prefix="resized-",
            archive_name="resized-images.zip", **common,
        ),
        OperationSpec(
            id="image.compress", title="compress images", handler=compress_images,
            params_model=CompressParams, output_prefix="compressed-",
            archive_name="compressed-images.zip", **common,
        ),
        OperationSpec(
            id="image.convert", title="convert images", handler=convert_images,
            params_model=ConvertParams, archive_name="converted-images.zip", **common,
        ),
        OperationSpec(
            id="image.crop", title="crop images", handler=crop_images,
            params_model=CropParams, output_prefix="cropped-",
            archive_name="cropped-images.zip", **common,
        ),
        OperationSpec(
            id="image.rotate", title="rotate images", handler=rotate_images,
            params_model=RotateParams, output_prefix="rotated-",
            archive_name="rotated-images.zip", **common,
        ),
        OperationSpec(
            id="image.flip", title="flip images", handler=flip_images,
            params_model=FlipParams, output_prefix="flipped-",
            archive_name="flipped-images.zip", **common,
        ),
    ]
