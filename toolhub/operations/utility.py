"""
Utility tools: QR codes, passwords, hashes, Base64, URL encoding, palettes.

Only the QR generator produces a file. The others answer inline.
"""

import base64
import binascii
import colorsys
import hashlib
import random
import re
import secrets
import string
from pathlib import Path
from typing import Any, List, Literal, Optional, Tuple
from urllib.parse import quote

import qrcode
from PIL import Image, ImageColor
from pydantic import Field, field_validator, model_validator
from qrcode.exceptions import DataOverflowError

from toolhub.core.errors import InputRejected
from toolhub.pipeline.media import MediaType
from toolhub.pipeline.models import Arity, OperationKind, OperationResult, OutputAsset, UploadedAsset
from toolhub.pipeline.registry import OperationSpec, ToolParams
from toolhub.pipeline.settings import PipelineSettings

ERROR_CORRECTION = {
    "L": qrcode.constants.ERROR_CORRECT_L,
    "M": qrcode.constants.ERROR_CORRECT_M,
    "Q": qrcode.constants.ERROR_CORRECT_Q,
    "H": qrcode.constants.ERROR_CORRECT_H,
}

HASH_ALGORITHMS = ("md5", "sha1", "sha224", "sha256", "sha384", "sha512")

SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
SIMILAR_CHARS = "il1Lo0O"
AMBIGUOUS_CHARS = "{}[]()/\\'\"`~,;.<>"
CONSONANTS = "bcdfghjklmnpqrstvwxyz"
VOWELS = "aeiou"
STRENGTH_LABELS = ["Very Weak", "Weak", "Fair", "Good", "Strong", "Very Strong", "Excellent"]

# encodeURIComponent leaves these unescaped on top of quote()'s own "_.-~".
URI_COMPONENT_SAFE = "!*'()"
# encodeURI additionally leaves the reserved set alone.
URI_RESERVED = ";,/?:@&=+$#"

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")
_PERCENT_RUN = re.compile(r"(?:%[0-9A-Fa-f]{2})+")
_BAD_PERCENT = re.compile(r"%(?![0-9A-Fa-f]{2})")


def _clamp(v: Any, low: int, high: int) -> Any:
    """Clamp numeric input into [low, high]; anything else is left for pydantic to reject."""
    try:
        return max(low, min(high, int(v)))
    except (TypeError, ValueError):
        return v


def _css_color(v: Any) -> str:
    """Normalize any Pillow-understood color to #rrggbb."""
    try:
        rgb = ImageColor.getrgb(str(v).strip())
    except ValueError:
        raise ValueError(f"Unknown color: {v}")
    return "#{:02x}{:02x}{:02x}".format(*rgb[:3])


# =============================================================================
# QR code generator
# =============================================================================

class QrParams(ToolParams):
    size: int = Field(300, ge=100, le=2000)
    error_correction: Literal["L", "M", "Q", "H"] = "M"
    color: str = "#000000"
    background_color: str = "#ffffff"
    format: Literal["png", "svg"] = "png"
    margin: int = Field(4, ge=0, le=20)

    @field_validator("error_correction", "format", mode="before")
    @classmethod
    def _normalize_choice(cls, v, info):
        if not isinstance(v, str):
            return v
        return v.strip().upper() if info.field_name == "error_correction" else v.strip().lower()

    @field_validator("color", "background_color")
    @classmethod
    def _check_color(cls, v: str) -> str:
        return _css_color(v)


def render_svg(matrix: List[List[bool]], size: int, color: str, background: str) -> str:
    """Draw a module matrix as a scalable SVG square."""
    modules = len(matrix)
    path = "".join(
        f"M{x},{y}h1v1h-1z"
        for y, row in enumerate(matrix)
        for x, dark in enumerate(row)
        if dark
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{size}" height="{size}" '
        f'viewBox="0 0 {modules} {modules}" shape-rendering="crispEdges">'
        f'<rect width="{modules}" height="{modules}" fill="{background}"/>'
        f'<path d="{path}" fill="{color}"/>'
        "</svg>\n"
    )


def generate_qr(inputs: List[UploadedAsset], params: QrParams, work_dir: Path) -> OperationResult:
    qr = qrcode.QRCode(
        error_correction=ERROR_CORRECTION[params.error_correction],
        box_size=10,
        border=params.margin,
    )
    qr.add_data(inputs[0].text)
    try:
        qr.make(fit=True)
    except DataOverflowError as e:
        raise InputRejected("Text is too long to fit in a QR code") from e

    if params.format == "svg":
        output = work_dir / "qrcode.svg"
        output.write_text(
            render_svg(qr.get_matrix(), params.size, params.color, params.background_color),
            encoding="utf-8",
        )
    else:
        output = work_dir / "qrcode.png"
        img = qr.make_image(fill_color=params.color, back_color=params.background_color)
        img = img.get_image().convert("RGB").resize((params.size, params.size), Image.NEAREST)
        img.save(output, format="PNG")

    return OperationResult(
        outputs=[OutputAsset.from_path(output)],
        payload={
            "format": params.format.upper(),
            "size": f"{params.size}x{params.size}",
            "version": qr.version,
        },
        message="QR Code generated successfully",
    )


# =============================================================================
# Password generator
# =============================================================================

class PasswordParams(ToolParams):
    length: int = 12
    count: int = 1
    include_uppercase: bool = True
    include_lowercase: bool = True
    include_numbers: bool = True
    include_symbols: bool = False
    exclude_similar: bool = True
    exclude_ambiguous: bool = True
    pronounceable: bool = False

    @field_validator("length", mode="before")
    @classmethod
    def _clamp_length(cls, v):
        return _clamp(v, 4, 128)

    @field_validator("count", mode="before")
    @classmethod
    def _clamp_count(cls, v):
        return _clamp(v, 1, 100)

    @model_validator(mode="after")
    def _needs_a_character_type(self) -> "PasswordParams":
        if not self.charset():
            raise ValueError("At least one character type must be selected")
        return self

    def charset(self) -> str:
        chars = ""
        if self.include_uppercase:
            chars += string.ascii_uppercase
        if self.include_lowercase:
            chars += string.ascii_lowercase
        if self.include_numbers:
            chars += string.digits
        if self.include_symbols:
            chars += SYMBOLS
        return self.allowed(chars)

    def allowed(self, chars: str) -> str:
        """``chars`` minus whatever excludeSimilar and excludeAmbiguous remove."""
        if self.exclude_similar:
            chars = "".join(c for c in chars if c not in SIMILAR_CHARS)
        if self.exclude_ambiguous:
            chars = "".join(c for c in chars if c not in AMBIGUOUS_CHARS)
        return chars


def _pronounceable(params: PasswordParams) -> str:
    """Alternating consonants and vowels, sprinkled with the other classes.

    Without any letter class there is nothing to pronounce, so the plain
    character set is used instead.
    """
    length = params.length
    if not (params.include_lowercase or params.include_uppercase):
        return "".join(secrets.choice(params.charset()) for _ in range(length))

    consonants, vowels = CONSONANTS, VOWELS
    if not params.include_lowercase:
        consonants, vowels = consonants.upper(), vowels.upper()
    consonants, vowels = params.allowed(consonants), params.allowed(vowels)
    chars = [secrets.choice(consonants if i % 2 == 0 else vowels) for i in range(length)]

    digits, symbols = params.allowed(string.digits), params.allowed(SYMBOLS)
    if params.include_numbers and digits and length > 4:
        chars[secrets.randbelow(length)] = secrets.choice(digits)
    if params.include_symbols and symbols and length > 6:
        chars[secrets.randbelow(length)] = secrets.choice(symbols)
    if params.include_uppercase and params.include_lowercase:
        chars = [
            c.upper() if i > 0 and params.allowed(c.upper()) and secrets.randbelow(10) >= 7 else c
            for i, c in enumerate(chars)
        ]
    return "".join(chars)


def password_strength(password: str) -> int:
    """Score 0-6: two points for length, one per character class present."""
    checks = [
        len(password) >= 8,
        len(password) >= 12,
        re.search(r"[a-z]", password) is not None,
        re.search(r"[A-Z]", password) is not None,
        re.search(r"[0-9]", password) is not None,
        re.search(r"[^A-Za-z0-9]", password) is not None,
    ]
    return sum(checks)


def generate_passwords(inputs: List[UploadedAsset], params: PasswordParams, work_dir: Optional[Path]) -> OperationResult:
    charset = params.charset()
    passwords = []
    for _ in range(params.count):
        if params.pronounceable:
            passwords.append(_pronounceable(params))
        else:
            passwords.append("".join(secrets.choice(charset) for _ in range(params.length)))

    score = password_strength(passwords[0])
    return OperationResult(
        payload={
            "passwords": passwords,
            "count": params.count,
            "length": params.length,
            "strength": {"score": score, "label": STRENGTH_LABELS[score]},
            "settings": params.model_dump(
                by_alias=True,
                exclude={"length", "count"},
            ),
        },
        message=f"{params.count} password(s) generated successfully",
    )


# =============================================================================
# Hash generator
# =============================================================================

class HashParams(ToolParams):
    algorithms: List[str] = Field(default_factory=lambda: ["md5", "sha1", "sha256"])

    @field_validator("algorithms", mode="before")
    @classmethod
    def _split(cls, v):
        if isinstance(v, str):
            return [part for part in v.split(",")]
        return v

    @field_validator("algorithms")
    @classmethod
    def _supported_only(cls, v: List[str]) -> List[str]:
        supported = []
        for name in v:
            name = name.strip().lower()
            if name in HASH_ALGORITHMS and name not in supported:
                supported.append(name)
        if not supported:
            raise ValueError("No valid algorithms specified")
        return supported


def generate_hashes(inputs: List[UploadedAsset], params: HashParams, work_dir: Optional[Path]) -> OperationResult:
    data = inputs[0].text.encode("utf-8")
    hashes = {name.upper(): hashlib.new(name, data).hexdigest() for name in params.algorithms}
    return OperationResult(
        payload={
            "originalText": inputs[0].text,
            "hashes": hashes,
            "algorithms": params.algorithms,
        },
        message=f"Hashes generated for {len(hashes)} algorithm(s)",
    )


# =============================================================================
# Base64 and URL encoding
# =============================================================================

class Base64Params(ToolParams):
    direction: Literal["encode", "decode"] = "encode"
    format: Literal["standard", "urlsafe"] = "standard"
    chunking: bool = False


def base64_convert(inputs: List[UploadedAsset], params: Base64Params, work_dir: Optional[Path]) -> OperationResult:
    text = inputs[0].text
    if params.direction == "encode":
        encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
        if params.format == "urlsafe":
            encoded = encoded.replace("+", "-").replace("/", "_").rstrip("=")
        if params.chunking:
            encoded = "\n".join(encoded[i:i + 76] for i in range(0, len(encoded), 76))
        result = encoded
        ratio = f"{(len(result) / len(text) - 1) * 100:.1f}% larger"
    else:
        cleaned = re.sub(r"\s", "", text)
        if params.format == "urlsafe":
            cleaned = cleaned.replace("-", "+").replace("_", "/")
            cleaned += "=" * (-len(cleaned) % 4)
        try:
            raw = base64.b64decode(cleaned, validate=True)
        except binascii.Error as e:
            raise InputRejected("Invalid Base64 input") from e
        try:
            result = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InputRejected("Base64 input does not decode to UTF-8 text") from e
        ratio = f"{(1 - len(result) / len(text)) * 100:.1f}% smaller"

    return OperationResult(
        payload={
            "originalText": text,
            "result": result,
            "direction": params.direction,
            "format": params.format,
            "statistics": {
                "originalLength": len(text),
                "resultLength": len(result),
                "compressionRatio": ratio,
            },
        },
        message=f"Text successfully {'encoded to' if params.direction == 'encode' else 'decoded from'} Base64",
    )


class UrlEncodeParams(ToolParams):
    direction: Literal["encode", "decode"] = "encode"
    component: bool = True


def url_decode(text: str, keep: str = "") -> str:
    """Strict percent-decoding. Characters in ``keep`` stay escaped as sent.

    Raises ValueError on a stray '%' or escapes that are not valid UTF-8.
    """
    if _BAD_PERCENT.search(text):
        raise ValueError("Malformed percent escape")

    def replace(match: re.Match) -> str:
        run = match.group(0)
        escapes = run.split("%")[1:]
        decoded = bytes.fromhex("".join(escapes)).decode("utf-8")
        if not keep:
            return decoded
        parts = []
        position = 0
        for char in decoded:
            width = len(char.encode("utf-8"))
            if char in keep:
                parts.append("".join("%" + e for e in escapes[position:position + width]))
            else:
                parts.append(char)
            position += width
        return "".join(parts)

    return _PERCENT_RUN.sub(replace, text)


def url_encode(inputs: List[UploadedAsset], params: UrlEncodeParams, work_dir: Optional[Path]) -> OperationResult:
    text = inputs[0].text
    if params.direction == "encode":
        safe = URI_COMPONENT_SAFE if params.component else URI_COMPONENT_SAFE + URI_RESERVED
        result = quote(text, safe=safe)
    else:
        try:
            result = url_decode(text, keep="" if params.component else URI_RESERVED)
        except ValueError as e:
            # UnicodeDecodeError is a ValueError too.
            raise InputRejected("Invalid URL encoded input") from e

    return OperationResult(
        payload={
            "originalText": text,
            "result": result,
            "direction": params.direction,
            "method": "encodeURIComponent" if params.component else "encodeURI",
            "statistics": {
                "originalLength": len(text),
                "resultLength": len(result),
                "difference": len(result) - len(text),
            },
        },
        message=f"Text successfully {'URL encoded' if params.direction == 'encode' else 'URL decoded'}",
    )


# =============================================================================
# Color palette generator
# =============================================================================

class PaletteParams(ToolParams):
    base_color: str = "#3B82F6"
    count: int = 5
    type: Literal["complementary", "analogous", "triadic", "monochromatic", "random"] = "complementary"
    format: Literal["hex", "rgb", "hsl"] = "hex"

    @field_validator("count", mode="before")
    @classmethod
    def _clamp_count(cls, v):
        return _clamp(v, 2, 20)

    @field_validator("type", "format", mode="before")
    @classmethod
    def _lower(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("base_color")
    @classmethod
    def _check_hex(cls, v: str) -> str:
        v = v.strip()
        if not _HEX_COLOR.match(v):
            raise ValueError("Base color must be a hex color like #3B82F6")
        return v


def hex_to_hsl(color: str) -> Tuple[float, float, float]:
    r, g, b = (int(color[i:i + 2], 16) / 255 for i in (1, 3, 5))
    h, l, s = colorsys.rgb_to_hls(r, g, b)
    return h * 360, s * 100, l * 100


def hsl_to_hex(h: float, s: float, l: float) -> str:
    r, g, b = colorsys.hls_to_rgb((h % 360) / 360, l / 100, s / 100)
    return "#{:02x}{:02x}{:02x}".format(round(r * 255), round(g * 255), round(b * 255))


def format_color(color: str, fmt: str) -> str:
    if fmt == "rgb":
        r, g, b = (int(color[i:i + 2], 16) for i in (1, 3, 5))
        return f"rgb({r}, {g}, {b})"
    if fmt == "hsl":
        h, s, l = hex_to_hsl(color)
        return f"hsl({round(h)}, {round(s)}%, {round(l)}%)"
    return color


def palette_colors(base_color: str, count: int, kind: str) -> List[str]:
    h, s, l = hex_to_hsl(base_color)
    if kind == "complementary":
        return [hsl_to_hex(h + i * 360 / count, s, l) for i in range(count)]
    if kind == "analogous":
        return [hsl_to_hex(h + i * 30 - 60, s, l) for i in range(count)]
    if kind == "triadic":
        return [hsl_to_hex(h + i * 120, s, l) for i in range(count)]
    if kind == "monochromatic":
        return [
            hsl_to_hex(h, s, max(10, min(90, l + (i - count / 2) * 20)))
            for i in range(count)
        ]
    return [
        hsl_to_hex(random.uniform(0, 360), random.uniform(40, 80), random.uniform(30, 70))
        for _ in range(count)
    ]


def generate_palette(inputs: List[UploadedAsset], params: PaletteParams, work_dir: Optional[Path]) -> OperationResult:
    colors = palette_colors(params.base_color, params.count, params.type)
    return OperationResult(
        payload={
            "baseColor": params.base_color,
            "colors": [format_color(c, params.format) for c in colors],
            "palette": {"type": params.type, "count": params.count, "format": params.format.upper()},
        },
        message=f"{params.count} color palette generated successfully",
    )


# =============================================================================
# Registration
# =============================================================================

def operation_specs(settings: PipelineSettings) -> List[OperationSpec]:
    text_only = frozenset({MediaType.TEXT})
    text_input = dict(
        arity=Arity.TEXT, accepted_types=text_only,
        max_input_size_bytes=settings.text_max_bytes,
        kind=OperationKind.COMPUTATION,
    )
    return [
        OperationSpec(
            id="util.qr-generate", title="generate QR Code", arity=Arity.TEXT,
            handler=generate_qr, params_model=QrParams, accepted_types=text_only,
            max_input_size_bytes=settings.text_max_bytes,
        ),
        OperationSpec(
            id="util.password-generate", title="generate password", arity=Arity.PARAMS,
            handler=generate_passwords, params_model=PasswordParams,
            kind=OperationKind.COMPUTATION,
        ),
        OperationSpec(
            id="util.hash-generate", title="generate hashes", handler=generate_hashes,
            params_model=HashParams, **text_input,
        ),
        OperationSpec(
            id="util.base64-convert", title="convert Base64", handler=base64_convert,
            params_model=Base64Params, **text_input,
        ),
        OperationSpec(
            id="util.url-encode", title="encode/decode URL", handler=url_encode,
            params_model=UrlEncodeParams, **text_input,
        ),
        OperationSpec(
            id="util.color-palette", title="generate color palette", arity=Arity.PARAMS,
            handler=generate_palette, params_model=PaletteParams,
            kind=OperationKind.COMPUTATION,
        ),
    ]
