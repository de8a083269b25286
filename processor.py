"""
Image processing engine for the Upwise upscaler.
Handles input gathering, decoding, the placeholder upscale pass, and
data-URI encoding of results.
"""

import base64
import binascii
import mimetypes
import os
from dataclasses import dataclass
from PIL import Image, UnidentifiedImageError
from io import BytesIO
from typing import Dict, List, Set

SUPPORTED_EXTENSIONS: Set[str] = {'.png', '.jpg', '.jpeg', '.webp'}

# Pillow format names accepted by the decoder
SUPPORTED_FORMATS: Set[str] = {'PNG', 'JPEG', 'WEBP'}

EXTENSION_MIME: Dict[str, str] = {
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.webp': 'image/webp',
}

MIN_SCALE = 1
MAX_SCALE = 16
BRIGHTNESS_GAIN = 1.1
PROCESSING_DELAY = 2.0  # seconds, emulates a backend round-trip per file

# name -> colour of the profile dot
PROFILES: Dict[str, str] = {
    'General Photo': '#EC4899',
    'Real-ESRGAN': '#3B82F6',
    'Light Photo': '#EAB308',
    'Ultra HD': '#22C55E',
}
DEFAULT_PROFILE = 'General Photo'


class UnsupportedFormatError(ValueError):
    """Bytes are not a PNG, JPEG or WEBP image."""


class DecodeError(ValueError):
    """Image data is corrupt or the pixel surface is malformed."""


class ScaleFactorError(ValueError):
    """Scale factor outside the supported range."""


def format_size(size_bytes: float) -> str:
    """Format byte count to human-readable string."""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size_bytes < 1024:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} TB"


def profile_color(name: str) -> str:
    return PROFILES.get(name, PROFILES[DEFAULT_PROFILE])


@dataclass
class UpscaleSettings:
    """User-adjustable parameters of an upscale session."""
    scale: int = 2
    profile: str = DEFAULT_PROFILE
    processing_delay: float = PROCESSING_DELAY
    brightness_gain: float = BRIGHTNESS_GAIN

    def copy(self) -> 'UpscaleSettings':
        return UpscaleSettings(
            scale=self.scale,
            profile=self.profile,
            processing_delay=self.processing_delay,
            brightness_gain=self.brightness_gain,
        )


@dataclass(frozen=True)
class InputFile:
    """A selected image: display name plus its raw bytes."""
    name: str
    data: bytes

    @classmethod
    def from_path(cls, path: str) -> 'InputFile':
        with open(path, 'rb') as fh:
            data = fh.read()
        return cls(name=os.path.basename(path), data=data)

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class DecodedImage:
    """An RGBA pixel surface, 4 bytes per pixel in row-major order."""
    width: int
    height: int
    pixels: bytes

    def validate(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise DecodeError(
                f"Invalid image dimensions {self.width}x{self.height}"
            )
        expected = self.width * self.height * 4
        if len(self.pixels) != expected:
            raise DecodeError(
                f"Pixel buffer holds {len(self.pixels)} bytes, "
                f"expected {expected} for {self.width}x{self.height} RGBA"
            )

    @classmethod
    def from_pil(cls, img: Image.Image) -> 'DecodedImage':
        if img.mode != 'RGBA':
            img = img.convert('RGBA')
        return cls(width=img.width, height=img.height, pixels=img.tobytes())

    def to_pil(self) -> Image.Image:
        self.validate()
        return Image.frombytes('RGBA', (self.width, self.height), self.pixels)


@dataclass(frozen=True)
class ProcessedResult:
    """Before/after pair for one input file."""
    original: str
    upscaled: str
    file_name: str


# ---------------------------------------------------------------------------
# Input gathering
# ---------------------------------------------------------------------------

def collect_images(paths: List[str]) -> List[str]:
    """
    Expand a list of file/folder paths into supported image files.
    Order of the input is kept; duplicates are dropped.
    """
    images: List[str] = []
    seen: Set[str] = set()

    for raw_path in paths:
        path = raw_path.strip().strip('"').strip("'")
        if not os.path.exists(path):
            continue

        if os.path.isdir(path):
            _scan_directory(path, images, seen)

        elif os.path.isfile(path):
            ext = os.path.splitext(path)[1].lower()
            if ext in SUPPORTED_EXTENSIONS and path not in seen:
                images.append(path)
                seen.add(path)

    return images


def _scan_directory(directory: str, images: List[str], seen: Set[str]):
    """Recursively find all supported image files in a directory."""
    for root, dirs, files in os.walk(directory):
        dirs.sort()
        for f in sorted(files):
            fp = os.path.join(root, f)
            ext = os.path.splitext(f)[1].lower()
            if ext in SUPPORTED_EXTENSIONS and fp not in seen:
                images.append(fp)
                seen.add(fp)


# ---------------------------------------------------------------------------
# Data URIs
# ---------------------------------------------------------------------------

def to_data_uri(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def data_uri_to_bytes(uri: str) -> bytes:
    """Decode the payload of a base64 data URI."""
    header, sep, payload = uri.partition(',')
    if not sep or not header.startswith('data:') or not header.endswith(';base64'):
        raise ValueError("Not a base64 data URI")
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Malformed base64 payload: {exc}") from exc


def guess_mime(file_name: str) -> str:
    ext = os.path.splitext(file_name)[1].lower()
    if ext in EXTENSION_MIME:
        return EXTENSION_MIME[ext]
    return mimetypes.guess_type(file_name)[0] or 'application/octet-stream'


def original_data_uri(file: InputFile) -> str:
    """Display URI of the untouched file bytes, typed by extension."""
    return to_data_uri(file.data, guess_mime(file.name))


# ---------------------------------------------------------------------------
# Decode / encode
# ---------------------------------------------------------------------------

def decode_image(raw: bytes) -> DecodedImage:
    """
    Decode PNG, JPEG or WEBP bytes into an RGBA surface.
    The container is sniffed from content, never from a file name.
    """
    try:
        img = Image.open(BytesIO(raw))
    except UnidentifiedImageError as exc:
        raise UnsupportedFormatError("Data is not a recognized image") from exc
    except (OSError, SyntaxError) as exc:
        raise DecodeError(f"Corrupt image data: {exc}") from exc
    except Image.DecompressionBombError as exc:
        raise DecodeError(str(exc)) from exc

    with img:
        if img.format not in SUPPORTED_FORMATS:
            raise UnsupportedFormatError(
                f"Unsupported image format: {img.format}"
            )
        try:
            img.load()
            decoded = DecodedImage.from_pil(img)
        except (OSError, SyntaxError, ValueError, EOFError) as exc:
            raise DecodeError(f"Corrupt {img.format} data: {exc}") from exc

    decoded.validate()
    return decoded


def encode_image(image: DecodedImage) -> str:
    """Encode a surface as a PNG data URI, whatever the source format was."""
    buf = BytesIO()
    image.to_pil().save(buf, format='PNG', compress_level=1)
    return to_data_uri(buf.getvalue(), 'image/png')


# ---------------------------------------------------------------------------
# Upscale pass
# ---------------------------------------------------------------------------

def check_scale(scale: int) -> int:
    if isinstance(scale, bool) or not isinstance(scale, int):
        raise ScaleFactorError(f"Scale factor must be an integer, got {scale!r}")
    if not MIN_SCALE <= scale <= MAX_SCALE:
        raise ScaleFactorError(
            f"Scale factor {scale} outside {MIN_SCALE}..{MAX_SCALE}"
        )
    return scale


def clamp_scale(scale: float) -> int:
    return max(MIN_SCALE, min(MAX_SCALE, int(round(scale))))


def _brightness_table(gain: float) -> List[int]:
    return [min(255, int(v * gain)) for v in range(256)]


def upscale_image(image: DecodedImage, scale: int,
                  gain: float = BRIGHTNESS_GAIN) -> DecodedImage:
    """Resize by an integer factor and brighten RGB, keeping alpha as is."""
    check_scale(scale)
    img = image.to_pil()

    # Pass 1: Lanczos resize (a same-size resize returns an untouched copy)
    new_w = image.width * scale
    new_h = image.height * scale
    img = img.resize((new_w, new_h), Image.LANCZOS)

    # Pass 2: Channel gain on R, G, B, clamped to 255
    lut = _brightness_table(gain)
    r, g, b, a = img.split()
    img = Image.merge('RGBA', (r.point(lut), g.point(lut), b.point(lut), a))

    return DecodedImage.from_pil(img)
