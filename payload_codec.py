"""Payload encoding, hashing and image utilities for stored artifacts"""

import base64
import binascii
import hashlib
import logging
import re
from dataclasses import dataclass
from io import BytesIO
from pathlib import PurePath
from typing import Optional, Tuple, Union

import requests
from PIL import Image, ImageOps

logger = logging.getLogger("PayloadCodec")

# Embedded-encoding prefix, e.g. "data:image/png;base64,"
DATA_URI_REGEX = re.compile(r"^data:([\w.+-]+/[\w.+-]+)?(?:;[\w.+-]+=[\w.+-]+)*;base64,", re.IGNORECASE)

MIME_MAP = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".svg": "image/svg+xml",
}


def split_data_uri(payload: str) -> Tuple[Optional[str], str]:
    """Split an embedded-encoded payload into (mime_type or None, base64 body)"""
    match = DATA_URI_REGEX.match(payload)
    if not match:
        return None, payload
    return match.group(1), payload[match.end():]


def strip_data_uri_prefix(payload: str) -> str:
    return split_data_uri(payload)[1]


def decode_payload(payload: Union[str, bytes]) -> bytes:
    """Decode a base64 payload (optionally data-URI prefixed) to raw bytes.

    ``bytes`` are taken as already raw and returned unchanged.

    Raises:
        ValueError: If the payload is not valid base64
    """
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    if not isinstance(payload, str):
        raise ValueError(f"Unsupported payload type: {type(payload).__name__}")

    body = "".join(strip_data_uri_prefix(payload).split())
    try:
        return base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Payload is not valid base64: {e}")


def mime_type_for(filename: str) -> str:
    """Infer mime type from a filename's extension"""
    ext = PurePath(filename).suffix.lower()
    if not ext:
        return "application/octet-stream"
    return MIME_MAP.get(ext, f"image/{ext.lstrip('.')}")


def encode_payload(data: bytes, filename: str) -> str:
    """Encode raw bytes as a data URI, prefix inferred from the filename"""
    b64 = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type_for(filename)};base64,{b64}"


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def estimate_decoded_size(payload: str) -> int:
    """Approximate decoded byte count of a base64 payload without decoding it"""
    body = strip_data_uri_prefix(payload)
    return (len(body) * 3) // 4


def fetch_remote_bytes(url: str, timeout: int = 30) -> bytes:
    """Fetch artifact bytes produced by a remote generation service"""
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        return response.content
    except requests.RequestException as e:
        logger.error(f"Failed to fetch artifact from {url}: {e}")
        raise


def create_thumbnail(image_bytes: bytes, max_dim: int = 256, quality: int = 75) -> bytes:
    """Create a downscaled JPEG thumbnail.

    Raises:
        OSError: If the bytes are not a readable image (PIL.UnidentifiedImageError)
    """
    with Image.open(BytesIO(image_bytes)) as loaded:
        img = ImageOps.exif_transpose(loaded)
        # JPEG has no alpha: flatten onto white
        if img.mode in ("RGBA", "LA", "P"):
            if img.mode == "P":
                img = img.convert("RGBA")
            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            img = background
        elif img.mode != "RGB":
            img = img.convert("RGB")

        img.thumbnail((max_dim, max_dim), Image.Resampling.LANCZOS)

        output = BytesIO()
        img.save(output, format="JPEG", quality=quality, optimize=True)
        return output.getvalue()


@dataclass(frozen=True)
class EncodedImage:
    """Preview image ready for an MCP response"""
    raw_bytes: bytes
    mime_type: str
    size_px: Tuple[int, int]
    b64_chars: int


def encode_preview(
    image_bytes: bytes,
    *,
    max_dim: int = 512,
    max_b64_chars: int = 100_000,
    quality: int = 70,
) -> EncodedImage:
    """Downscale and re-encode to WebP within a base64 character budget.

    Uses a fixed quality/downscale ladder so the result is deterministic.

    Raises:
        ValueError: If the image exceeds the budget at the smallest setting
        OSError: If the bytes are not a readable image
    """
    with Image.open(BytesIO(image_bytes)) as loaded:
        im = ImageOps.exif_transpose(loaded)
        if im.mode not in ("RGB", "L", "RGBA", "LA"):
            im = im.convert("RGB")

        prefix_len = len("data:image/webp;base64,")
        for target in (max_dim, 384, 256):
            w, h = im.size
            if max(w, h) > target:
                scale = target / max(w, h)
                resized = im.resize((max(1, int(w * scale)), max(1, int(h * scale))), Image.Resampling.LANCZOS)
            else:
                resized = im

            for q in (quality, 55, 40):
                buf = BytesIO()
                resized.save(buf, format="WEBP", quality=q, method=5)
                encoded = buf.getvalue()
                b64_chars = len(base64.b64encode(encoded))
                if b64_chars + prefix_len <= max_b64_chars:
                    logger.info(
                        f"preview encoding: src={len(image_bytes)}B src_dims={w}x{h} "
                        f"preview_dims={resized.size[0]}x{resized.size[1]} quality={q} b64_chars={b64_chars}"
                    )
                    return EncodedImage(
                        raw_bytes=encoded,
                        mime_type="image/webp",
                        size_px=resized.size,
                        b64_chars=b64_chars,
                    )

    raise ValueError(
        f"Image exceeds base64 budget of {max_b64_chars} chars even at 256px, quality=40. Refusing to inline."
    )
