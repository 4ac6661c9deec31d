"""Turn uploaded page images into inline, content-addressed payloads."""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import logging
import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Union

LOG = logging.getLogger(__name__)

DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)


def compute_digest(raw: bytes) -> str:
    """Content address for a page image."""
    return hashlib.sha256(raw).hexdigest()


@dataclass(frozen=True)
class EncodedImage:
    """A page image encoded as base64 text plus its mime type."""

    data: str
    mime_type: str
    digest: str = ""

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str) -> "EncodedImage":
        if not raw:
            raise ValueError("Image payload is empty")
        if not mime_type.startswith("image/"):
            raise ValueError(f"Unsupported mime type {mime_type!r}: expected an image")
        return cls(
            data=base64.b64encode(raw).decode("ascii"),
            mime_type=mime_type,
            digest=compute_digest(raw),
        )

    @classmethod
    def from_data_url(cls, url: str) -> "EncodedImage":
        """Parse a browser-style ``data:<mime>;base64,<payload>`` URL."""
        match = DATA_URL_RE.match(url.strip())
        if not match:
            raise ValueError("Not a base64 data URL")
        try:
            raw = base64.b64decode(match.group("data"), validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 payload: {e}") from e
        return cls.from_bytes(raw, match.group("mime"))

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)


def guess_image_mime_type(path: Path) -> str:
    mime_type, _ = mimetypes.guess_type(str(path))
    if mime_type is None or not mime_type.startswith("image/"):
        raise ValueError(f"{path} does not look like an image (mime type {mime_type})")
    return mime_type


def encode_image_file(path: Union[str, Path]) -> EncodedImage:
    """Read and encode a single image file."""
    path = Path(path)
    mime_type = guess_image_mime_type(path)
    image = EncodedImage.from_bytes(path.read_bytes(), mime_type)
    LOG.debug("Encoded %s (%s, sha256=%s)", path, mime_type, image.digest[:12])
    return image


async def encode_image_files(paths: Iterable[Union[str, Path]]) -> List[EncodedImage]:
    """
    Encode several image files concurrently.

    Files are read in worker threads; the returned list follows the order of
    ``paths`` regardless of which file finishes first.
    """
    paths = [Path(p) for p in paths]
    images = await asyncio.gather(*[asyncio.to_thread(encode_image_file, p) for p in paths])
    LOG.info("Encoded %d image(s)", len(images))
    return list(images)
