"""Container codecs that read and write an identifier inside MP3, WAV, JPEG and PNG bytes.

Each codec works on an immutable ``bytes`` buffer: ``extract``/``locate`` only
read, ``embed`` returns a new buffer. Codecs raise ``UnsupportedContainer``
when the signature is wrong and ``MalformedContainer`` when a structure is
truncated; the ``MetadataWriter`` facade turns both into safe defaults.
"""

from __future__ import annotations

from pathlib import PurePath
from typing import Optional, Protocol

from ..models import ContainerFormat, EmbedFields, MetadataField
from .audio import BextCodec, Id3Codec
from .image import PNG_SIGNATURE, SOI, JpegCodec, PngCodec

_EXTENSION_HINTS = {
    ".mp3": ContainerFormat.MP3,
    ".wav": ContainerFormat.WAV,
    ".wave": ContainerFormat.WAV,
    ".bwf": ContainerFormat.WAV,
    ".jpg": ContainerFormat.JPEG,
    ".jpeg": ContainerFormat.JPEG,
    ".png": ContainerFormat.PNG,
}


class ContainerCodec(Protocol):
    format: ContainerFormat

    def extract(self, data: bytes) -> Optional[str]: ...

    def locate(self, data: bytes) -> Optional[MetadataField]: ...

    def embed(self, data: bytes, fields: EmbedFields) -> bytes: ...


def detect_format(data: bytes) -> Optional[ContainerFormat]:
    """Identify a container by its leading magic bytes."""
    if data.startswith(SOI):
        return ContainerFormat.JPEG
    if data.startswith(PNG_SIGNATURE):
        return ContainerFormat.PNG
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return ContainerFormat.WAV
    if data.startswith(b"ID3"):
        return ContainerFormat.MP3
    # Bare MPEG audio: 11-bit frame sync.
    if len(data) >= 2 and data[0] == 0xFF and data[1] & 0xE0 == 0xE0:
        return ContainerFormat.MP3
    return None


def format_from_extension(name: str | PurePath | None) -> Optional[ContainerFormat]:
    if not name:
        return None
    return _EXTENSION_HINTS.get(PurePath(name).suffix.lower())


def codec_for(fmt: ContainerFormat) -> ContainerCodec:
    match fmt:
        case ContainerFormat.MP3:
            return Id3Codec()
        case ContainerFormat.WAV:
            return BextCodec()
        case ContainerFormat.JPEG:
            return JpegCodec()
        case ContainerFormat.PNG:
            return PngCodec()
    raise ValueError(f"No codec for {fmt!r}")


__all__ = [
    "BextCodec",
    "ContainerCodec",
    "Id3Codec",
    "JpegCodec",
    "PngCodec",
    "codec_for",
    "detect_format",
    "format_from_extension",
]
