from __future__ import annotations

import logging
import zlib
from dataclasses import dataclass
from typing import Iterator, Optional

from ..binary import fourcc, read_u16_be, read_u32_be, splice, u16_be, u32_be, u32_le
from ..identifier import ISRC_TEXT_PATTERN, parse
from ..models import (
    ContainerFormat,
    EmbedFields,
    MalformedContainer,
    MetadataField,
    UnsupportedContainer,
)

logger = logging.getLogger(__name__)

SOI = b"\xff\xd8"
MARKER_APP1 = 0xE1
MARKER_APP13 = 0xED
MARKER_SOS = 0xDA
MARKER_EOI = 0xD9
MAX_SEGMENT_LENGTH = 0xFFFF

EXIF_IDENTIFIER = b"Exif\x00\x00"
TIFF_LITTLE_ENDIAN = b"II*\x00"
TAG_EXIF_IFD = 0x8769
TAG_USER_COMMENT = 0x9286
TIFF_LONG = 4
TIFF_UNDEFINED = 7
USER_COMMENT_ASCII = b"ASCII\x00\x00\x00"

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
PNG_TEXT_KEYWORD = b"ISRC"


@dataclass(frozen=True, slots=True)
class JpegSegment:
    marker: int
    offset: int
    end: int
    payload: bytes

    @property
    def payload_offset(self) -> int:
        return self.offset + 4


@dataclass(frozen=True, slots=True)
class PngChunk:
    chunk_type: str
    offset: int
    end: int
    payload: bytes

    @property
    def payload_offset(self) -> int:
        return self.offset + 8


class JpegCodec:
    """Finds ``ISRC:<code>`` text in APP1/APP13 segments and writes an EXIF APP1.

    Reading is a text scan of the segment payload, not an IFD walk, so codes
    stored in non-ASCII encodings (a UTF-16 UserComment) are not found.
    """

    format = ContainerFormat.JPEG

    def extract(self, data: bytes) -> Optional[str]:
        field = self.locate(data)
        return field.text_value if field else None

    def locate(self, data: bytes) -> Optional[MetadataField]:
        for segment in self.iter_segments(data):
            if segment.marker not in (MARKER_APP1, MARKER_APP13):
                continue
            field = _scan_text(segment.payload, segment.payload_offset)
            if field:
                return field
        return None

    def iter_segments(self, data: bytes) -> Iterator[JpegSegment]:
        """Yield marker segments up to the start of the entropy-coded scan."""
        if not data.startswith(SOI):
            raise UnsupportedContainer("Missing JPEG SOI marker")
        offset = len(SOI)
        while offset + 2 <= len(data):
            if data[offset] != 0xFF:
                raise MalformedContainer(f"Expected a marker at {offset}")
            marker = data[offset + 1]
            if marker == 0xFF:
                # Fill byte before the real marker.
                offset += 1
                continue
            if marker in (MARKER_SOS, MARKER_EOI):
                return
            if marker == 0x01 or 0xD0 <= marker <= 0xD7:
                offset += 2
                continue
            length = read_u16_be(data, offset + 2)
            end = offset + 2 + length
            if length < 2 or end > len(data):
                raise MalformedContainer(f"Segment {marker:#x} at {offset} is truncated")
            yield JpegSegment(marker, offset, end, data[offset + 4 : end])
            offset = end

    def embed(self, data: bytes, fields: EmbedFields) -> bytes:
        code = str(parse(fields.code))
        segment = self.exif_segment(code)
        insert_at = len(SOI)
        stale: list[JpegSegment] = []
        for existing in self.iter_segments(data):
            if existing.marker & 0xF0 != 0xE0:
                break
            if self._is_own_segment(existing):
                stale.append(existing)
            insert_at = existing.end
        out = splice(data, insert_at, segment)
        # Drop segments written by an earlier embed so the new code is the one found first.
        for old in reversed(stale):
            out = splice(out, old.offset, b"", remove=old.end - old.offset)
        return out

    @staticmethod
    def exif_payload(code: str) -> bytes:
        comment = USER_COMMENT_ASCII + f"ISRC:{code}".encode("ascii")
        # IFD0 holds one entry pointing at the Exif IFD, which holds the UserComment.
        ifd0_offset = 8
        exif_ifd_offset = ifd0_offset + 2 + 12 + 4
        comment_offset = exif_ifd_offset + 2 + 12 + 4
        tiff = b"".join(
            (
                TIFF_LITTLE_ENDIAN,
                u32_le(ifd0_offset),
                _ifd_le(TAG_EXIF_IFD, TIFF_LONG, 1, exif_ifd_offset),
                _ifd_le(TAG_USER_COMMENT, TIFF_UNDEFINED, len(comment), comment_offset),
                comment,
            )
        )
        return EXIF_IDENTIFIER + tiff

    def exif_segment(self, code: str) -> bytes:
        payload = self.exif_payload(code)
        length = len(payload) + 2
        if length > MAX_SEGMENT_LENGTH:
            raise MalformedContainer(f"APP1 segment of {length} bytes is too large")
        return bytes((0xFF, MARKER_APP1)) + u16_be(length) + payload

    def _is_own_segment(self, segment: JpegSegment) -> bool:
        if segment.marker != MARKER_APP1:
            return False
        field = _scan_text(segment.payload, segment.payload_offset)
        return field is not None and segment.payload == self.exif_payload(field.text_value)


class PngCodec:
    """Reads ISRC text from tEXt/iTXt chunks and writes a ``tEXt`` chunk keyed ``ISRC``."""

    format = ContainerFormat.PNG

    def extract(self, data: bytes) -> Optional[str]:
        field = self.locate(data)
        return field.text_value if field else None

    def locate(self, data: bytes) -> Optional[MetadataField]:
        for chunk in self.iter_chunks(data):
            if chunk.chunk_type == "tEXt":
                field = _scan_text(chunk.payload, chunk.payload_offset)
            elif chunk.chunk_type == "iTXt":
                field = _scan_itxt(chunk)
            else:
                continue
            if field:
                return field
        return None

    def iter_chunks(self, data: bytes) -> Iterator[PngChunk]:
        if not data.startswith(PNG_SIGNATURE):
            raise UnsupportedContainer("Missing PNG signature")
        offset = len(PNG_SIGNATURE)
        while offset + 8 <= len(data):
            length = read_u32_be(data, offset)
            chunk_type = fourcc(data, offset + 4)
            start = offset + 8
            end = start + length + 4
            if end > len(data):
                raise MalformedContainer(f"Chunk {chunk_type} at {offset} is truncated")
            yield PngChunk(chunk_type, offset, end, data[start : start + length])
            if chunk_type == "IEND":
                return
            offset = end

    def embed(self, data: bytes, fields: EmbedFields) -> bytes:
        code = str(parse(fields.code))
        idat: Optional[PngChunk] = None
        stale: list[PngChunk] = []
        for chunk in self.iter_chunks(data):
            if chunk.chunk_type == "IDAT":
                idat = chunk
                break
            keyword = chunk.payload.split(b"\x00", 1)[0]
            if chunk.chunk_type in ("tEXt", "iTXt") and keyword == PNG_TEXT_KEYWORD:
                stale.append(chunk)
        if idat is None:
            raise MalformedContainer("PNG has no IDAT chunk")
        out = splice(data, idat.offset, self.text_chunk(PNG_TEXT_KEYWORD, code.encode("latin-1")))
        for old in reversed(stale):
            out = splice(out, old.offset, b"", remove=old.end - old.offset)
        return out

    @staticmethod
    def text_chunk(keyword: bytes, text: bytes) -> bytes:
        body = b"tEXt" + keyword + b"\x00" + text
        crc = zlib.crc32(body) & 0xFFFFFFFF
        return u32_be(len(body) - 4) + body + u32_be(crc)


def _scan_text(payload: bytes, base_offset: int, encoding: str = "latin-1") -> Optional[MetadataField]:
    text = payload.decode(encoding, errors="replace")
    match = ISRC_TEXT_PATTERN.search(text)
    if not match:
        return None
    value = match.group(1)
    return MetadataField(
        offset=base_offset + len(text[: match.start(1)].encode(encoding, errors="replace")),
        length=len(value),
        text_value=value.upper(),
    )


def _scan_itxt(chunk: PngChunk) -> Optional[MetadataField]:
    # keyword \0 compression-flag compression-method language \0 translated \0 text
    keyword, sep, rest = chunk.payload.partition(b"\x00")
    if not sep or len(rest) < 2:
        return None
    compressed = rest[0] == 1
    _language, _, rest = rest[2:].partition(b"\x00")
    _translated, _, text = rest.partition(b"\x00")
    text_start = len(chunk.payload) - len(text)
    if compressed:
        try:
            text = zlib.decompress(text)
        except zlib.error:
            logger.debug("Compressed iTXt chunk at %d could not be inflated", chunk.offset)
            return None
    # The keyword acts as the label, as it does for tEXt.
    prefix = len(keyword) + 1
    field = _scan_text(keyword + b"\x00" + text, 0, "utf-8")
    if field is None:
        return None
    if compressed:
        # Offsets inside inflated text do not map onto the file; report the chunk.
        return MetadataField(offset=chunk.payload_offset, length=len(chunk.payload), text_value=field.text_value)
    return MetadataField(
        offset=chunk.payload_offset + text_start + field.offset - prefix,
        length=field.length,
        text_value=field.text_value,
    )


def _ifd_le(tag: int, field_type: int, count: int, value: int) -> bytes:
    return b"".join(
        (
            (1).to_bytes(2, "little"),
            tag.to_bytes(2, "little"),
            field_type.to_bytes(2, "little"),
            count.to_bytes(4, "little"),
            value.to_bytes(4, "little"),
            (0).to_bytes(4, "little"),
        )
    )
