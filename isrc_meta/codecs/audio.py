from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

from ..binary import fourcc, read_u32_be, read_u32_le, splice, synchsafe_decode, synchsafe_encode, u32_le
from ..identifier import from_compact, parse
from ..models import (
    ContainerFormat,
    EmbedFields,
    MalformedContainer,
    MetadataField,
    UnsupportedContainer,
)

logger = logging.getLogger(__name__)

ID3_MAGIC = b"ID3"
ID3_HEADER_SIZE = 10
ID3_FRAME_HEADER_SIZE = 10
ID3_FLAG_EXTENDED_HEADER = 0x40
ID3_FLAG_FOOTER = 0x10
ID3_UTF8 = 0x03

_TEXT_ENCODINGS = {
    0x00: "latin-1",
    0x01: "utf-16",
    0x02: "utf-16-be",
    0x03: "utf-8",
}

RIFF_HEADER_SIZE = 12
CHUNK_HEADER_SIZE = 8
BEXT_ISRC_OFFSET = 602
BEXT_ISRC_LENGTH = 12
BEXT_DATA_SIZE = BEXT_ISRC_OFFSET + BEXT_ISRC_LENGTH


class Id3Codec:
    """Reads the TSRC frame of an ID3v2.3/2.4 tag and writes a fresh ID3v2.4 tag.

    Writing replaces the whole tag: frames other than TSRC/TIT2/TPE1/TCON that
    were present in the source file are not carried over.
    """

    format = ContainerFormat.MP3

    def extract(self, data: bytes) -> Optional[str]:
        field = self.locate(data)
        return field.text_value if field else None

    def locate(self, data: bytes) -> Optional[MetadataField]:
        for frame_id, offset, payload in self.iter_frames(data):
            if frame_id != "TSRC":
                continue
            code = from_compact(_decode_text_frame(payload))
            if code is None:
                logger.debug("TSRC frame at %d holds no valid identifier", offset)
                continue
            return MetadataField(offset=offset, length=len(payload), text_value=str(code))
        return None

    def iter_frames(self, data: bytes) -> Iterator[Tuple[str, int, bytes]]:
        """Yield ``(frame_id, payload_offset, payload)`` for every frame in the tag."""
        version, flags, size = _read_id3_header(data)
        end = min(ID3_HEADER_SIZE + size, len(data))
        offset = ID3_HEADER_SIZE
        if flags & ID3_FLAG_EXTENDED_HEADER:
            offset += _extended_header_size(data, version)
        while offset + ID3_FRAME_HEADER_SIZE <= end:
            raw_id = data[offset : offset + 4]
            if raw_id[0] == 0:
                # Padding reached.
                return
            frame_id = raw_id.decode("latin-1")
            if version >= 4:
                frame_size = synchsafe_decode(data[offset + 4 : offset + 8])
            else:
                frame_size = read_u32_be(data, offset + 4)
            start = offset + ID3_FRAME_HEADER_SIZE
            if start + frame_size > end:
                raise MalformedContainer(
                    f"Frame {frame_id} at {offset} overruns the tag ({frame_size} bytes)"
                )
            yield frame_id, start, data[start : start + frame_size]
            offset = start + frame_size

    def embed(self, data: bytes, fields: EmbedFields) -> bytes:
        code = str(parse(fields.code))
        values = (
            ("TSRC", code),
            ("TIT2", fields.title),
            ("TPE1", fields.artist),
            ("TCON", fields.genre),
        )
        frames = b"".join(self.text_frame(frame_id, value) for frame_id, value in values if value)
        header = ID3_MAGIC + bytes((4, 0, 0)) + synchsafe_encode(len(frames))
        return header + frames + data[self.audio_offset(data) :]

    def audio_offset(self, data: bytes) -> int:
        """Offset of the first byte after any leading ID3v2 tag (0 when untagged)."""
        if not data.startswith(ID3_MAGIC):
            return 0
        _version, flags, size = _read_id3_header(data)
        offset = ID3_HEADER_SIZE + size
        if flags & ID3_FLAG_FOOTER:
            offset += ID3_HEADER_SIZE
        if offset > len(data):
            raise MalformedContainer(
                f"ID3 tag declares {size} bytes but the file has {len(data)}"
            )
        return offset

    @staticmethod
    def text_frame(frame_id: str, text: str) -> bytes:
        body = bytes((ID3_UTF8,)) + text.encode("utf-8")
        return frame_id.encode("ascii") + synchsafe_encode(len(body)) + b"\x00\x00" + body


@dataclass(frozen=True, slots=True)
class RiffChunk:
    chunk_id: str
    offset: int
    data_offset: int
    size: int
    next_offset: int


class BextCodec:
    """Reads and writes the ISRC field of a Broadcast Wave ``bext`` chunk.

    The field is 12 bytes at offset 602 of the chunk data, so the code is
    stored in its compact form (``ZA80G2500123``) and re-hyphenated on read.
    An existing ``bext`` chunk large enough to hold the field is patched in
    place; otherwise a new zero-filled chunk is inserted before ``data``.
    """

    format = ContainerFormat.WAV

    def extract(self, data: bytes) -> Optional[str]:
        field = self.locate(data)
        return field.text_value if field else None

    def locate(self, data: bytes) -> Optional[MetadataField]:
        for chunk in self.iter_chunks(data):
            if chunk.chunk_id != "bext":
                continue
            field_offset = chunk.data_offset + BEXT_ISRC_OFFSET
            if chunk.size < BEXT_DATA_SIZE or field_offset + BEXT_ISRC_LENGTH > len(data):
                logger.debug("bext chunk at %d too short for an ISRC field", chunk.offset)
                return None
            raw = data[field_offset : field_offset + BEXT_ISRC_LENGTH]
            text = raw.split(b"\x00", 1)[0].decode("latin-1").strip()
            code = from_compact(text)
            if code is None:
                # Unset field, or CodingHistory text starting at the same offset.
                return None
            return MetadataField(offset=field_offset, length=BEXT_ISRC_LENGTH, text_value=str(code))
        return None

    def iter_chunks(self, data: bytes) -> Iterator[RiffChunk]:
        if len(data) < RIFF_HEADER_SIZE or data[:4] != b"RIFF" or data[8:12] != b"WAVE":
            raise UnsupportedContainer("Not a RIFF/WAVE container")
        offset = RIFF_HEADER_SIZE
        while offset + CHUNK_HEADER_SIZE <= len(data):
            chunk_id = fourcc(data, offset)
            size = read_u32_le(data, offset + 4)
            data_offset = offset + CHUNK_HEADER_SIZE
            # Chunks are word aligned; odd sizes carry one pad byte.
            next_offset = min(data_offset + size + (size & 1), len(data))
            yield RiffChunk(chunk_id, offset, data_offset, size, next_offset)
            offset = data_offset + size + (size & 1)

    def embed(self, data: bytes, fields: EmbedFields) -> bytes:
        isrc_field = parse(fields.code).compact().encode("ascii").ljust(BEXT_ISRC_LENGTH, b"\x00")
        chunks = list(self.iter_chunks(data))
        existing = next((c for c in chunks if c.chunk_id == "bext"), None)
        if existing is not None and existing.size >= BEXT_DATA_SIZE:
            if existing.data_offset + BEXT_DATA_SIZE > len(data):
                raise MalformedContainer("bext chunk is truncated")
            return splice(
                data,
                existing.data_offset + BEXT_ISRC_OFFSET,
                isrc_field,
                remove=BEXT_ISRC_LENGTH,
            )
        data_chunk = next((c for c in chunks if c.chunk_id == "data"), None)
        if data_chunk is None:
            raise MalformedContainer("WAV container has no data chunk")
        parts = [data[:RIFF_HEADER_SIZE]]
        for chunk in chunks:
            if chunk is data_chunk:
                parts.append(self.bext_chunk(isrc_field))
            if chunk.chunk_id == "bext":
                # Too short to carry the field; the new chunk replaces it.
                continue
            parts.append(data[chunk.offset : chunk.next_offset])
        parts.append(data[chunks[-1].next_offset :])
        out = b"".join(parts)
        return splice(out, 4, u32_le(len(out) - 8), remove=4)

    @staticmethod
    def bext_chunk(isrc_field: bytes) -> bytes:
        payload = bytes(BEXT_ISRC_OFFSET) + isrc_field
        return b"bext" + u32_le(len(payload)) + payload


def _read_id3_header(data: bytes) -> Tuple[int, int, int]:
    if not data.startswith(ID3_MAGIC):
        raise UnsupportedContainer("No ID3v2 tag")
    if len(data) < ID3_HEADER_SIZE:
        raise MalformedContainer("Truncated ID3v2 header")
    version = data[3]
    if version not in (3, 4):
        raise UnsupportedContainer(f"ID3v2.{version} tags are not supported")
    flags = data[5]
    size = synchsafe_decode(data[6:10])
    return version, flags, size


def _extended_header_size(data: bytes, version: int) -> int:
    if version >= 4:
        # v2.4: synchsafe size covering the whole extended header.
        return synchsafe_decode(data[10:14])
    # v2.3: size excludes its own 4 bytes.
    return read_u32_be(data, 10) + 4


def _decode_text_frame(payload: bytes) -> Optional[str]:
    if not payload:
        return None
    encoding = _TEXT_ENCODINGS.get(payload[0])
    if encoding is None:
        raise MalformedContainer(f"Unknown ID3 text encoding {payload[0]:#x}")
    text = payload[1:].decode(encoding, errors="replace")
    for value in text.split("\x00"):
        if value.strip():
            return value.strip()
    return None
