from __future__ import annotations

import io
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Mapping, Optional

from mutagen import MutagenError
from mutagen.id3 import ID3, ID3NoHeaderError

from .codecs import codec_for, detect_format, format_from_extension
from .identifier import parse
from .models import (
    ContainerFormat,
    ContainerReport,
    EmbedFields,
    EmbedResult,
    IsrcMetaError,
)

logger = logging.getLogger(__name__)


class MetadataWriter:
    """Embeds and extracts identifiers across MP3, WAV, JPEG and PNG buffers.

    The container is always identified by its signature, never by the file
    name. Nothing here raises for bad input: embedding falls back to the
    original bytes and extraction to ``None``.
    """

    EXTRA_KEYS = ("title", "artist", "genre")

    def embed(self, data: bytes, code: str, extra: Optional[Mapping[str, str]] = None) -> bytes:
        return self.embed_result(data, code, extra).data

    def embed_result(
        self, data: bytes, code: str, extra: Optional[Mapping[str, str]] = None
    ) -> EmbedResult:
        try:
            canonical = str(parse(code))
        except ValueError:
            logger.warning("Refusing to embed invalid code %r", code)
            return EmbedResult.unchanged(data, "invalid code")
        fmt = detect_format(data)
        if fmt is None:
            logger.debug("Unsupported container (%d bytes); leaving it untouched", len(data))
            return EmbedResult.unchanged(data, "unsupported container")
        fields = self._fields(canonical, extra)
        try:
            out = codec_for(fmt).embed(data, fields)
        except (IsrcMetaError, ValueError) as exc:
            logger.warning("Failed to embed %s into %s data: %s", canonical, fmt.value, exc)
            return EmbedResult.unchanged(data, str(exc), fmt)
        if fmt is ContainerFormat.MP3:
            dropped = self.dropped_id3_frames(data)
            if dropped:
                logger.warning("Rewriting the ID3 tag drops frames: %s", ", ".join(dropped))
        logger.debug("Embedded %s into %s (%d -> %d bytes)", canonical, fmt.value, len(data), len(out))
        return EmbedResult(data=out, changed=True, format=fmt)

    def extract(self, data: bytes) -> Optional[str]:
        fmt = detect_format(data)
        if fmt is None:
            return None
        try:
            return codec_for(fmt).extract(data)
        except (IsrcMetaError, ValueError) as exc:
            logger.debug("Failed to read %s metadata: %s", fmt.value, exc)
            return None

    def describe(self, data: bytes, filename: str | os.PathLike[str] | None = None) -> ContainerReport:
        fmt = detect_format(data)
        hint = format_from_extension(filename)
        report = ContainerReport(
            format=fmt,
            extension_hint=hint,
            embedded_code=self.extract(data) if fmt else None,
            size=len(data),
        )
        if report.extension_mismatch:
            logger.warning(
                "%s looks like %s but is named like %s",
                filename,
                fmt.value if fmt else "?",
                hint.value if hint else "?",
            )
        return report

    def embed_file(
        self,
        path: Path,
        code: str,
        extra: Optional[Mapping[str, str]] = None,
        output: Optional[Path] = None,
    ) -> bool:
        """Embed ``code`` into ``path`` (or a copy at ``output``).

        Returns False when the file was left as it is. The new bytes are
        written to a temporary sibling and moved into place, so a failed
        write never truncates the target.
        """
        data = path.read_bytes()
        result = self.embed_result(data, code, extra)
        if not result.changed:
            logger.warning("Left %s unchanged: %s", path, result.reason)
            return False
        _atomic_write(output or path, result.data)
        return True

    def extract_file(self, path: Path) -> Optional[str]:
        try:
            data = path.read_bytes()
        except OSError as exc:
            logger.warning("Failed to read %s: %s", path, exc)
            return None
        return self.extract(data)

    def dropped_id3_frames(self, data: bytes) -> List[str]:
        """Frame ids of the existing ID3 tag that a rewrite will not carry over."""
        try:
            tags = ID3(io.BytesIO(data))
        except ID3NoHeaderError:
            return []
        except (MutagenError, ValueError) as exc:
            logger.debug("Existing ID3 tag unreadable: %s", exc)
            return []
        kept = {"TSRC", "TIT2", "TPE1", "TCON"}
        return sorted({frame.FrameID for frame in tags.values()} - kept)

    def _fields(self, code: str, extra: Optional[Mapping[str, str]]) -> EmbedFields:
        values = {key: _clean(extra.get(key)) for key in self.EXTRA_KEYS} if extra else {}
        return EmbedFields(code=code, **values)


def _clean(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _atomic_write(target: Path, data: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, target)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
