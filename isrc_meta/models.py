from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class IsrcMetaError(Exception):
    """Base class for errors raised by the isrc_meta package."""


class InvalidFormat(IsrcMetaError, ValueError):
    """Raised when a string does not follow the TT-RRR-YY-NNNNN grammar."""


class RangeExhausted(IsrcMetaError):
    """Raised when the owner's designation block has no codes left this year."""


class UnsupportedContainer(IsrcMetaError):
    """Raised by codecs when the byte signature is not the expected one."""


class MalformedContainer(IsrcMetaError):
    """Raised by codecs when a header or chunk is truncated or inconsistent."""


class PersistenceError(IsrcMetaError):
    """Raised when registry state cannot be written to its store."""


class ContainerFormat(str, Enum):
    MP3 = "MP3"
    WAV = "WAV"
    JPEG = "JPEG"
    PNG = "PNG"


@dataclass(frozen=True, slots=True)
class AllocationRange:
    start: int
    end: int
    owner_key: str
    range_index: int

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def contains(self, designation: int) -> bool:
        return self.start <= designation <= self.end

    def overlaps(self, other: AllocationRange) -> bool:
        return self.start <= other.end and other.start <= self.end

    def to_record(self) -> Dict[str, object]:
        return {
            "start": self.start,
            "end": self.end,
            "owner_key": self.owner_key,
            "range_index": self.range_index,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> AllocationRange:
        return cls(
            start=int(record["start"]),
            end=int(record["end"]),
            owner_key=str(record.get("owner_key") or "default"),
            range_index=int(record.get("range_index") or 0),
        )


@dataclass(slots=True)
class RegistryEntry:
    track_title: str
    owner_name: str
    generated_at: datetime
    used: bool = False
    used_at: Optional[datetime] = None
    context: Optional[Dict[str, str]] = None

    def to_record(self) -> Dict[str, object]:
        return {
            "track_title": self.track_title,
            "owner_name": self.owner_name,
            "generated_at": self.generated_at.isoformat(),
            "used": self.used,
            "used_at": self.used_at.isoformat() if self.used_at else None,
            "context": dict(self.context) if self.context is not None else None,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> RegistryEntry:
        context = record.get("context")
        return cls(
            track_title=str(record.get("track_title") or ""),
            owner_name=str(record.get("owner_name") or ""),
            generated_at=_parse_timestamp(record.get("generated_at")) or utcnow(),
            used=bool(record.get("used", False)),
            used_at=_parse_timestamp(record.get("used_at")),
            context={str(k): str(v) for k, v in context.items()} if isinstance(context, dict) else None,
        )


@dataclass(slots=True)
class RegistryState:
    year: str
    last_designation: int
    range: AllocationRange
    codes: Dict[str, RegistryEntry] = field(default_factory=dict)

    @classmethod
    def fresh(cls, year: str, allocation: AllocationRange) -> RegistryState:
        return cls(year=year, last_designation=allocation.start - 1, range=allocation)

    def reset(self, year: str, allocation: AllocationRange) -> None:
        """Start a new counting period; issued codes stay on record."""
        self.year = year
        self.range = allocation
        self.last_designation = allocation.start - 1

    def to_record(self) -> Dict[str, object]:
        return {
            "year": self.year,
            "last_designation": self.last_designation,
            "range": self.range.to_record(),
            "codes": {code: entry.to_record() for code, entry in self.codes.items()},
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> RegistryState:
        allocation = AllocationRange.from_record(record["range"])
        raw_codes = record.get("codes")
        codes: Dict[str, RegistryEntry] = {}
        if isinstance(raw_codes, dict):
            for code, entry in raw_codes.items():
                if isinstance(entry, dict):
                    codes[str(code)] = RegistryEntry.from_record(entry)
        last = record.get("last_designation")
        if not isinstance(last, int) or isinstance(last, bool):
            last = allocation.start - 1
        return cls(
            year=str(record.get("year") or ""),
            last_designation=last,
            range=allocation,
            codes=codes,
        )


@dataclass(frozen=True, slots=True)
class RegistrySummary:
    total: int
    used: int
    available: int
    year: str
    last_designation: int

    def to_record(self) -> Dict[str, object]:
        return {
            "total": self.total,
            "used": self.used,
            "available": self.available,
            "year": self.year,
            "last_designation": self.last_designation,
        }


@dataclass(frozen=True, slots=True)
class MetadataField:
    offset: int
    length: int
    text_value: str


@dataclass(frozen=True, slots=True)
class EmbedFields:
    code: str
    title: Optional[str] = None
    artist: Optional[str] = None
    genre: Optional[str] = None


@dataclass(frozen=True, slots=True)
class EmbedResult:
    data: bytes
    changed: bool
    format: Optional[ContainerFormat] = None
    reason: Optional[str] = None

    @classmethod
    def unchanged(
        cls, data: bytes, reason: str, fmt: Optional[ContainerFormat] = None
    ) -> EmbedResult:
        return cls(data=data, changed=False, format=fmt, reason=reason)


@dataclass(frozen=True, slots=True)
class ContainerReport:
    format: Optional[ContainerFormat]
    extension_hint: Optional[ContainerFormat]
    embedded_code: Optional[str]
    size: int

    @property
    def supports_embedding(self) -> bool:
        return self.format is not None

    @property
    def has_embedded_code(self) -> bool:
        return self.embedded_code is not None

    @property
    def extension_mismatch(self) -> bool:
        return (
            self.format is not None
            and self.extension_hint is not None
            and self.format is not self.extension_hint
        )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: object) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None
