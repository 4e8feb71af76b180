from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from .models import InvalidFormat

CODE_GRAMMAR = r"[A-Z]{2}-[A-Z0-9]{3}-\d{2}-\d{5}"
MAX_DESIGNATION = 99999

_CODE_RE = re.compile(rf"^{CODE_GRAMMAR}$", re.IGNORECASE)
_COMPACT_RE = re.compile(r"^([A-Z]{2})([A-Z0-9]{3})(\d{2})(\d{5})$", re.IGNORECASE)

# Embedded text is either "ISRC:<code>" (EXIF comment style) or a PNG tEXt
# keyword/value pair, which separates the two with NUL.
ISRC_TEXT_PATTERN = re.compile(rf"ISRC[:\s\x00]*({CODE_GRAMMAR})", re.IGNORECASE)

_UNSAFE_CHARS = re.compile(r"[<>\"'&]")


@dataclass(frozen=True, slots=True)
class IdentifierCode:
    territory: str
    registrant: str
    year: str
    designation: int

    def __str__(self) -> str:
        return f"{self.territory}-{self.registrant}-{self.year}-{self.designation:05d}"

    def compact(self) -> str:
        """Twelve-character form without hyphens, as stored in fixed-width fields."""
        return f"{self.territory}{self.registrant}{self.year}{self.designation:05d}"


def validate(code: object) -> bool:
    if not isinstance(code, str):
        return False
    return bool(_CODE_RE.match(code.strip()))


def parse(code: object) -> IdentifierCode:
    if not validate(code):
        raise InvalidFormat(f"Not a TT-RRR-YY-NNNNN identifier: {code!r}")
    territory, registrant, year, designation = str(code).strip().upper().split("-")
    return IdentifierCode(territory, registrant, year, int(designation))


def format_code(territory: str, registrant: str, year: str, designation: int) -> str:
    if designation < 0 or designation > MAX_DESIGNATION:
        raise InvalidFormat(
            f"Designation {designation} does not fit in 5 digits (0..{MAX_DESIGNATION})"
        )
    code = f"{territory}-{registrant}-{year}-{designation:05d}".upper()
    if not validate(code):
        raise InvalidFormat(f"Generated identifier has an invalid format: {code}")
    return code


def from_compact(text: Optional[str]) -> Optional[IdentifierCode]:
    if not text:
        return None
    cleaned = text.strip()
    if validate(cleaned):
        return parse(cleaned)
    match = _COMPACT_RE.match(cleaned)
    if not match:
        return None
    territory, registrant, year, designation = match.groups()
    return IdentifierCode(territory.upper(), registrant.upper(), year, int(designation))


def find_in_text(text: str) -> Optional[str]:
    """Return the first identifier labelled with ``ISRC`` inside free text.

    Copyright notices such as ``"(C) 2025 Label, ISRC: ZA-80G-25-00001"`` match
    as well since only the label and the code itself are anchored.
    """
    match = ISRC_TEXT_PATTERN.search(text)
    if not match:
        return None
    return match.group(1).upper()


def sanitize_text(value: object, limit: int = 100) -> str:
    if value is None:
        return ""
    cleaned = _UNSAFE_CHARS.sub("", str(value)).strip()
    return cleaned[:limit]
