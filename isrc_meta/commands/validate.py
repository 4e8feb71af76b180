from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..identifier import parse
from ..models import InvalidFormat
from .output import invalid, ok


@dataclass(slots=True)
class ValidateReport:
    ok: bool
    lines: list[str]


def run(codes: Iterable[str]) -> ValidateReport:
    lines: list[str] = []
    all_valid = True
    for code in codes:
        try:
            parsed = parse(code)
        except InvalidFormat:
            all_valid = False
            lines.append(invalid(code, "expected TT-RRR-YY-NNNNN"))
            continue
        lines.append(ok(str(parsed), f"designation {parsed.designation}"))
    return ValidateReport(ok=all_valid, lines=lines)
