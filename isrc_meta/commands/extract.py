from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from ..tagging import MetadataWriter
from .output import missing, ok


@dataclass(slots=True)
class ExtractReport:
    found: int
    lines: list[str]


def run(writer: MetadataWriter, paths: Iterable[Path]) -> ExtractReport:
    lines: list[str] = []
    found = 0
    for path in paths:
        try:
            data = path.read_bytes()
        except OSError as exc:
            lines.append(missing(str(path), f"unreadable: {exc.strerror or exc}"))
            continue
        report = writer.describe(data, path)
        if report.format is None:
            lines.append(missing(str(path), "unsupported container"))
        elif report.embedded_code:
            found += 1
            lines.append(ok(str(path), report.embedded_code))
        else:
            lines.append(missing(str(path), f"no code in {report.format.value}"))
    return ExtractReport(found=found, lines=lines)
