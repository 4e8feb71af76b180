from __future__ import annotations

import csv
import sys
from pathlib import Path
from typing import Iterable, Optional, TextIO, Tuple

from ..models import RegistryEntry
from ..registry import Registry

HEADER = ("ISRC", "Track Title", "Owner", "Generated At", "Status", "Used At")


def write_csv(entries: Iterable[Tuple[str, RegistryEntry]], fh: TextIO) -> int:
    writer = csv.writer(fh)
    writer.writerow(HEADER)
    rows = 0
    for code, entry in entries:
        writer.writerow(
            (
                code,
                entry.track_title,
                entry.owner_name,
                entry.generated_at.isoformat(),
                "used" if entry.used else "available",
                entry.used_at.isoformat() if entry.used_at else "",
            )
        )
        rows += 1
    return rows


def run(registry: Registry, out: Optional[Path] = None) -> int:
    if out is None:
        return write_csv(registry.entries(), sys.stdout)
    with out.open("w", encoding="utf-8", newline="") as fh:
        rows = write_csv(registry.entries(), fh)
    print(f"Exported {rows} code(s) to {out}")
    return rows
