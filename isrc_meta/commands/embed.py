from __future__ import annotations

from pathlib import Path
from typing import Mapping, Optional

from ..tagging import MetadataWriter
from .output import ok, unchanged


def run(
    writer: MetadataWriter,
    path: Path,
    code: str,
    *,
    extra: Optional[Mapping[str, str]] = None,
    output: Optional[Path] = None,
) -> bool:
    target = output or path
    if writer.embed_file(path, code, extra, output=output):
        print(ok(str(target), code.strip().upper()))
        return True
    print(unchanged(str(path), "see warnings"))
    return False
