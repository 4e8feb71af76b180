from __future__ import annotations

from typing import Dict, Iterable

from ..registry import Registry
from .output import missing, ok


def parse_context(pairs: Iterable[str]) -> Dict[str, str]:
    context: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected key=value, got {pair!r}")
        context[key.strip()] = value.strip()
    return context


async def run(registry: Registry, code: str, pairs: Iterable[str] = ()) -> bool:
    context = parse_context(pairs)
    if await registry.mark_used(code, context or None):
        print(ok(code.strip().upper(), "marked used"))
        return True
    print(missing(code, "not in the registry"))
    return False
