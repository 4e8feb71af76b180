from __future__ import annotations

from ..registry import Registry


async def run(registry: Registry, title: str, owner: str = "", *, flush: bool = False, reuse: bool = False) -> str:
    if reuse:
        code = await registry.code_for_track(title, owner)
        if flush:
            await registry.flush()
    elif flush:
        code = await registry.generate_and_flush(title, owner)
    else:
        code = await registry.generate(title, owner)
    print(code)
    return code
