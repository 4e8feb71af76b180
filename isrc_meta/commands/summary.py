from __future__ import annotations

import json

from ..registry import Registry


def run(registry: Registry, *, json_output: bool = False) -> None:
    summary = registry.summary()
    state = registry.state
    if json_output:
        payload = summary.to_record()
        if state is not None:
            payload["range"] = state.range.to_record()
        print(json.dumps(payload, indent=2))
        return
    print(f"Year:       {summary.year}")
    if state is not None:
        print(f"Block:      {state.range.start}-{state.range.end} (index {state.range.range_index})")
        print(f"Remaining:  {state.range.end - summary.last_designation}")
    print(f"Generated:  {summary.total}")
    print(f"Used:       {summary.used}")
    print(f"Available:  {summary.available}")
