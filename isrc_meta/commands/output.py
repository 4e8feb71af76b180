from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class CheckLine:
    label: str
    status: str
    detail: Optional[str] = None

    def render(self) -> str:
        if self.detail:
            return f"{self.label}: {self.status} ({self.detail})"
        return f"{self.label}: {self.status}"


def ok(label: str, detail: Optional[str] = None) -> str:
    return CheckLine(label, "OK", detail).render()


def invalid(label: str, detail: Optional[str] = None) -> str:
    return CheckLine(label, "INVALID", detail).render()


def missing(label: str, detail: Optional[str] = None) -> str:
    return CheckLine(label, "NONE", detail).render()


def unchanged(label: str, detail: Optional[str] = None) -> str:
    return CheckLine(label, "UNCHANGED", detail).render()
