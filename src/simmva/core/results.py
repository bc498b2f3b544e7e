"""Tagged sensitivity query results.

A sensitivity query either resolves to a value (possibly zero, when the query
does not apply to the product) or is explicitly unsupported. Callers must be
able to tell the two apart, so they travel as distinct types instead of a
value/``None`` pair.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Supported:
    """A resolved sensitivity value (scalar or path-wise array)."""

    value: Any

    @property
    def is_supported(self) -> bool:
        return True


@dataclass(frozen=True)
class Unsupported:
    """No implementation exists for the queried risk type / risk class."""

    reason: str = "not supported"

    @property
    def is_supported(self) -> bool:
        return False


UNSUPPORTED = Unsupported()

SensitivityResult = Union[Supported, Unsupported]


__all__ = ["Supported", "Unsupported", "UNSUPPORTED", "SensitivityResult"]
