from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from ticketdesk.metrics import observe_fallback_warning
from ticketdesk.platform.security.errors import BackendError


logger = logging.getLogger("ticketdesk.fallback")

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class LookupStrategy(Generic[T]):
    name: str
    run: Callable[[], T | None]


@dataclass(slots=True)
class FallbackResult(Generic[T]):
    value: T | None = None
    strategy: str | None = None
    warnings: list[str] = field(default_factory=list)


def first_match(strategies: Sequence[LookupStrategy[T]]) -> FallbackResult[T]:
    """Try each strategy in order and keep the first non-empty result.

    Backend errors from earlier strategies become warnings on the result. If
    nothing matched and at least one strategy failed, the failure is fatal.
    """
    warnings: list[str] = []
    for strategy in strategies:
        try:
            value = strategy.run()
        except BackendError as exc:
            observe_fallback_warning(strategy.name)
            warnings.append(f"{strategy.name}: {exc.message}")
            continue
        if value:
            if warnings:
                logger.warning("lookup.fallback_used", extra={"strategy": strategy.name, "warnings": warnings})
            return FallbackResult(value=value, strategy=strategy.name, warnings=warnings)

    if warnings:
        raise BackendError("all lookup strategies failed", details={"warnings": warnings})
    return FallbackResult(warnings=warnings)
