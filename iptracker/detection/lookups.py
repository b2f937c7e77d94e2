"""Provider protocols and the guarded, time-boxed lookup slots.

A *slot* is one kind of lookup (geolocation, Tor). A slot may hold several
providers; they race and the first one to answer successfully wins. Every
failure mode of a slot collapses to ``None`` so callers only ever see
"signal present" or "signal absent".
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import (
    Awaitable,
    Callable,
    Generic,
    List,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
    runtime_checkable,
)

from iptracker.telemetry.metrics import DetectionMetrics

from .errors import LookupFailure, LookupMalformed, LookupTimeout, LookupUnavailable
from .models import GeoLookupResult, TorLookupResult

log = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R", covariant=True)


@runtime_checkable
class LookupProvider(Protocol[R]):
    """
    Capability interface for one external source.

    ``lookup`` returns a result, or ``None`` when the source has nothing to
    say. Implementations should raise a ``LookupFailure`` subclass on error;
    anything else they raise is treated as ``LookupUnavailable``.
    """

    name: str

    async def lookup(self, ip: str) -> Optional[R]: ...


GeoProvider = LookupProvider[GeoLookupResult]
TorProvider = LookupProvider[TorLookupResult]


@dataclass(frozen=True)
class FunctionProvider(Generic[T]):
    """Adapts a plain ``async def fn(ip)`` to the provider interface."""

    name: str
    fn: Callable[[str], Awaitable[Optional[T]]]

    async def lookup(self, ip: str) -> Optional[T]:
        return await self.fn(ip)


async def within_budget(
    coro_factory: Callable[[], Awaitable[T]], *, budget_ms: Optional[int], source: str = ""
) -> T:
    """Run the given coroutine factory within an optional latency budget.

    If ``budget_ms`` is ``None`` the coroutine runs without a timeout. If the
    coroutine exceeds the budget it is cancelled and :class:`LookupTimeout`
    is raised.
    """
    if budget_ms is None:
        return await coro_factory()

    timeout_s = max(0.0, budget_ms / 1000.0)
    try:
        return await asyncio.wait_for(coro_factory(), timeout=timeout_s)
    except asyncio.TimeoutError as exc:
        raise LookupTimeout(f"exceeded budget: {budget_ms} ms", source=source) from exc


async def _call(provider: LookupProvider[T], ip: str) -> T:
    name = getattr(provider, "name", type(provider).__name__)
    try:
        result = await provider.lookup(ip)
    except asyncio.CancelledError:
        raise
    except LookupFailure:
        raise
    except Exception as exc:  # noqa: BLE001 - third-party providers
        raise LookupUnavailable(f"{type(exc).__name__}: {exc}", source=name) from exc
    if result is None:
        raise LookupUnavailable("no result", source=name)
    return result


async def first_success(providers: Sequence[LookupProvider[T]], ip: str) -> T:
    """
    Race ``providers`` and return the first successful result.

    Losers are cancelled without being awaited to completion. If every
    provider fails, the last failure is re-raised.
    """
    if not providers:
        raise LookupUnavailable("no providers configured")
    if len(providers) == 1:
        return await _call(providers[0], ip)

    pending = {asyncio.ensure_future(_call(p, ip)) for p in providers}
    last_error: LookupFailure = LookupUnavailable("all providers failed")
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                exc = task.exception()
                if exc is None:
                    return task.result()
                if isinstance(exc, LookupFailure):
                    last_error = exc
                    log.debug("provider %s failed: %s", exc.source, exc)
        raise last_error
    finally:
        for task in pending:
            task.cancel()


class LookupSlot(Generic[T]):
    """One time-boxed lookup slot; ``run`` never raises."""

    def __init__(
        self,
        source: str,
        providers: Sequence[LookupProvider[T]],
        timeout_ms: int,
        metrics: Optional[DetectionMetrics] = None,
    ) -> None:
        self.source = source
        self.providers: List[LookupProvider[T]] = list(providers)
        self.timeout_ms = int(timeout_ms)
        self._metrics = metrics

    @property
    def enabled(self) -> bool:
        return bool(self.providers)

    async def run(self, ip: str) -> Optional[T]:
        if not self.providers:
            return None

        t0 = time.perf_counter()
        outcome = "ok"
        reason = ""
        result: Optional[T] = None
        try:
            result = await within_budget(
                lambda: first_success(self.providers, ip),
                budget_ms=self.timeout_ms,
                source=self.source,
            )
        except (LookupTimeout, LookupMalformed) as exc:
            outcome, reason = exc.outcome, str(exc)
        except LookupFailure as exc:
            outcome, reason = LookupUnavailable.outcome, str(exc)
        except Exception as exc:  # noqa: BLE001 - a slot degrades to absent
            outcome, reason = LookupUnavailable.outcome, type(exc).__name__

        if outcome != "ok":
            log.info(
                "lookup %s",
                outcome,
                extra={
                    "event": "lookup_failed",
                    "source": self.source,
                    "outcome": outcome,
                    "reason": reason,
                    "budget_ms": self.timeout_ms,
                },
            )
        if self._metrics is not None:
            self._metrics.observe_lookup(self.source, outcome, time.perf_counter() - t0)
        return result
