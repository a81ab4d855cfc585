"""Ordered-strategy resolution.

Several flows need "try these lookups in priority order and stop at the
first hit": mapping a checkout session to a local user, or locating a
user's Stripe subscription. They all go through :class:`OrderedResolver`
so precedence is declared once per flow, as a list.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Strategy = Callable[[], Awaitable[T | None]]


@dataclass(frozen=True)
class Resolved(Generic[T]):
    """A successful lookup and the name of the strategy that produced it."""

    value: T
    strategy: str


class OrderedResolver(Generic[T]):
    """Try named strategies in order; the first non-None result wins.

    Strategies are zero-argument coroutine factories, so a later strategy
    is never started once an earlier one has matched.
    """

    def __init__(self, name: str, strategies: list[tuple[str, Strategy[T]]]) -> None:
        self.name = name
        self.strategies = strategies

    async def resolve(self) -> Resolved[T] | None:
        for strategy_name, strategy in self.strategies:
            value = await strategy()
            if value is not None:
                logger.debug("%s resolved via %s", self.name, strategy_name)
                return Resolved(value=value, strategy=strategy_name)
        logger.info(
            "%s: no strategy matched (tried %s)",
            self.name,
            ", ".join(name for name, _ in self.strategies) or "none",
        )
        return None
