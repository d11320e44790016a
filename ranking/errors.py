"""Exception hierarchy raised by the ranking engine's entry points."""

from __future__ import annotations

from typing import Any


class RankingError(Exception):
    """Base class for all engine errors."""


class InvalidInputError(RankingError, ValueError):
    """The caller handed the engine a malformed item or option."""


class UnknownModeError(RankingError, ValueError):
    """The requested ranking mode is not in the mode table."""


class DependencyFailure(RankingError):
    """A consumed store failed or returned an unusable value.

    Never escapes the engine: the scoring path recovers with neutral
    defaults and records a warning insight instead.
    """

    def __init__(self, store: str, content_id: str, cause: BaseException | None = None) -> None:
        super().__init__(f"{store} lookup failed for {content_id!r}: {cause!r}")
        self.store = store
        self.content_id = content_id
        self.cause = cause


class BatchCancelledError(RankingError):
    """A batch run was cancelled between groups.

    Attributes:
        partial: Results produced before the cancellation was observed,
            in input order.
    """

    def __init__(self, partial: list[Any]) -> None:
        super().__init__(f"batch cancelled after {len(partial)} items")
        self.partial = partial


class InternalError(RankingError):
    """An engine invariant was violated."""
