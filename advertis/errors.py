"""Exception taxonomy for the scoring and regeneration core."""
from __future__ import annotations


class AdvertisError(Exception):
    """Base class for all Advertis errors."""


class StrategyNotFoundError(AdvertisError):
    """The requested strategy does not exist."""
    def __init__(self, strategy_id: int):
        super().__init__(f"Strategy not found: {strategy_id}")
        self.strategy_id = strategy_id


class UnauthorizedError(AdvertisError):
    """The actor does not own the strategy."""
    def __init__(self, strategy_id: int, actor_id: str):
        super().__init__(f"Unauthorized: strategy {strategy_id} does not belong to {actor_id}")
        self.strategy_id = strategy_id
        self.actor_id = actor_id


class GenerationError(AdvertisError):
    """Content generator failed or returned unparseable output."""
    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class PersistenceError(AdvertisError):
    """A write to the store failed."""
