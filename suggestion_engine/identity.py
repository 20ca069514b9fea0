"""Caller identity lookup with a single fixed-delay retry."""

import logging
import time
from contextvars import ContextVar
from typing import Callable, Optional

from suggestion_engine.exceptions import IdentityUnavailable

logger = logging.getLogger(__name__)

# Set per request by the API layer.
current_agent_id: ContextVar[Optional[str]] = ContextVar("current_agent_id", default=None)


class IdentityResolver:
    """
    Resolves the acting agent's id.

    The identity source may not be ready the first time it is asked (the
    session is still loading). One retry after a fixed delay is allowed;
    after that the caller gets IdentityUnavailable.
    """

    def __init__(
        self,
        source: Callable[[], Optional[str]],
        retry_delay_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._source = source
        self.retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep

    @classmethod
    def from_context(cls, retry_delay_seconds: float = 0.5) -> "IdentityResolver":
        return cls(current_agent_id.get, retry_delay_seconds=retry_delay_seconds)

    @classmethod
    def static(cls, agent_id: Optional[str]) -> "IdentityResolver":
        return cls(lambda: agent_id, retry_delay_seconds=0)

    def resolve(self) -> str:
        agent_id = self._source()
        if agent_id:
            return agent_id

        logger.info("Caller identity not available yet, retrying in %.2fs", self.retry_delay_seconds)
        self._sleep(self.retry_delay_seconds)
        agent_id = self._source()
        if agent_id:
            return agent_id

        raise IdentityUnavailable("No user ID available")
