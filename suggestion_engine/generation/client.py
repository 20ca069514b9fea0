"""Client for the external suggestion-producing service."""

import logging
from typing import Optional

import httpx

from suggestion_engine.exceptions import GenerationFailed
from suggestion_engine.models.config import EngineConfig

logger = logging.getLogger(__name__)


class SuggestionGenerationClient:
    """
    Asks the generation service to produce a suggestion for a ticket.
    The new suggestion itself arrives later through the change feed.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.config = config or EngineConfig()
        self._client = client or httpx.Client(
            base_url=self.config.generation_base_url,
            timeout=self.config.generation_timeout_seconds,
        )

    def generate(self, ticket_id: str) -> dict:
        """POST the ticket id and return the service's JSON body."""
        try:
            response = self._client.post(
                self.config.generation_path,
                json={"ticketId": ticket_id},
            )
        except httpx.HTTPError as e:
            logger.error("Error triggering suggestion for ticket %s: %s", ticket_id, e)
            raise GenerationFailed(
                "Failed to generate suggestion", ticket_id=ticket_id, cause=str(e)
            ) from e

        if response.status_code >= 400:
            logger.error(
                "Suggestion generation for ticket %s returned %s",
                ticket_id,
                response.status_code,
            )
            raise GenerationFailed(
                "Failed to generate suggestion",
                ticket_id=ticket_id,
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            logger.error("Suggestion generation for ticket %s returned a non-JSON body", ticket_id)
            raise GenerationFailed(
                "Failed to generate suggestion",
                ticket_id=ticket_id,
                status_code=response.status_code,
                cause=f"invalid JSON body: {e}",
            ) from e

    def close(self) -> None:
        self._client.close()
