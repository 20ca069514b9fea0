"""Ticket context consumed when recording feedback."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class AuthorType(str, Enum):
    AGENT = "agent"
    CUSTOMER = "customer"


class TicketMessage(BaseModel):
    id: str
    ticket_id: str
    content: str
    is_ai_generated: bool = False
    author_type: AuthorType = AuthorType.CUSTOMER
    created_at: datetime


class Ticket(BaseModel):
    id: str
    title: str
    description: str = ""
    priority: Optional[str] = None
    messages: List[TicketMessage] = []

    def conversation_history(self) -> List[dict]:
        """Messages as trace input, oldest first."""
        ordered = sorted(self.messages, key=lambda m: m.created_at)
        return [
            {
                "content": m.content,
                "is_ai_generated": m.is_ai_generated,
                "created_at": m.created_at.isoformat(),
                "type": m.author_type.value,
            }
            for m in ordered
        ]
