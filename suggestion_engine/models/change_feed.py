"""Change-feed events delivered for one ticket's suggestion set."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator

from suggestion_engine.models.suggestion import Suggestion


class ChangeEventType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChannelStatus(str, Enum):
    SUBSCRIBED = "subscribed"
    CLOSED = "closed"
    CHANNEL_ERROR = "channel_error"


class ChangeEvent(BaseModel):
    """
    One of {insert, record}, {update, record}, {delete, id}.
    For insert/update the id is taken from the record.
    """

    model_config = ConfigDict(frozen=True)

    type: ChangeEventType
    record: Optional[Suggestion] = None
    id: Optional[str] = None

    @model_validator(mode="after")
    def _check_payload(self) -> "ChangeEvent":
        if self.type == ChangeEventType.DELETE:
            if self.id is None:
                raise ValueError("delete events require an id")
        elif self.record is None:
            raise ValueError(f"{self.type.value} events require a record")
        return self

    @property
    def suggestion_id(self) -> str:
        if self.record is not None:
            return self.record.id
        return self.id

    @classmethod
    def insert(cls, record: Suggestion) -> "ChangeEvent":
        return cls(type=ChangeEventType.INSERT, record=record)

    @classmethod
    def update(cls, record: Suggestion) -> "ChangeEvent":
        return cls(type=ChangeEventType.UPDATE, record=record)

    @classmethod
    def delete(cls, suggestion_id: str) -> "ChangeEvent":
        return cls(type=ChangeEventType.DELETE, id=suggestion_id)
