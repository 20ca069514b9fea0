"""Engine configuration."""

from typing import Optional

from pydantic import BaseModel, Field


class EngineConfig(BaseModel):
    """Configuration for the suggestion lifecycle engine."""

    identity_retry_delay_seconds: float = Field(ge=0, default=0.5)
    generation_base_url: str = "http://localhost:3000"
    generation_path: str = "/api/ai/generate-suggestion"
    generation_timeout_seconds: float = 30.0
    trace_name: str = "suggestion-feedback"
    environment: Optional[str] = "development"
    retained_traces: int = Field(ge=0, default=100)     # flushed traces kept by the in-memory collector
    session_idle_seconds: Optional[float] = Field(ge=0, default=900.0)  # None keeps sessions until closed
