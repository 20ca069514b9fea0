"""
Observability collectors for feedback traces.

A trace is opened per feedback event and carries one span per remote step.
Collectors are passed explicitly to the FeedbackRecorder; there is no
module-level tracing client.

  InMemoryTraceCollector      keeps traces as pydantic records (tests, local runs)
  OpenTelemetryTraceCollector exports through an OpenTelemetry tracer provider
"""

import json
import threading
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Protocol

from opentelemetry import trace as otel_trace
from opentelemetry.trace import Status, StatusCode
from pydantic import BaseModel


class Span(Protocol):
    def update(
        self,
        metadata: Optional[Dict[str, Any]] = None,
        output: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...

    def end(self) -> None:
        ...


class Trace(Protocol):
    id: str

    def span(self, name: str, input: Optional[Dict[str, Any]] = None) -> Span:
        ...

    def update(
        self,
        output: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...

    def end(self) -> None:
        ...


class TraceCollector(Protocol):
    def trace(
        self,
        name: str,
        session_id: Optional[str] = None,
        input: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Trace:
        ...

    def flush(self) -> None:
        """Push everything recorded so far to the backend."""
        ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


# --- In-memory collector ---


class SpanRecord(BaseModel):
    name: str
    input: Dict[str, Any] = {}
    metadata: Dict[str, Any] = {}
    output: Optional[Dict[str, Any]] = None
    started_at: datetime
    ended_at: Optional[datetime] = None


class TraceRecord(BaseModel):
    id: str
    name: str
    session_id: Optional[str] = None
    input: Dict[str, Any] = {}
    output: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = {}
    spans: List[SpanRecord] = []
    started_at: datetime
    ended_at: Optional[datetime] = None
    flushed: bool = False

    def get_span(self, name: str) -> Optional[SpanRecord]:
        return next((s for s in self.spans if s.name == name), None)


class InMemorySpan:
    def __init__(self, record: SpanRecord):
        self.record = record

    def update(self, metadata=None, output=None) -> None:
        if metadata:
            self.record.metadata.update(metadata)
        if output is not None:
            self.record.output = output

    def end(self) -> None:
        if self.record.ended_at is None:
            self.record.ended_at = _now()


class InMemoryTrace:
    def __init__(self, record: TraceRecord):
        self.record = record
        self.id = record.id

    def span(self, name: str, input=None) -> InMemorySpan:
        record = SpanRecord(name=name, input=input or {}, started_at=_now())
        self.record.spans.append(record)
        return InMemorySpan(record)

    def update(self, output=None, metadata=None) -> None:
        if output is not None:
            self.record.output = output
        if metadata:
            self.record.metadata.update(metadata)

    def end(self) -> None:
        if self.record.ended_at is None:
            self.record.ended_at = _now()


class InMemoryTraceCollector:
    """
    Keeps traces in memory. flush() marks pending traces as delivered and
    moves them to a bounded history of the most recent max_retained.
    """

    def __init__(self, max_retained: int = 100):
        self._pending: List[TraceRecord] = []
        self._delivered: Deque[TraceRecord] = deque(maxlen=max_retained)
        self._lock = threading.Lock()
        self.flush_count = 0

    def trace(self, name, session_id=None, input=None, metadata=None) -> InMemoryTrace:
        record = TraceRecord(
            id=str(uuid.uuid4()),
            name=name,
            session_id=session_id,
            input=input or {},
            metadata=metadata or {},
            started_at=_now(),
        )
        with self._lock:
            self._pending.append(record)
        return InMemoryTrace(record)

    def flush(self) -> None:
        with self._lock:
            for record in self._pending:
                record.flushed = True
                self._delivered.append(record)
            self._pending.clear()
            self.flush_count += 1

    @property
    def traces(self) -> List[TraceRecord]:
        """Retained delivered traces, oldest first, then pending ones."""
        with self._lock:
            return list(self._delivered) + list(self._pending)

    def get(self, trace_id: str) -> Optional[TraceRecord]:
        return next((t for t in self.traces if t.id == trace_id), None)


# --- OpenTelemetry collector ---


def _attribute(value: Any) -> Any:
    """OTEL attributes must be primitives; structured payloads go in as JSON."""
    if isinstance(value, (str, bool, int, float)):
        return value
    return json.dumps(value, default=str, sort_keys=True)


def _set_attributes(span: otel_trace.Span, prefix: str, payload: Optional[Dict[str, Any]]) -> None:
    for key, value in (payload or {}).items():
        if value is None:
            continue
        span.set_attribute(f"{prefix}.{key}", _attribute(value))


class OpenTelemetrySpan:
    def __init__(self, span: otel_trace.Span):
        self._span = span

    def update(self, metadata=None, output=None) -> None:
        _set_attributes(self._span, "metadata", metadata)
        _set_attributes(self._span, "output", output)
        if metadata and metadata.get("level") == "error":
            self._span.set_status(Status(StatusCode.ERROR, str(metadata.get("error", ""))))

    def end(self) -> None:
        self._span.end()


class OpenTelemetryTrace:
    """A root OTEL span; child spans are started in its context."""

    def __init__(self, tracer: otel_trace.Tracer, root: otel_trace.Span):
        self._tracer = tracer
        self._root = root
        self.id = otel_trace.format_trace_id(root.get_span_context().trace_id)

    def span(self, name: str, input=None) -> OpenTelemetrySpan:
        child = self._tracer.start_span(
            name, context=otel_trace.set_span_in_context(self._root)
        )
        _set_attributes(child, "input", input)
        return OpenTelemetrySpan(child)

    def update(self, output=None, metadata=None) -> None:
        _set_attributes(self._root, "output", output)
        _set_attributes(self._root, "metadata", metadata)

    def end(self) -> None:
        self._root.end()


class OpenTelemetryTraceCollector:
    """Exports feedback traces through an OpenTelemetry tracer provider."""

    def __init__(self, tracer_provider: Optional[otel_trace.TracerProvider] = None):
        self._provider = tracer_provider or otel_trace.get_tracer_provider()
        self._tracer = self._provider.get_tracer(__name__)

    def trace(self, name, session_id=None, input=None, metadata=None) -> OpenTelemetryTrace:
        root = self._tracer.start_span(name)
        if session_id:
            root.set_attribute("session.id", session_id)
        _set_attributes(root, "input", input)
        _set_attributes(root, "metadata", metadata)
        return OpenTelemetryTrace(self._tracer, root)

    def flush(self) -> None:
        # The API's default provider has no force_flush; SDK providers do.
        force_flush = getattr(self._provider, "force_flush", None)
        if callable(force_flush):
            force_flush()
