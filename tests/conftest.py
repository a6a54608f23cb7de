"""Shared fixtures for otelflags tests.

Every test runs against pristine OpenTelemetry globals: the tracer provider
installed by a test is shut down afterwards and the global propagator and
SDK log handlers are restored.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import pytest
from opentelemetry import propagate, trace
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace import TracerProvider as SDKTracerProvider
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult
from opentelemetry.util._once import Once

from otelflags import exporters
from otelflags.flags import FlagSet
from otelflags.logging import (
    SDK_LOGGER_NAME,
    LogHandler,
    LogLevel,
    LogRecord,
    SDKLogBridge,
    StructuredLogger,
    configure_logging,
)
from otelflags.options import OptionRegistry
from otelflags.providers import Provider


class RecordingExporter(SpanExporter):
    """Span exporter that keeps exported spans in memory."""

    def __init__(self, provider: Provider | None = None, **kwargs: Any) -> None:
        self.provider = provider
        self.kwargs = kwargs
        self.spans: list[ReadableSpan] = []
        self.shutdown_called = False

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        self.spans.extend(spans)
        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        self.shutdown_called = True

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True


class ListHandler(LogHandler):
    """Log handler that collects records."""

    def __init__(self) -> None:
        super().__init__()
        self.records: list[LogRecord] = []

    def emit(self, record: LogRecord) -> None:
        self.records.append(record)

    @property
    def messages(self) -> list[str]:
        return [record.message for record in self.records]


@pytest.fixture(autouse=True)
def restore_tracing_globals():
    """Undo global tracer provider, propagator and logging changes."""
    textmap = propagate.get_global_textmap()
    yield

    provider = trace._TRACER_PROVIDER
    if isinstance(provider, SDKTracerProvider):
        provider.shutdown()
    trace._TRACER_PROVIDER_SET_ONCE = Once()
    trace._TRACER_PROVIDER = None
    propagate.set_global_textmap(textmap)

    sdk_logger = logging.getLogger(SDK_LOGGER_NAME)
    for handler in list(sdk_logger.handlers):
        if isinstance(handler, SDKLogBridge):
            sdk_logger.removeHandler(handler)
    configure_logging()


@pytest.fixture
def recording_exporter() -> RecordingExporter:
    return RecordingExporter()


@pytest.fixture
def fake_backends(monkeypatch: pytest.MonkeyPatch) -> list[RecordingExporter]:
    """Replace every exporter backend with RecordingExporter.

    Returns the list of exporters created, with their constructor kwargs.
    """
    created: list[RecordingExporter] = []

    def load(provider: Provider):
        def factory(**kwargs: Any) -> RecordingExporter:
            exporter = RecordingExporter(provider, **kwargs)
            created.append(exporter)
            return exporter

        return factory

    monkeypatch.setattr(exporters, "load_exporter_class", load)
    return created


@pytest.fixture
def registry() -> OptionRegistry:
    return OptionRegistry("otel", "test-service")


@pytest.fixture
def flags(registry: OptionRegistry) -> FlagSet:
    """FlagSet holding the declared defaults of the ``otel`` flags."""
    return registry.new_flagset()


@pytest.fixture
def log_handler() -> ListHandler:
    return ListHandler()


@pytest.fixture
def capture_logger(log_handler: ListHandler) -> StructuredLogger:
    """Logger emitting every level into ``log_handler``."""
    return StructuredLogger("test", level=LogLevel.TRACE, handlers=[log_handler])
