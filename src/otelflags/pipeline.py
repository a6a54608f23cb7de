"""Installation of the tracing pipeline.

    exporter -> BatchSpanProcessor -> TracerProvider (ALWAYS_ON, resource)
                                           |
                              global tracer provider + global propagator

The returned :class:`TracingHandle` owns the provider. Nothing here shuts it
down; the caller decides when to call :meth:`TracingHandle.shutdown`.
"""

from __future__ import annotations

from dataclasses import dataclass

from opentelemetry import propagate, trace
from opentelemetry.propagators.textmap import TextMapPropagator
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.sampling import ALWAYS_ON
from opentelemetry.util._once import Once

from otelflags.errors import InstallError
from otelflags.propagators import compose
from otelflags.resolver import ResolvedConfig


@dataclass
class TracingHandle:
    """The installed tracer provider and propagator."""

    provider: TracerProvider
    propagator: TextMapPropagator
    resource: Resource

    @property
    def service_name(self) -> str:
        return str(self.resource.attributes.get(SERVICE_NAME, ""))

    def get_tracer(self, name: str, version: str | None = None) -> trace.Tracer:
        return self.provider.get_tracer(name, version)

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self.provider.force_flush(timeout_millis)

    def shutdown(self) -> None:
        """Flush pending spans and shut the exporter down."""
        self.provider.shutdown()


def build_resource(service_name: str) -> Resource:
    """Create the resource describing this process.

    ``Resource.create`` adds the ``telemetry.sdk.*`` attributes and anything
    from ``OTEL_RESOURCE_ATTRIBUTES``/``OTEL_SERVICE_NAME``; the explicit
    service name takes precedence over the environment.
    """
    return Resource.create({SERVICE_NAME: service_name})


def set_global_tracer_provider(provider: TracerProvider) -> None:
    """Install ``provider`` globally, replacing any previous one.

    The API only lets the global provider be set once per process, so the
    set-once guard is reset first.
    """
    trace._TRACER_PROVIDER_SET_ONCE = Once()
    trace._TRACER_PROVIDER = None
    trace.set_tracer_provider(provider)


def install(
    exporter: SpanExporter,
    config: ResolvedConfig,
    *,
    set_global: bool = True,
) -> TracingHandle:
    """Wrap ``exporter`` in a tracer provider and install it.

    Args:
        exporter: Exporter built for ``config.provider``.
        config: The resolved configuration.
        set_global: Install the provider and propagator process-wide.

    Returns:
        Handle owning the new provider.

    Raises:
        InstallError: If the resource or provider cannot be built. Global
            state is untouched in that case.
    """
    try:
        resource = build_resource(config.service_name)
    except Exception as exc:
        raise InstallError(
            f"failed to build resource for service {config.service_name!r}: {exc}",
            service_name=config.service_name,
        ) from exc

    try:
        provider = TracerProvider(sampler=ALWAYS_ON, resource=resource)
        provider.add_span_processor(BatchSpanProcessor(exporter))
    except Exception as exc:
        raise InstallError(
            f"failed to create tracer provider: {exc}",
            service_name=config.service_name,
        ) from exc

    propagator = compose(config.propagators)

    if set_global:
        set_global_tracer_provider(provider)
        propagate.set_global_textmap(propagator)

    return TracingHandle(provider=provider, propagator=propagator, resource=resource)
