"""Construction of span exporters.

One builder per provider. When no endpoint is given the exporters discover
their configuration from the standard environment variables:

    - OTLP:   OTEL_EXPORTER_OTLP_ENDPOINT, OTEL_EXPORTER_OTLP_TRACES_ENDPOINT, ...
    - Jaeger: OTEL_EXPORTER_JAEGER_ENDPOINT, OTEL_EXPORTER_JAEGER_AGENT_HOST, ...

Backends are imported on first use, so a missing optional backend only
fails the provider that needs it.
"""

from __future__ import annotations

import importlib
from typing import Any, Callable
from urllib.parse import urlsplit, urlunsplit

from opentelemetry.sdk.trace.export import SpanExporter

from otelflags.errors import BuildError, TracingSetupError
from otelflags.providers import Provider

OTLP_HTTP_TRACES_PATH = "/v1/traces"

# provider -> (module, class, distribution providing it)
_BACKENDS: dict[Provider, tuple[str, str, str]] = {
    Provider.JAEGER: (
        "opentelemetry.exporter.jaeger.thrift",
        "JaegerExporter",
        "otelflags[jaeger]",
    ),
    Provider.OTLP_HTTP: (
        "opentelemetry.exporter.otlp.proto.http.trace_exporter",
        "OTLPSpanExporter",
        "opentelemetry-exporter-otlp-proto-http",
    ),
    Provider.OTLP_GRPC: (
        "opentelemetry.exporter.otlp.proto.grpc.trace_exporter",
        "OTLPSpanExporter",
        "opentelemetry-exporter-otlp-proto-grpc",
    ),
}


def load_exporter_class(provider: Provider) -> type[SpanExporter]:
    """Import the exporter class backing ``provider``.

    Raises:
        BuildError: If the backend distribution is not installed.
    """
    module_name, class_name, distribution = _BACKENDS[provider]
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise BuildError(
            f"exporter backend for {provider.value} is not installed: {exc}",
            provider=provider.value,
            hint=f"Install with: pip install {distribution}",
        ) from exc
    return getattr(module, class_name)


def otlp_http_endpoint(endpoint: str, insecure: bool) -> str:
    """Turn an endpoint flag value into a full OTLP/HTTP traces URL.

    ``collector:4318`` becomes ``https://collector:4318/v1/traces``
    (``http://`` when insecure); an explicit path is kept as given.
    Endpoints with any other explicit scheme are returned unchanged.
    """
    if "://" not in endpoint:
        scheme = "http" if insecure else "https"
        endpoint = f"{scheme}://{endpoint}"
    parts = urlsplit(endpoint)
    if parts.scheme not in ("http", "https"):
        return endpoint
    if parts.path in ("", "/"):
        parts = parts._replace(path=OTLP_HTTP_TRACES_PATH)
    return urlunsplit(parts)


def _build_jaeger(endpoint: str | None, insecure: bool) -> SpanExporter:
    exporter_cls = load_exporter_class(Provider.JAEGER)
    kwargs: dict[str, Any] = {}
    if endpoint:
        kwargs["collector_endpoint"] = endpoint
    return exporter_cls(**kwargs)


def _build_otlp_http(endpoint: str | None, insecure: bool) -> SpanExporter:
    exporter_cls = load_exporter_class(Provider.OTLP_HTTP)
    kwargs: dict[str, Any] = {}
    if endpoint:
        kwargs["endpoint"] = otlp_http_endpoint(endpoint, insecure)
    return exporter_cls(**kwargs)


def _build_otlp_grpc(endpoint: str | None, insecure: bool) -> SpanExporter:
    exporter_cls = load_exporter_class(Provider.OTLP_GRPC)
    kwargs: dict[str, Any] = {}
    if endpoint:
        kwargs["endpoint"] = endpoint
    if insecure:
        kwargs["insecure"] = True
    return exporter_cls(**kwargs)


_BUILDERS: dict[Provider, Callable[[str | None, bool], SpanExporter]] = {
    Provider.JAEGER: _build_jaeger,
    Provider.OTLP_HTTP: _build_otlp_http,
    Provider.OTLP_GRPC: _build_otlp_grpc,
}


def build_exporter(
    provider: Provider | str,
    endpoint: str | None = None,
    insecure: bool = False,
) -> SpanExporter:
    """Construct the span exporter for ``provider``.

    Args:
        provider: Provider enum member or flag value.
        endpoint: Collector endpoint; ``None`` or empty defers to the
            exporter's environment variables and defaults.
        insecure: Connect to the collector in plaintext.

    Returns:
        The constructed exporter.

    Raises:
        UnknownProviderError: If ``provider`` is an unrecognized tag.
        BuildError: If the backend is missing or its constructor fails.
        ValueError: If ``provider`` is ``none``.
    """
    if not isinstance(provider, Provider):
        provider = Provider.parse(provider)
    if not provider.exports:
        raise ValueError("provider 'none' has no exporter")

    builder = _BUILDERS[provider]
    try:
        return builder(endpoint or None, insecure)
    except TracingSetupError:
        raise
    except Exception as exc:
        raise BuildError(
            f"failed to create {provider.value} exporter: {exc}",
            provider=provider.value,
        ) from exc
