"""Supported tracing providers."""

from __future__ import annotations

from enum import Enum

from otelflags.errors import UnknownProviderError


class Provider(str, Enum):
    """Exporter backend selected by the provider flag.

    Unrecognized tags are an error, unlike propagation formats which fall
    back to W3C.
    """

    NONE = "none"
    JAEGER = "jaeger"
    OTLP_HTTP = "otlphttp"
    OTLP_GRPC = "otlpgrpc"

    @classmethod
    def parse(cls, tag: str) -> "Provider":
        """Parse a provider flag value, ignoring case and surrounding space.

        Raises:
            UnknownProviderError: If the tag names no known backend.
        """
        normalized = tag.strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            raise UnknownProviderError(normalized) from None

    @property
    def exports(self) -> bool:
        return self is not Provider.NONE
