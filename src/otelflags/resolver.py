"""Resolution of flag values into a tracing configuration.

Each field is resolved independently from an ordered list of candidates; the
first non-empty candidate wins. Candidates are evaluated lazily, so legacy
flags are only read when a field actually falls back to them.

Precedence:
    endpoint:
        1. --<prefix>-endpoint
        2. --otel-jaeger-endpoint (jaeger only)
        3. unset: the exporter reads its own environment variables
    service name (jaeger):
        1. --<prefix>-service-name, if set on the command line
        2. --otel-jaeger-service-name
        3. the declared default of --<prefix>-service-name
        4. the program name
        5. "unknown_service"
    service name (other providers):
        1. --<prefix>-service-name
        2. its declared default
        3. the program name
        4. "unknown_service"
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional
from urllib.parse import urlsplit

from otelflags.errors import ConfigError
from otelflags.flags import FlagAccessor
from otelflags.options import UNKNOWN_SERVICE_NAME, OptionNames, default_service_name
from otelflags.providers import Provider

Candidate = Callable[[], Optional[str]]

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


@dataclass(frozen=True)
class ResolvedConfig:
    """Tracing configuration after precedence rules have been applied."""

    provider: Provider
    service_name: str
    endpoint: str | None = None
    insecure: bool = False
    propagators: tuple[str, ...] = ("w3c",)
    legacy_endpoint: str | None = None
    legacy_service_name: str | None = None

    @property
    def exports(self) -> bool:
        return self.provider.exports

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["provider"] = self.provider.value
        data["propagators"] = list(self.propagators)
        return data

    def log_fields(self) -> dict[str, Any]:
        """Fields of the setup log line."""
        return {
            "provider": self.provider.value,
            "endpoint": self.endpoint or "",
            "service": self.service_name,
            "insecure": self.insecure,
        }


def first_non_empty(*candidates: Candidate) -> str:
    """Evaluate candidates in order and return the first non-empty value."""
    for candidate in candidates:
        value = candidate()
        if value:
            return value
    return ""


def split_propagators(value: str) -> tuple[str, ...]:
    """Split the propagator flag on commas; elements are kept verbatim."""
    return tuple(value.split(","))


def validate_endpoint(endpoint: str, insecure: bool) -> None:
    """Check that an endpoint parses and that its scheme matches ``insecure``.

    Only ``http`` and ``https`` are checked against the insecure flag; other
    schemes and scheme-less ``host:port`` values are accepted as they are.

    Raises:
        ConfigError: If the endpoint is malformed or its scheme conflicts
            with the insecure flag.
    """
    if _CONTROL_CHARS.search(endpoint) or _BAD_ESCAPE.search(endpoint):
        raise ConfigError(
            f"invalid endpoint {endpoint!r}: contains invalid characters",
            endpoint=endpoint,
        )
    try:
        parts = urlsplit(endpoint)
        parts.port  # raises ValueError on a malformed port
    except ValueError as exc:
        raise ConfigError(f"invalid endpoint {endpoint!r}: {exc}", endpoint=endpoint) from exc

    scheme = parts.scheme
    if (insecure and scheme == "https") or (not insecure and scheme == "http"):
        raise ConfigError(
            "endpoint scheme conflicts with insecure flag: "
            f"scheme is {scheme} but insecure is {str(insecure).lower()}",
            endpoint=endpoint,
            hint="Use an http:// endpoint with the insecure flag, https:// without it.",
        )


def validate(config: ResolvedConfig) -> ResolvedConfig:
    """Validate a resolved configuration; ``none`` is never validated."""
    if config.exports and config.endpoint:
        validate_endpoint(config.endpoint, config.insecure)
    return config


def resolve(
    flags: FlagAccessor,
    names: OptionNames | None = None,
    *,
    validate_config: bool = True,
) -> ResolvedConfig:
    """Resolve flag values into a ResolvedConfig.

    Args:
        flags: Parsed flag values.
        names: Flag names for the prefix in use (default prefix if omitted).
        validate_config: Also run :func:`validate`.

    Raises:
        UnknownProviderError: If the provider flag names no known backend.
        ConfigError: If validation fails.
        FlagLookupError: If a flag is missing or has the wrong type.
    """
    names = names or OptionNames.for_prefix()

    provider = Provider.parse(flags.get_string(names.provider))
    primary_service = flags.get_string(names.service_name)
    primary_endpoint = flags.get_string(names.endpoint)
    insecure = flags.get_bool(names.insecure)
    propagators = split_propagators(flags.get_string(names.trace_propagator))

    def declared_service_default() -> str:
        default = flags.default(names.service_name)
        return default if isinstance(default, str) else ""

    legacy_endpoint: str | None = None
    legacy_service: str | None = None

    if provider is Provider.JAEGER:
        # Legacy flags! Will eventually be dropped!
        def read_legacy_endpoint() -> str:
            nonlocal legacy_endpoint
            legacy_endpoint = flags.get_string(names.legacy_endpoint) or None
            return legacy_endpoint or ""

        def read_legacy_service() -> str:
            nonlocal legacy_service
            legacy_service = flags.get_string(names.legacy_service_name) or None
            return legacy_service or ""

        endpoint = first_non_empty(lambda: primary_endpoint, read_legacy_endpoint)
        service_name = first_non_empty(
            lambda: primary_service if flags.changed(names.service_name) else "",
            read_legacy_service,
            declared_service_default,
            default_service_name,
            lambda: UNKNOWN_SERVICE_NAME,
        )
    else:
        endpoint = primary_endpoint
        service_name = first_non_empty(
            lambda: primary_service,
            declared_service_default,
            default_service_name,
            lambda: UNKNOWN_SERVICE_NAME,
        )

    config = ResolvedConfig(
        provider=provider,
        service_name=service_name,
        endpoint=endpoint or None,
        insecure=insecure,
        propagators=propagators,
        legacy_endpoint=legacy_endpoint,
        legacy_service_name=legacy_service,
    )
    if validate_config:
        validate(config)
    return config
