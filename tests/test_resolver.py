"""Tests for flag resolution and validation."""

from __future__ import annotations

import pytest

from otelflags import resolver
from otelflags.errors import ConfigError, ErrorCode, UnknownProviderError
from otelflags.flags import FlagSet
from otelflags.options import (
    LEGACY_ENDPOINT_FLAG,
    LEGACY_SERVICE_NAME_FLAG,
    OptionNames,
    OptionRegistry,
)
from otelflags.providers import Provider
from otelflags.resolver import (
    ResolvedConfig,
    first_non_empty,
    resolve,
    split_propagators,
    validate_endpoint,
)


class TestProvider:
    """Tests for provider parsing."""

    @pytest.mark.parametrize(
        "tag,expected",
        [
            ("none", Provider.NONE),
            ("jaeger", Provider.JAEGER),
            ("JAEGER", Provider.JAEGER),
            ("OtlpHttp", Provider.OTLP_HTTP),
            (" otlpgrpc ", Provider.OTLP_GRPC),
        ],
    )
    def test_parse(self, tag, expected):
        assert Provider.parse(tag) is expected

    def test_unknown_provider(self, flags):
        """Test that an unknown provider fails resolution."""
        flags.set("otel-provider", "zipkin")

        with pytest.raises(UnknownProviderError) as exc_info:
            resolve(flags)

        assert str(exc_info.value).startswith("unknown tracing provider: zipkin")
        assert exc_info.value.code == ErrorCode.UNKNOWN_PROVIDER


class TestEndpointPrecedence:
    """Tests for endpoint resolution."""

    def test_primary_wins(self, flags):
        flags.update(
            {
                "otel-provider": "jaeger",
                "otel-endpoint": "http://primary:14268",
                LEGACY_ENDPOINT_FLAG: "http://legacy:14268",
                "otel-insecure": True,
            }
        )

        config = resolve(flags)

        assert config.endpoint == "http://primary:14268"
        assert config.legacy_endpoint is None

    def test_legacy_fallback_for_jaeger(self, flags):
        """Test that jaeger falls back to the legacy endpoint flag."""
        flags.update(
            {
                "otel-provider": "jaeger",
                LEGACY_ENDPOINT_FLAG: "http://collector:1234",
                "otel-insecure": True,
            }
        )

        config = resolve(flags)

        assert config.endpoint == "http://collector:1234"
        assert config.legacy_endpoint == "http://collector:1234"

    @pytest.mark.parametrize("provider", ["otlphttp", "otlpgrpc"])
    def test_legacy_ignored_for_otlp(self, flags, provider):
        flags.update({"otel-provider": provider, LEGACY_ENDPOINT_FLAG: "http://legacy:1"})

        config = resolve(flags)

        assert config.endpoint is None

    def test_unset_endpoint(self, flags):
        """Test that an empty endpoint is left to the exporter defaults."""
        flags.set("otel-provider", "otlpgrpc")

        assert resolve(flags).endpoint is None


class TestServiceNamePrecedence:
    """Tests for service name resolution."""

    def test_explicit_primary_wins_for_jaeger(self, flags):
        flags.update(
            {
                "otel-provider": "jaeger",
                "otel-service-name": "primary",
                LEGACY_SERVICE_NAME_FLAG: "legacy",
            }
        )

        assert resolve(flags).service_name == "primary"

    def test_legacy_over_default_for_jaeger(self, flags):
        """Test that the legacy flag beats an unchanged primary flag."""
        flags.update({"otel-provider": "jaeger", LEGACY_SERVICE_NAME_FLAG: "legacy"})

        config = resolve(flags)

        assert config.service_name == "legacy"
        assert config.legacy_service_name == "legacy"

    def test_declared_default_for_jaeger(self, flags):
        flags.update({"otel-provider": "jaeger", LEGACY_SERVICE_NAME_FLAG: ""})

        assert resolve(flags).service_name == "test-service"

    def test_program_name_fallback(self, monkeypatch):
        """Test the fallback to the program name when everything is empty."""
        monkeypatch.setattr(resolver, "default_service_name", lambda: "prog")
        flags = resolver_flags(default_service="")
        flags.set("otel-service-name", "")

        assert resolve(flags).service_name == "prog"

    def test_unknown_service_fallback(self, monkeypatch):
        monkeypatch.setattr(resolver, "default_service_name", lambda: "")
        flags = resolver_flags(default_service="")
        flags.update({"otel-provider": "jaeger", LEGACY_SERVICE_NAME_FLAG: ""})

        assert resolve(flags).service_name == "unknown_service"

    def test_legacy_ignored_for_otlp(self, flags):
        flags.update({"otel-provider": "otlpgrpc", LEGACY_SERVICE_NAME_FLAG: "legacy"})

        config = resolve(flags)

        assert config.service_name == "test-service"
        assert config.legacy_service_name is None

    def test_primary_for_otlp(self, flags):
        flags.update({"otel-provider": "otlphttp", "otel-service-name": "api"})

        assert resolve(flags).service_name == "api"


class TestPropagators:
    """Tests for propagator list resolution."""

    def test_default(self, flags):
        assert resolve(flags).propagators == ("w3c",)

    def test_split_verbatim(self):
        """Test that elements are neither trimmed nor lowercased."""
        assert split_propagators("b3, W3C,") == ("b3", " W3C", "")

    def test_resolved_list(self, flags):
        flags.set("otel-trace-propagator", "b3,w3c")

        assert resolve(flags).propagators == ("b3", "w3c")


class TestValidation:
    """Tests for endpoint validation."""

    @pytest.mark.parametrize("provider", ["jaeger", "otlphttp", "otlpgrpc"])
    @pytest.mark.parametrize(
        "endpoint,insecure,ok",
        [
            ("http://collector:4318", True, True),
            ("https://collector:4318", False, True),
            ("http://collector:4318", False, False),
            ("https://collector:4318", True, False),
            ("collector:4317", False, True),
            ("collector:4317", True, True),
        ],
    )
    def test_scheme_and_insecure(self, flags, provider, endpoint, insecure, ok):
        flags.update({"otel-provider": provider, "otel-endpoint": endpoint, "otel-insecure": insecure})

        if ok:
            assert resolve(flags).endpoint == endpoint
        else:
            with pytest.raises(ConfigError, match="scheme conflicts with insecure flag"):
                resolve(flags)

    def test_conflict_message(self):
        with pytest.raises(ConfigError) as exc_info:
            validate_endpoint("http://collector:4318", insecure=False)

        error = exc_info.value
        assert "scheme is http but insecure is false" in error.message
        assert error.endpoint == "http://collector:4318"
        assert error.code == ErrorCode.CONFIG_INVALID
        assert error.hint

    @pytest.mark.parametrize(
        "endpoint",
        ["http://[::1", "http://collector:port", "http://coll\nector:4318", "http://c/%zz"],
    )
    def test_malformed_endpoint(self, endpoint):
        with pytest.raises(ConfigError, match="invalid endpoint"):
            validate_endpoint(endpoint, insecure=True)

    def test_none_is_not_validated(self, flags):
        """Test that provider none accepts any endpoint."""
        flags.update({"otel-provider": "none", "otel-endpoint": "http://[::1"})

        config = resolve(flags)

        assert config.provider is Provider.NONE
        assert not config.exports

    def test_skip_validation(self, flags):
        flags.update({"otel-provider": "otlphttp", "otel-endpoint": "http://collector:4318"})

        config = resolve(flags, validate_config=False)

        assert config.endpoint == "http://collector:4318"


class TestFirstNonEmpty:
    """Tests for lazy candidate evaluation."""

    def test_stops_at_first_value(self):
        calls: list[str] = []

        def candidate(value: str):
            def read() -> str:
                calls.append(value)
                return value

            return read

        result = first_non_empty(candidate(""), candidate("b"), candidate("c"))

        assert result == "b"
        assert calls == ["", "b"]

    def test_all_empty(self):
        assert first_non_empty(lambda: "", lambda: None) == ""


class TestResolvedConfig:
    """Tests for ResolvedConfig."""

    def test_log_fields(self):
        config = ResolvedConfig(Provider.OTLP_GRPC, "svc", "collector:4317", True)

        assert config.log_fields() == {
            "provider": "otlpgrpc",
            "endpoint": "collector:4317",
            "service": "svc",
            "insecure": True,
        }

    def test_to_dict(self):
        data = ResolvedConfig(Provider.NONE, "svc").to_dict()

        assert data["provider"] == "none"
        assert data["endpoint"] is None
        assert data["propagators"] == ["w3c"]

    def test_custom_prefix(self):
        """Test resolution with the flag names of another prefix."""
        registry = OptionRegistry("tracing", "svc")
        flags = registry.new_flagset().update({"tracing-provider": "otlpgrpc"})

        config = resolve(flags, OptionNames.for_prefix("tracing"))

        assert config.provider is Provider.OTLP_GRPC
        assert config.service_name == "svc"


def resolver_flags(default_service: str) -> FlagSet:
    names = OptionNames.for_prefix()
    return FlagSet(
        {
            names.provider: "none",
            names.endpoint: "",
            names.service_name: default_service,
            names.trace_propagator: "w3c",
            names.insecure: False,
            LEGACY_ENDPOINT_FLAG: "",
            LEGACY_SERVICE_NAME_FLAG: default_service,
        }
    )
