"""otelflags - OpenTelemetry tracing setup from command-line flags.

Declares ``--otel-*`` flags on a Click/Typer command and, in the command's
callback, turns them into an exporter, a tracer provider and a global
propagator.
"""

# Version: Single source of truth from pyproject.toml
try:
    from importlib.metadata import version, PackageNotFoundError

    __version__ = version("otelflags")
except PackageNotFoundError:
    # Package not installed (development mode)
    __version__ = "0.0.0.dev"

from otelflags.errors import (
    BuildError,
    ConfigError,
    ErrorCode,
    FlagLookupError,
    InstallError,
    TracingSetupError,
    UnknownProviderError,
)
from otelflags.exporters import build_exporter
from otelflags.flags import FlagSet, flags_from_context
from otelflags.hook import (
    HookState,
    OtelHook,
    is_builtin_command,
    otel_run_hook,
    register_otel_flags,
)
from otelflags.options import DEFAULT_PREFIX, OptionNames, OptionRegistry
from otelflags.pipeline import TracingHandle, install
from otelflags.propagators import OrderedCompositePropagator, PropagationFormat, compose
from otelflags.providers import Provider
from otelflags.resolver import ResolvedConfig, resolve

__all__ = [
    "__version__",
    # Hook
    "OtelHook",
    "HookState",
    "is_builtin_command",
    "otel_run_hook",
    "register_otel_flags",
    # Flags
    "DEFAULT_PREFIX",
    "FlagSet",
    "OptionNames",
    "OptionRegistry",
    "flags_from_context",
    # Resolution
    "Provider",
    "ResolvedConfig",
    "resolve",
    # Pipeline
    "build_exporter",
    "install",
    "TracingHandle",
    "compose",
    "OrderedCompositePropagator",
    "PropagationFormat",
    # Errors
    "ErrorCode",
    "TracingSetupError",
    "ConfigError",
    "FlagLookupError",
    "BuildError",
    "UnknownProviderError",
    "InstallError",
]
