"""Declaration of the tracing command-line flags.

The registry declares five prefixed flags and two hidden legacy flags:

    --<prefix>-provider          none | jaeger | otlphttp | otlpgrpc
    --<prefix>-endpoint          collector endpoint (default: SDK discovery)
    --<prefix>-service-name      service name for trace data
    --<prefix>-trace-propagator  comma-separated: b3, w3c, ottrace
    --<prefix>-insecure          plaintext connection to the collector
    --otel-jaeger-endpoint       legacy, hidden
    --otel-jaeger-service-name   legacy, hidden

The prefix defaults to ``otel``. Legacy flags are never prefixed.
"""

from __future__ import annotations

import functools
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import click
from click.core import ParameterSource

from otelflags.flags import META_KEY, FlagSet, FlagValue

DEFAULT_PREFIX = "otel"
UNKNOWN_SERVICE_NAME = "unknown_service"

# Legacy flags! Will eventually be dropped!
LEGACY_ENDPOINT_FLAG = "otel-jaeger-endpoint"
LEGACY_SERVICE_NAME_FLAG = "otel-jaeger-service-name"

_DEFAULT_SOURCES = (ParameterSource.DEFAULT, ParameterSource.DEFAULT_MAP)


def prefix_joiner(prefix: str) -> Callable[[str], str]:
    """Return a function joining ``prefix`` and a flag name with a dash."""
    prefix = prefix or DEFAULT_PREFIX
    return lambda name: f"{prefix}-{name}"


def default_service_name() -> str:
    """Derive a service name from the running program.

    Uses the top-level package of ``__main__`` when the program was started
    with ``python -m``, else the file name of ``sys.argv[0]``.
    """
    main = sys.modules.get("__main__")
    spec = getattr(main, "__spec__", None)
    if spec is not None and spec.name:
        return spec.name.split(".")[0]
    if sys.argv and sys.argv[0]:
        return Path(sys.argv[0]).stem
    return ""


@dataclass(frozen=True)
class OptionNames:
    """Flag names for one prefix."""

    provider: str
    endpoint: str
    service_name: str
    trace_propagator: str
    insecure: str
    legacy_endpoint: str = LEGACY_ENDPOINT_FLAG
    legacy_service_name: str = LEGACY_SERVICE_NAME_FLAG

    @classmethod
    def for_prefix(cls, prefix: str = "") -> "OptionNames":
        prefixed = prefix_joiner(prefix)
        return cls(
            provider=prefixed("provider"),
            endpoint=prefixed("endpoint"),
            service_name=prefixed("service-name"),
            trace_propagator=prefixed("trace-propagator"),
            insecure=prefixed("insecure"),
        )


@dataclass(frozen=True)
class OptionSpec:
    """One declared flag."""

    name: str
    default: FlagValue
    help: str
    hidden: bool = False

    @property
    def is_flag(self) -> bool:
        return isinstance(self.default, bool)

    @property
    def legacy(self) -> bool:
        return self.name in (LEGACY_ENDPOINT_FLAG, LEGACY_SERVICE_NAME_FLAG)

    def to_click_option(self) -> click.Option:
        """Build a Click option that stores its value in the context FlagSet.

        The option is not passed to the command callback.
        """
        kwargs: dict[str, Any] = {
            "default": self.default,
            "help": self.help,
            "hidden": self.hidden,
            "expose_value": False,
            "callback": functools.partial(_store_flag, self),
        }
        if self.is_flag:
            kwargs["is_flag"] = True
        else:
            kwargs["type"] = click.STRING
            kwargs["show_default"] = bool(self.default)
        return click.Option([f"--{self.name}"], **kwargs)


def _store_flag(
    spec: OptionSpec,
    ctx: click.Context,
    param: click.Parameter,
    value: Any,
) -> Any:
    flags = ctx.meta.get(META_KEY)
    if flags is None:
        flags = ctx.meta[META_KEY] = FlagSet()
    flags.declare(spec.name, spec.default)

    source = ctx.get_parameter_source(param.name) if param.name else None
    flags.set(spec.name, value, changed=source is not None and source not in _DEFAULT_SOURCES)
    return value


class OptionRegistry:
    """Declares the tracing flags for one prefix and service name.

    Example:
        >>> registry = OptionRegistry("otel", "my-service")
        >>> command = typer.main.get_command(app)
        >>> registry.register(command)
    """

    def __init__(self, flag_prefix: str = "", service_name: str = "") -> None:
        self.prefix = flag_prefix or DEFAULT_PREFIX
        self.service_name = service_name or default_service_name() or UNKNOWN_SERVICE_NAME
        self.names = OptionNames.for_prefix(self.prefix)

    def specs(self) -> list[OptionSpec]:
        names = self.names
        return [
            OptionSpec(
                names.provider,
                "none",
                'OpenTelemetry provider for tracing ("none", "jaeger", "otlphttp", "otlpgrpc")',
            ),
            OptionSpec(
                names.endpoint,
                "",
                "OpenTelemetry collector endpoint - the endpoint can also be set "
                "by using environment variables",
            ),
            OptionSpec(names.service_name, self.service_name, "service name for trace data"),
            OptionSpec(
                names.trace_propagator,
                "w3c",
                'OpenTelemetry trace propagation format ("b3", "w3c", "ottrace"). '
                "Add multiple propagators separated by comma.",
            ),
            OptionSpec(
                names.insecure,
                False,
                "connect to the OpenTelemetry collector in plaintext",
            ),
            OptionSpec(
                LEGACY_ENDPOINT_FLAG,
                "",
                "OpenTelemetry collector endpoint - the endpoint can also be set "
                "by using environment variables",
                hidden=True,
            ),
            OptionSpec(
                LEGACY_SERVICE_NAME_FLAG,
                self.service_name,
                "service name for trace data",
                hidden=True,
            ),
        ]

    def new_flagset(self) -> FlagSet:
        """Create a FlagSet holding every declared default."""
        return FlagSet({spec.name: spec.default for spec in self.specs()})

    def click_options(self) -> list[click.Option]:
        return [spec.to_click_option() for spec in self.specs()]

    def register(self, command: click.Command) -> click.Command:
        """Append the tracing options to ``command``.

        Raises:
            ValueError: If ``command`` already declares one of the prefixed flags.
        """
        existing = {opt for param in command.params for opt in getattr(param, "opts", ())}
        for spec in self.specs():
            flag = f"--{spec.name}"
            if flag in existing:
                if spec.legacy:
                    continue
                raise ValueError(f"flag redefined: {spec.name}")
            command.params.append(spec.to_click_option())
        return command
