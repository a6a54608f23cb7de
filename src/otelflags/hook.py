"""Run hook that sets up OpenTelemetry tracing for a Click/Typer program.

Example:
    >>> hook = OtelHook("otel", "my-service", logger=get_logger("my-service"))
    >>>
    >>> @app.callback()
    ... def main(ctx: typer.Context) -> None:
    ...     hook.run(ctx)
    >>>
    >>> command = typer.main.get_command(app)
    >>> hook.register_flags(command)
    >>> command()

The hook runs once per process, before the subcommand. It installs the
global tracer provider and propagator; calling it again replaces both.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable

import click

from otelflags.errors import InstallError, TracingSetupError
from otelflags.exporters import build_exporter
from otelflags.flags import FlagAccessor, flags_from_context
from otelflags.logging import StructuredLogger, bridge_sdk_logging
from otelflags.options import OptionRegistry
from otelflags.pipeline import TracingHandle, install
from otelflags.resolver import ResolvedConfig, resolve, validate

BUILTIN_COMMANDS = frozenset({"help", "completion", "__complete", "version"})


def is_builtin_command(ctx: click.Context) -> bool:
    """Whether ``ctx`` is shell completion or a help/version style command."""
    if ctx.resilient_parsing:
        return True
    return ctx.invoked_subcommand in BUILTIN_COMMANDS


class HookState(str, Enum):
    """Progress of one hook invocation."""

    IDLE = "idle"
    RESOLVING = "resolving"
    SKIPPED = "skipped"
    VALIDATING = "validating"
    BUILDING = "building"
    INSTALLING = "installing"
    DONE = "done"
    FAILED = "failed"


class OtelHook:
    """Registers the tracing flags and turns them into a tracing pipeline.

    Args:
        flag_prefix: Prefix of the flag names (default ``otel``).
        service_name: Default service name (default: the program name).
        logger: Receives the setup log line and, when given, the SDK's own
            log output. Defaults to a logger that discards everything.
        pre_run_level: Verbosity of the setup log line.
        builtin_predicate: Decides which invocations skip setup entirely.
    """

    def __init__(
        self,
        flag_prefix: str = "",
        service_name: str = "",
        *,
        logger: StructuredLogger | None = None,
        pre_run_level: int = 1,
        builtin_predicate: Callable[[click.Context], bool] = is_builtin_command,
    ) -> None:
        self.registry = OptionRegistry(flag_prefix, service_name)
        self.logger = logger or StructuredLogger.discard()
        self.pre_run_level = pre_run_level
        self._bridge_sdk_logs = logger is not None
        self._is_builtin = builtin_predicate

        self.state = HookState.IDLE
        self.config: ResolvedConfig | None = None
        self.handle: TracingHandle | None = None

    @property
    def flag_prefix(self) -> str:
        return self.registry.prefix

    def register_flags(self, command: click.Command) -> click.Command:
        return self.registry.register(command)

    def run(self, ctx: click.Context) -> TracingHandle | None:
        """Set up tracing from the flags parsed into ``ctx``.

        Returns:
            The installed handle, or ``None`` when nothing was installed.

        Raises:
            TracingSetupError: On any resolve, validation, build or install
                failure. No global state is changed in that case.
        """
        if self._is_builtin(ctx):
            self.state = HookState.SKIPPED
            return None
        return self.run_with_flags(flags_from_context(ctx))

    def run_with_flags(self, flags: FlagAccessor) -> TracingHandle | None:
        self.state = HookState.RESOLVING
        try:
            config = resolve(flags, self.registry.names, validate_config=False)

            handle = None
            if not config.exports:
                self.state = HookState.SKIPPED
            else:
                self.state = HookState.VALIDATING
                validate(config)
                handle = self._build_and_install(config)
                self.state = HookState.DONE
        except TracingSetupError:
            self.state = HookState.FAILED
            raise

        if self._bridge_sdk_logs:
            bridge_sdk_logging(self.logger)
        self.config = config
        self.handle = handle
        self.logger.v(self.pre_run_level).info(
            "setup opentelemetry tracing", **config.log_fields()
        )
        return handle

    def _build_and_install(self, config: ResolvedConfig) -> TracingHandle:
        self.state = HookState.BUILDING
        exporter = build_exporter(config.provider, config.endpoint, config.insecure)

        self.state = HookState.INSTALLING
        try:
            return install(exporter, config)
        except InstallError:
            try:
                exporter.shutdown()
            except Exception as exc:
                self.logger.warning("failed to shut down exporter", error=str(exc))
            raise


def register_otel_flags(
    command: click.Command,
    flag_prefix: str = "",
    service_name: str = "",
) -> click.Command:
    """Add the tracing flags to ``command``."""
    return OptionRegistry(flag_prefix, service_name).register(command)


def otel_run_hook(
    flag_prefix: str = "",
    pre_run_level: int = 1,
) -> Callable[[click.Context], TracingHandle | None]:
    """Return a function that sets up tracing from a command's context.

    The flags must have been added with :func:`register_otel_flags`.
    """
    return OtelHook(flag_prefix, pre_run_level=pre_run_level).run
