"""Error types raised while setting up tracing.

Every failure of the run hook is one of the exceptions below. They are
terminal for the current invocation: nothing is retried and nothing is left
half-installed.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import typer


# =============================================================================
# Error Codes
# =============================================================================


class ErrorCode(Enum):
    """Process exit codes used when a setup error reaches the CLI."""

    GENERAL_ERROR = 1
    USAGE_ERROR = 2

    # Configuration errors (30-39)
    CONFIG_INVALID = 30
    UNKNOWN_PROVIDER = 31
    FLAG_LOOKUP = 32

    # Pipeline errors (40-49)
    EXPORTER_BUILD = 40
    PIPELINE_INSTALL = 41


# =============================================================================
# Exception Classes
# =============================================================================


class TracingSetupError(Exception):
    """Base exception for tracing setup failures.

    Attributes:
        message: Error message
        code: Error code
        details: Additional error details
        hint: Helpful hint for resolution
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.GENERAL_ERROR,
        details: dict[str, Any] | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.hint = hint

    def __str__(self) -> str:
        parts = [self.message]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        return "\n".join(parts)


class ConfigError(TracingSetupError):
    """Malformed or inconsistent user input."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCode.CONFIG_INVALID,
            details={"endpoint": endpoint},
            hint=hint,
        )
        self.endpoint = endpoint


class FlagLookupError(TracingSetupError):
    """A flag was not registered or has the wrong type."""

    def __init__(self, flag: str, reason: str = "flag accessed but not defined") -> None:
        super().__init__(
            message=f"{reason}: {flag}",
            code=ErrorCode.FLAG_LOOKUP,
            details={"flag": flag},
            hint="Register the tracing flags on the command before running the hook.",
        )
        self.flag = flag


class BuildError(TracingSetupError):
    """The exporter backend could not be constructed."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        hint: str | None = None,
        code: ErrorCode = ErrorCode.EXPORTER_BUILD,
    ) -> None:
        super().__init__(
            message=message,
            code=code,
            details={"provider": provider},
            hint=hint,
        )
        self.provider = provider


class UnknownProviderError(BuildError):
    """The provider tag is not one of the supported backends."""

    def __init__(self, provider: str) -> None:
        super().__init__(
            message=f"unknown tracing provider: {provider}",
            provider=provider,
            hint='Use one of "none", "jaeger", "otlphttp", "otlpgrpc".',
            code=ErrorCode.UNKNOWN_PROVIDER,
        )


class InstallError(TracingSetupError):
    """The resource or tracer provider could not be built."""

    def __init__(self, message: str, service_name: str | None = None) -> None:
        super().__init__(
            message=message,
            code=ErrorCode.PIPELINE_INSTALL,
            details={"service_name": service_name},
        )
        self.service_name = service_name


# =============================================================================
# Error Handler
# =============================================================================


def handle_setup_error(error: TracingSetupError, *, verbose: bool = False) -> None:
    """Report a setup error on stderr and exit with its code.

    Args:
        error: The error raised by the run hook
        verbose: Also print the error details

    Raises:
        typer.Exit: Always, carrying the error's exit code
    """
    typer.echo(typer.style(f"Error: {error.message}", fg="red"), err=True)

    if error.hint:
        typer.echo(typer.style(f"Hint: {error.hint}", fg="yellow"), err=True)

    if verbose and error.details:
        typer.echo("\nDetails:", err=True)
        for key, value in error.details.items():
            typer.echo(f"  {key}: {value}", err=True)

    if error.__cause__ is not None and verbose:
        typer.echo(f"Caused by: {error.__cause__!r}", err=True)

    raise typer.Exit(error.code.value)
