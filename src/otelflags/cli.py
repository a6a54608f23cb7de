"""Command-line interface for otelflags.

Sets up tracing from the ``--otel-*`` flags and reports what was installed:

    otelflags --otel-provider otlpgrpc --otel-endpoint collector:4317 --otel-insecure config
    otelflags --otel-trace-propagator b3,w3c propagators
"""

import json
from typing import Annotated, Optional

import click
import typer
from opentelemetry import propagate

from otelflags import __version__
from otelflags.errors import TracingSetupError, handle_setup_error
from otelflags.hook import OtelHook
from otelflags.logging import configure_logging, get_logger
from otelflags.propagators import describe

PROG_NAME = "otelflags"


def create_app(hook: OtelHook) -> typer.Typer:
    """Create the Typer app whose callback runs ``hook``."""
    app = typer.Typer(
        name=PROG_NAME,
        help="Configure OpenTelemetry tracing from command-line flags",
        add_completion=False,
    )

    @app.callback()
    def main(
        ctx: typer.Context,
        log_level: Annotated[
            str,
            typer.Option("--log-level", help="Log level (trace, debug, info, warning, error)"),
        ] = "info",
        log_format: Annotated[
            str,
            typer.Option("--log-format", help="Log format (console, json, logfmt)"),
        ] = "console",
        verbose: Annotated[
            bool,
            typer.Option("--verbose", "-v", help="Show error details"),
        ] = False,
    ) -> None:
        """Set up tracing before running a command."""
        configure_logging(level=log_level, format=log_format)
        try:
            hook.run(ctx)
        except TracingSetupError as e:
            handle_setup_error(e, verbose=verbose)

    @app.command(name="config")
    def config_cmd(
        indent: Annotated[
            Optional[int],
            typer.Option("--indent", help="JSON indentation"),
        ] = 2,
    ) -> None:
        """Print the resolved tracing configuration as JSON."""
        if hook.config is None:
            typer.echo("Error: tracing was not configured", err=True)
            raise typer.Exit(1)

        data = hook.config.to_dict()
        data["installed"] = hook.handle is not None
        typer.echo(json.dumps(data, indent=indent))

    @app.command(name="propagators")
    def propagators_cmd() -> None:
        """List the global propagator units and the headers they use."""
        propagator = propagate.get_global_textmap()
        for unit in describe(propagator):
            typer.echo(unit)
        typer.echo(f"fields: {', '.join(sorted(propagator.fields))}")

    @app.command(name="version")
    def version_cmd() -> None:
        """Show the otelflags version."""
        typer.echo(f"{PROG_NAME} {__version__}")

    return app


def build_command(hook: OtelHook | None = None) -> click.Command:
    """Build the Click command with the tracing flags registered."""
    hook = hook or OtelHook("otel", PROG_NAME, logger=get_logger(PROG_NAME))
    command = typer.main.get_command(create_app(hook))
    hook.register_flags(command)
    return command


def main() -> None:
    """Entry point for the CLI."""
    build_command()(prog_name=PROG_NAME)


if __name__ == "__main__":
    main()
