"""Flag value storage and lookup.

A :class:`FlagSet` holds the declared defaults of the tracing flags, the
values actually parsed for the current invocation and which of them the user
set explicitly. The Click options built by the option registry write into
the ``FlagSet`` kept in ``ctx.meta``; the run hook reads it back with
:func:`flags_from_context`.
"""

from __future__ import annotations

from typing import Mapping, Protocol, Union

import click

from otelflags.errors import FlagLookupError

FlagValue = Union[str, bool]

META_KEY = "otelflags.flags"


class FlagAccessor(Protocol):
    """Read access to parsed flag values, by flag name."""

    def get_string(self, name: str) -> str: ...

    def get_bool(self, name: str) -> bool: ...

    def changed(self, name: str) -> bool: ...

    def default(self, name: str) -> FlagValue: ...


class FlagSet:
    """Named flag values together with their declared defaults.

    Example:
        >>> flags = FlagSet({"otel-provider": "none", "otel-insecure": False})
        >>> flags.set("otel-provider", "jaeger")
        >>> flags.get_string("otel-provider")
        'jaeger'
        >>> flags.changed("otel-insecure")
        False
    """

    def __init__(self, defaults: Mapping[str, FlagValue] | None = None) -> None:
        self._defaults: dict[str, FlagValue] = dict(defaults or {})
        self._values: dict[str, FlagValue] = dict(self._defaults)
        self._changed: set[str] = set()

    def __contains__(self, name: object) -> bool:
        return name in self._defaults

    def __repr__(self) -> str:
        return f"FlagSet({self._values!r}, changed={sorted(self._changed)!r})"

    def _require(self, name: str) -> FlagValue:
        if name not in self._defaults:
            raise FlagLookupError(name)
        return self._values[name]

    def declare(self, name: str, default: FlagValue) -> None:
        """Add a flag with its declared default; existing flags are kept."""
        if name not in self._defaults:
            self._defaults[name] = default
            self._values[name] = default

    def set(self, name: str, value: FlagValue | None, *, changed: bool = True) -> None:
        """Store a parsed value; ``None`` resets the flag to its default."""
        self._require(name)
        if value is None:
            value = self._defaults[name]
        self._values[name] = value
        if changed:
            self._changed.add(name)
        else:
            self._changed.discard(name)

    def update(self, values: Mapping[str, FlagValue]) -> "FlagSet":
        """Mark every entry of ``values`` as explicitly set."""
        for name, value in values.items():
            self.set(name, value)
        return self

    def get_string(self, name: str) -> str:
        value = self._require(name)
        if isinstance(value, bool) or not isinstance(value, str):
            raise FlagLookupError(name, "flag is not a string flag")
        return value

    def get_bool(self, name: str) -> bool:
        value = self._require(name)
        if not isinstance(value, bool):
            raise FlagLookupError(name, "flag is not a bool flag")
        return value

    def changed(self, name: str) -> bool:
        self._require(name)
        return name in self._changed

    def default(self, name: str) -> FlagValue:
        self._require(name)
        return self._defaults[name]


def flags_from_context(ctx: click.Context) -> FlagSet:
    """Return the FlagSet populated by the tracing options of ``ctx``.

    Raises:
        FlagLookupError: If no tracing flags were registered on the command.
    """
    flags = ctx.meta.get(META_KEY)
    if flags is None:
        raise FlagLookupError("tracing flags", "flags were never registered on this command")
    return flags
