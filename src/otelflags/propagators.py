"""Composition of trace-context propagation formats.

Supported formats:
    - b3:      B3 headers (extracts single and multi header, injects multi header)
    - ottrace: OT-trace headers (``ot-tracer-*``)
    - w3c:     W3C baggage followed by W3C trace context

Any other tag is treated as ``w3c``. Each tag contributes its own units, so
``"b3,w3c"`` composes B3, W3C baggage and W3C trace context, in that order.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional, Sequence

from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.context import Context
from opentelemetry.propagators.b3 import B3MultiFormat
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.propagators.ot_trace import OTTracePropagator
from opentelemetry.propagators.textmap import (
    CarrierT,
    Getter,
    TextMapPropagator,
    default_getter,
)
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator


class PropagationFormat(str, Enum):
    """Trace propagation format selected by one propagator tag."""

    B3 = "b3"
    OTTRACE = "ottrace"
    W3C = "w3c"

    @classmethod
    def from_tag(cls, tag: str) -> "PropagationFormat":
        """Map a tag to its format; unrecognized tags select W3C."""
        try:
            return cls(tag)
        except ValueError:
            return cls.W3C

    def units(self) -> list[TextMapPropagator]:
        """Create the propagator units for this format."""
        if self is PropagationFormat.B3:
            return [B3MultiFormat()]
        if self is PropagationFormat.OTTRACE:
            return [OTTracePropagator()]
        return [W3CBaggagePropagator(), TraceContextTextMapPropagator()]


class OrderedCompositePropagator(CompositePropagator):
    """Composite propagator where earlier units win on extraction.

    Injection runs every unit, so each format writes its own headers.
    Extraction runs the units last-to-first, so when two units extract the
    same context entry the unit earlier in the order prevails. Units that
    find nothing in the carrier leave the context unchanged.
    """

    def __init__(self, propagators: Sequence[TextMapPropagator]) -> None:
        super().__init__(propagators)
        self._units = tuple(propagators)

    @property
    def units(self) -> tuple[TextMapPropagator, ...]:
        return self._units

    def extract(
        self,
        carrier: CarrierT,
        context: Optional[Context] = None,
        getter: Getter[CarrierT] = default_getter,
    ) -> Context:
        for propagator in reversed(self._units):
            context = propagator.extract(carrier, context, getter=getter)
        return context if context is not None else Context()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({', '.join(describe(self))})"


def compose(tags: Iterable[str]) -> OrderedCompositePropagator:
    """Build one composite propagator from propagator tags, in tag order."""
    units: list[TextMapPropagator] = []
    for tag in tags:
        units.extend(PropagationFormat.from_tag(tag).units())
    return OrderedCompositePropagator(units)


def describe(propagator: TextMapPropagator) -> list[str]:
    """List the unit class names of a composite, or the propagator's own name."""
    units = getattr(propagator, "units", None)
    if units is None:
        return [type(propagator).__name__]
    return [type(unit).__name__ for unit in units]
