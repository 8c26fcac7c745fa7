"""
Exceptions raised by the drawing core.

Degenerate geometry (zero-length lines, empty point lists) is never an
error: queries return a neutral result such as ``None`` bounds, no hit or
an empty hatch instead.
"""


class CadDrawingError(Exception):
    """Base class for drawing core errors."""


class NotFoundError(CadDrawingError, KeyError):
    """A referenced entity, dimension, layer, block or library id does not exist."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")

    def __str__(self) -> str:
        # KeyError would otherwise quote the message
        return self.args[0]


class InvalidStateError(CadDrawingError):
    """The operation is not allowed in the current state.

    Examples: deleting the default layer, writing to a read-only block
    library, exploding an instance twice, closing a dimension dependency
    cycle.
    """
