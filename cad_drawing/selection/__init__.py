"""Selection: point, window and fence hit testing."""

from cad_drawing.selection.hit_test import HitResult, HitTestEngine
from cad_drawing.selection.shapes import (
    outline_hit,
    record_bounds,
    reference_distance,
    reference_point,
)

__all__ = [
    "HitResult",
    "HitTestEngine",
    "outline_hit",
    "record_bounds",
    "reference_distance",
    "reference_point",
]
