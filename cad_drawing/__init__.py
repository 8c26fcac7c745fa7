"""
cad_drawing: 2D technical drawing geometry core.

Document model, hit testing, hatch generation, associative dimensions and
block instancing. Rendering and UI live outside this package.
"""

from cad_drawing.logging_config import (
    setup_logging,
    get_logger,
    configure_default_logging,
    log_timing,
    timed,
    LogContext,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "configure_default_logging",
    "log_timing",
    "timed",
    "LogContext",
]
