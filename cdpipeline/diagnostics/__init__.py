"""Diagnostics collector.

Public API:
    - DiagnosticsCollector: Ordered, best-effort cluster inspection
    - DiagnosticBlock: Labelled output of one inspection command
    - format_blocks: Render blocks as labelled text
"""

from .collector import DiagnosticsCollector, format_blocks
from .models import UNAVAILABLE_PREFIX, DiagnosticBlock

__all__ = [
    "DiagnosticsCollector",
    "DiagnosticBlock",
    "format_blocks",
    "UNAVAILABLE_PREFIX",
]
