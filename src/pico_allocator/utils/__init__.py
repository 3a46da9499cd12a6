"""
Reporting and validation helpers for allocation designs.
"""

from .report import print_summary, summarize
from .validate import validate_design

__all__ = [
    "print_summary",
    "summarize",
    "validate_design",
]
