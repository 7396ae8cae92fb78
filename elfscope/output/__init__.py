"""
ElfScope Output Module
=======================

Console display for ElfScope image reports.
"""

from elfscope.output.console import ImageConsoleOutput

__all__ = [
    "ImageConsoleOutput",
]
