"""
ElfScope Core Module
=====================

The in-memory image model, its structural views, symbolication, and the
engine that loads files and builds reports.
"""

from elfscope.core.engine import ScopeEngine
from elfscope.core.errors import ContractViolation, ImageLoadError
from elfscope.core.image import Image, SortedSymbol, SymbolMatch
from elfscope.core.models import (
    ImageInfo,
    ImageReport,
    ProgramHeaderInfo,
    SectionInfo,
    SymbolicatedAddress,
    SymbolInfo,
)
from elfscope.core.views import (
    ProgramHeader,
    Relocation,
    RelocationSection,
    Section,
    Symbol,
)

__all__ = [
    "ContractViolation",
    "Image",
    "ImageInfo",
    "ImageLoadError",
    "ImageReport",
    "ProgramHeader",
    "ProgramHeaderInfo",
    "Relocation",
    "RelocationSection",
    "ScopeEngine",
    "Section",
    "SectionInfo",
    "SortedSymbol",
    "Symbol",
    "SymbolInfo",
    "SymbolMatch",
    "SymbolicatedAddress",
]
