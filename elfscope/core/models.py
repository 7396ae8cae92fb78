"""
ElfScope Data Models
=====================

Pydantic models for the structural summaries and symbolication results
produced by :class:`~elfscope.core.engine.ScopeEngine`.  They are
snapshots: unlike the views in :mod:`elfscope.core.views` they copy their
values out of the image and can be serialised with
``model_dump(mode="json")`` after the buffer is gone.

References:
    - TIS Committee. (1995). Executable and Linkable Format (ELF) Specification.
    - Pydantic v2 documentation. https://docs.pydantic.dev/latest/
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Image metadata
# ---------------------------------------------------------------------------

class ImageInfo(BaseModel):
    """Top-level metadata about a loaded image.

    Attributes:
        path: Filesystem path, or ``"<memory>"`` for in-memory buffers.
        size: Buffer length in bytes.
        object_type: Object file type (``"Executable"``, ``"Shared object"``...).
        machine: Raw ``e_machine`` value.
        arch: Architecture name derived from ``e_machine``.
        entry_point: Virtual address of the entry point.
        interpreter: ``PT_INTERP`` path, if any.
        section_count: Number of section headers.
        program_header_count: Number of program headers.
        symbol_count: Entries in the symbol table (0 if there is none).
        symbol_table_section: Index of the ``SHT_SYMTAB`` section.
        string_table_section: Index of the primary ``.strtab`` section.
    """
    path: str = "<memory>"
    size: int = 0
    object_type: str = ""
    machine: int = 0
    arch: str = "unknown"
    entry_point: int = 0
    interpreter: Optional[str] = None
    section_count: int = 0
    program_header_count: int = 0
    symbol_count: int = 0
    symbol_table_section: Optional[int] = None
    string_table_section: Optional[int] = None


# ---------------------------------------------------------------------------
# Section / Segment information
# ---------------------------------------------------------------------------

class SectionInfo(BaseModel):
    """Snapshot of a single section header.

    Attributes:
        index: Section index.
        name: Section name (e.g. ``.text``).
        type: Section type name (``PROGBITS``, ``SYMTAB``...).
        flags: ``W``/``A``/``X`` flag string.
        address: Virtual address when loaded.
        offset: File offset in bytes.
        size: Section size in bytes.
        entry_count: Number of fixed-size entries, 0 for unstructured data.
        relocation_section: Name of the ``.rel`` section patching this one.
    """
    index: int = 0
    name: str = ""
    type: str = ""
    flags: str = ""
    address: int = 0
    offset: int = 0
    size: int = 0
    entry_count: int = 0
    relocation_section: Optional[str] = None


class ProgramHeaderInfo(BaseModel):
    """Snapshot of a single program header."""
    index: int = 0
    type: str = ""
    offset: int = 0
    vaddr: int = 0
    filesz: int = 0
    memsz: int = 0
    flags: str = ""


# ---------------------------------------------------------------------------
# Symbols
# ---------------------------------------------------------------------------

class SymbolInfo(BaseModel):
    """Snapshot of a symbol table entry.

    Attributes:
        index: Index in the symbol table.
        name: Raw (possibly mangled) name.
        demangled: Demangled name; equal to *name* for C symbols.
        value: Symbol value (usually an address).
        size: Size of the object the symbol refers to.
        type: ``FUNC``, ``OBJECT``, ``NOTYPE``...
        bind: ``LOCAL``, ``GLOBAL`` or ``WEAK``.
        section: Defining section name, ``Undefined`` or ``Reserved``.
    """
    index: int = 0
    name: str = ""
    demangled: str = ""
    value: int = 0
    size: int = 0
    type: str = ""
    bind: str = ""
    section: str = ""


class SymbolicatedAddress(BaseModel):
    """One address resolved against the symbol index.

    Attributes:
        address: The queried address.
        found: Whether a preceding symbol was found.
        symbol: Demangled symbol name, or ``"??"``.
        offset: Distance from the symbol's address (0 on a miss).
        formatted: ``"<symbol> +0x<offset>"`` or ``"??"``.
    """
    address: int = 0
    found: bool = False
    symbol: str = "??"
    offset: int = 0
    formatted: str = "??"


# ---------------------------------------------------------------------------
# Aggregate report
# ---------------------------------------------------------------------------

class ImageReport(BaseModel):
    """Everything the command-line front end shows for one image."""
    info: ImageInfo = Field(default_factory=ImageInfo)
    program_headers: list[ProgramHeaderInfo] = Field(default_factory=list)
    sections: list[SectionInfo] = Field(default_factory=list)
    symbols: list[SymbolInfo] = Field(default_factory=list)
    addresses: list[SymbolicatedAddress] = Field(default_factory=list)
    function_query: Optional[str] = None
    function: Optional[SymbolInfo] = None
