"""
ELF Image
==========

:class:`Image` is a read-only, random-access view over one ELF32 image held
in memory, plus an address-to-symbol index for symbolication.

The image borrows the caller's buffer (``bytes``, ``bytearray``, ``mmap``
or ``memoryview``) and never copies it.  It validates the file header and
program headers once, at construction; :meth:`Image.is_valid` then gates
every other accessor.

Symbolication builds a sorted ``(address, symbol)`` index on first use and
answers each query with a binary search for the closest preceding symbol.
The index and the per-entry demangled names are filled in lazily by
lookup calls, so an image must not be queried from several threads at
once.  Call :meth:`Image.build_symbol_index` before sharing an image if
that is needed, and serialise symbolication calls behind one lock.

Usage::

    image = Image(Path("/bin/true").read_bytes())
    if image.is_valid():
        print(image.symbolicate(0x8049000))   # "main +0x10"

References:
    - TIS Committee. (1995). Tool Interface Standard (TIS) Executable and
      Linkable Format (ELF) Specification, Version 1.2.
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from dataclasses import dataclass
from operator import attrgetter
from typing import TYPE_CHECKING, Iterator, NamedTuple, Optional, Union

from elfscope.core.demangle import demangle, strip_parameters
from elfscope.core.errors import verify
from elfscope.core.views import ProgramHeader, Section, Symbol
from elfscope.parsers.structs import (
    ELF32_PHDR,
    ELF32_SYM,
    ELF_STRTAB,
    ET_NAMES,
    PAGE_SIZE,
    SHN_LORESERVE,
    SHN_UNDEF,
    SHT_STRTAB,
    SHT_SYMTAB,
    STT_FUNC,
    Elf32Header,
    Elf32ProgramHeader,
    Elf32SectionHeader,
    Elf32Symbol,
)
from elfscope.parsers.validation import validate_elf_header, validate_program_headers

if TYPE_CHECKING:
    from shared.logger import ScopeLogger

_module_logger = logging.getLogger("elfscope.image")

UNKNOWN_SYMBOL: str = "??"


class SymbolMatch(NamedTuple):
    """Result of an address lookup: the symbol and the distance into it."""
    symbol: Symbol
    offset: int


@dataclass(slots=True)
class SortedSymbol:
    """One entry of the address-ordered symbol index."""
    address: int
    name: str
    symbol: Symbol
    demangled_name: Optional[str] = None


class Image:
    """Parsed view over an in-memory ELF32 image.

    Args:
        buffer: The complete file contents.  Must stay alive and unchanged
            for as long as the image and any view derived from it.
        verbose_logging: Emit diagnostics for rejected headers and
            out-of-bounds offsets found in the file.
        logger: Where diagnostics and :meth:`dump` output go.
    """

    def __init__(
        self,
        buffer: Union[bytes, bytearray, memoryview],
        *,
        verbose_logging: bool = False,
        logger: ScopeLogger | None = None,
    ) -> None:
        self._buffer: memoryview = memoryview(buffer).cast("B")
        self._size: int = len(self._buffer)
        self._verbose_logging = verbose_logging
        self._logger: ScopeLogger | logging.Logger = logger or _module_logger

        self._valid: bool = False
        self._header: Optional[Elf32Header] = None
        self._interpreter: Optional[str] = None
        self._symbol_table_section_index: Optional[int] = None
        self._string_table_section_index: Optional[int] = None
        self._symbol_count: int = 0

        self._sorted_symbols: Optional[list[SortedSymbol]] = None
        self._sorted_addresses: list[int] = []

        self._parse()

    # ------------------------------------------------------------------ #
    #  Parsing
    # ------------------------------------------------------------------ #

    def _parse(self) -> bool:
        if not validate_elf_header(self._buffer, verbose=self._verbose_logging):
            self._diagnose("Image.parse(): ELF header not valid")
            return False

        header = Elf32Header.unpack_from(self._buffer)
        interpreter: list[str] = []
        if not validate_program_headers(
            self._buffer, header,
            interpreter_path=interpreter, verbose=self._verbose_logging,
        ):
            self._diagnose("Image.parse(): ELF program headers not valid")
            return False

        self._header = header
        self._interpreter = interpreter[0] if interpreter else None
        self._valid = True

        for index in range(header.e_shnum):
            sh = self.section_header(index)
            if sh.sh_type == SHT_SYMTAB:
                if self._symbol_table_section_index is not None:
                    self._diagnose(
                        "Image.parse(): second symbol table in section %d "
                        "(first in section %d)",
                        index, self._symbol_table_section_index,
                    )
                    self._valid = False
                    return False
                self._symbol_table_section_index = index
            if sh.sh_type == SHT_STRTAB and index != header.e_shstrndx:
                if self.section_header_table_string(sh.sh_name) == ELF_STRTAB:
                    self._string_table_section_index = index

        self._symbol_count = self._count_symbols()
        return True

    def _count_symbols(self) -> int:
        if self._symbol_table_section_index is None:
            return 0
        table = self.section(self._symbol_table_section_index)
        count = table.entry_count
        if table.offset >= self._size:
            available = 0
        else:
            available = (self._size - table.offset) // ELF32_SYM.size
        if count > available:
            self._diagnose(
                "Symbol table declares %d entries but only %d fit in the image",
                count, available,
            )
            return available
        return count

    def _diagnose(self, msg: str, *args: object) -> None:
        if self._verbose_logging:
            self._logger.warning(msg, *args)

    def log_debug(self, msg: str, *args: object) -> None:
        self._logger.debug(msg, *args)

    # ------------------------------------------------------------------ #
    #  Image-wide properties
    # ------------------------------------------------------------------ #

    def is_valid(self) -> bool:
        return self._valid

    @property
    def size(self) -> int:
        """Length of the underlying buffer in bytes."""
        return self._size

    @property
    def verbose_logging(self) -> bool:
        return self._verbose_logging

    def header(self) -> Elf32Header:
        verify(self._valid, "header() called on an invalid image")
        assert self._header is not None
        return self._header

    def entry_point(self) -> int:
        return self.header().e_entry

    @property
    def interpreter(self) -> Optional[str]:
        """The ``PT_INTERP`` path, if the image names one."""
        return self._interpreter

    @property
    def symbol_table_section_index(self) -> Optional[int]:
        return self._symbol_table_section_index

    @property
    def string_table_section_index(self) -> Optional[int]:
        return self._string_table_section_index

    def section_count(self) -> int:
        return self.header().e_shnum

    def program_header_count(self) -> int:
        return self.header().e_phnum

    def symbol_count(self) -> int:
        verify(self._valid, "symbol_count() called on an invalid image")
        return self._symbol_count

    # ------------------------------------------------------------------ #
    #  Raw access & string tables
    # ------------------------------------------------------------------ #

    def raw_data(self, offset: int) -> memoryview:
        """Return the buffer from *offset* to its end.

        Callers must already have checked *offset* against the buffer
        length; the slices they take of the result are clipped.
        """
        verify(0 <= offset < self._size, f"raw offset {offset:#x} outside image ({self._size:#x} bytes)")
        return self._buffer[offset:]

    def table_string(self, table_index: int, offset: int) -> Optional[str]:
        """Read the NUL-terminated string at *offset* in a string table.

        Returns ``None`` if the section is not a string table or if the
        offset lands outside the image.  The scan for the terminator is
        capped at one page.
        """
        verify(self._valid, "table_string() called on an invalid image")
        sh = self.section_header(table_index)
        if sh.sh_type != SHT_STRTAB:
            return None
        computed_offset = sh.sh_offset + offset
        if computed_offset >= self._size:
            self._diagnose(
                "Image.table_string(): computed offset %#x outside image (%#x bytes)",
                computed_offset, self._size,
            )
            return None
        max_length = min(self._size - computed_offset, PAGE_SIZE)
        raw = bytes(self.raw_data(computed_offset)[:max_length])
        end = raw.find(b"\x00")
        if end >= 0:
            raw = raw[:end]
        return raw.decode("utf-8", errors="replace")

    def section_header_table_string(self, offset: int) -> Optional[str]:
        """String lookup in the section-name table (``e_shstrndx``)."""
        return self.table_string(self.header().e_shstrndx, offset)

    def string_table_string(self, offset: int) -> Optional[str]:
        """String lookup in the primary ``.strtab`` section."""
        verify(self._valid, "string_table_string() called on an invalid image")
        if self._string_table_section_index is None:
            return None
        return self.table_string(self._string_table_section_index, offset)

    # ------------------------------------------------------------------ #
    #  Raw records
    # ------------------------------------------------------------------ #

    def section_header(self, index: int) -> Elf32SectionHeader:
        header = self.header()
        verify(0 <= index < header.e_shnum, f"section index {index} out of range ({header.e_shnum})")
        return Elf32SectionHeader.unpack_from(
            self._buffer, header.e_shoff + index * header.e_shentsize
        )

    def program_header_record(self, index: int) -> Elf32ProgramHeader:
        header = self.header()
        verify(0 <= index < header.e_phnum, f"program header index {index} out of range ({header.e_phnum})")
        return Elf32ProgramHeader.unpack_from(
            self._buffer, header.e_phoff + index * ELF32_PHDR.size
        )

    def symbol_record(self, index: int) -> Elf32Symbol:
        verify(0 <= index < self.symbol_count(), f"symbol index {index} out of range ({self._symbol_count})")
        assert self._symbol_table_section_index is not None
        table = self.section_header(self._symbol_table_section_index)
        return Elf32Symbol.unpack_from(
            self._buffer, table.sh_offset + index * ELF32_SYM.size
        )

    # ------------------------------------------------------------------ #
    #  Structural views
    # ------------------------------------------------------------------ #

    def section(self, index: int) -> Section:
        verify(0 <= index < self.section_count(), f"section index {index} out of range")
        return Section(self, index)

    def program_header(self, index: int) -> ProgramHeader:
        verify(0 <= index < self.program_header_count(), f"program header index {index} out of range")
        return ProgramHeader(self, index)

    def symbol(self, index: int) -> Symbol:
        verify(0 <= index < self.symbol_count(), f"symbol index {index} out of range")
        return Symbol(self, index)

    def iter_sections(self) -> Iterator[Section]:
        for index in range(self.section_count()):
            yield Section(self, index)

    def iter_program_headers(self) -> Iterator[ProgramHeader]:
        for index in range(self.program_header_count()):
            yield ProgramHeader(self, index)

    def iter_symbols(self) -> Iterator[Symbol]:
        for index in range(self.symbol_count()):
            yield Symbol(self, index)

    def section_index_to_string(self, index: int) -> str:
        verify(self._valid, "section_index_to_string() called on an invalid image")
        if index == SHN_UNDEF:
            return "Undefined"
        if index >= SHN_LORESERVE:
            return "Reserved"
        # Indices come from symbol records, so a corrupt file can name a
        # section that does not exist.
        if index >= self.section_count():
            return f"Invalid({index})"
        return self.section(index).name

    def lookup_section(self, name: str) -> Optional[Section]:
        """Return the first section called exactly *name*."""
        verify(self._valid, "lookup_section() called on an invalid image")
        for section in self.iter_sections():
            if section.name == name:
                return section
        return None

    # ------------------------------------------------------------------ #
    #  Name-based lookup
    # ------------------------------------------------------------------ #

    def find_demangled_function(self, name: str) -> Optional[Symbol]:
        """Find a defined function by its demangled name, ignoring overloads.

        ``find_demangled_function("foo")`` matches ``foo(int, int)`` but
        not ``foobar()``.
        """
        for symbol in self.iter_symbols():
            if symbol.type != STT_FUNC or symbol.is_undefined:
                continue
            if strip_parameters(demangle(symbol.name)) == name:
                return symbol
        return None

    # ------------------------------------------------------------------ #
    #  Address lookup
    # ------------------------------------------------------------------ #

    def build_symbol_index(self) -> None:
        """Build the address-ordered symbol index if it does not exist yet."""
        if self._sorted_symbols is not None:
            return
        entries = [
            SortedSymbol(symbol.value, symbol.name, symbol)
            for symbol in self.iter_symbols()
        ]
        entries.sort(key=attrgetter("address"))
        self._sorted_addresses = [entry.address for entry in entries]
        self._sorted_symbols = entries

    @property
    def sorted_symbols(self) -> tuple[SortedSymbol, ...]:
        """The symbol index, empty until it has been built."""
        return tuple(self._sorted_symbols or ())

    def find_sorted_symbol(self, address: int) -> Optional[SortedSymbol]:
        """Return the index entry with the greatest address ``<= address``."""
        if self._sorted_symbols is None:
            self.build_symbol_index()
        assert self._sorted_symbols is not None
        index = bisect_right(self._sorted_addresses, address) - 1
        # The lowest entry is normally the null symbol and counts as a miss.
        if index <= 0:
            return None
        return self._sorted_symbols[index]

    def find_symbol(self, address: int) -> Optional[SymbolMatch]:
        entry = self._lookup(address)
        if entry is None:
            return None
        return SymbolMatch(entry.symbol, address - entry.address)

    def symbolicate(self, address: int) -> str:
        """Format *address* as ``"<name> +0x<offset>"``, or ``"??"``."""
        entry = self._lookup(address)
        if entry is None:
            return UNKNOWN_SYMBOL
        return f"{self._demangled_name(entry)} +{address - entry.address:#x}"

    def symbolicate_with_offset(self, address: int) -> tuple[str, int]:
        """Return the demangled symbol name and the offset into it.

        Falls back to ``("??", 0)`` when the image has no symbols or
        *address* precedes every symbol.
        """
        entry = self._lookup(address)
        if entry is None:
            return UNKNOWN_SYMBOL, 0
        return self._demangled_name(entry), address - entry.address

    def _lookup(self, address: int) -> Optional[SortedSymbol]:
        if not self.symbol_count():
            return None
        return self.find_sorted_symbol(address)

    @staticmethod
    def _demangled_name(entry: SortedSymbol) -> str:
        if entry.demangled_name is None:
            entry.demangled_name = demangle(entry.name)
        return entry.demangled_name

    # ------------------------------------------------------------------ #
    #  Diagnostics
    # ------------------------------------------------------------------ #

    def dump(self) -> None:
        """Log a structural summary of the image at DEBUG level."""
        log = self._logger.debug
        log("ELF Image(%#x) {", id(self))
        log("    is_valid: %s", self._valid)
        if not self._valid:
            log("}")
            return

        header = self.header()
        log("    type:    %s", ET_NAMES.get(header.e_type, "(?)"))
        log("    machine: %d", header.e_machine)
        log("    entry:   %#x", header.e_entry)
        log("    shoff:   %d", header.e_shoff)
        log("    shnum:   %d", header.e_shnum)
        log("    phoff:   %d", header.e_phoff)
        log("    phnum:   %d", header.e_phnum)
        log(" shstrndx:   %d", header.e_shstrndx)

        for ph in self.iter_program_headers():
            log("    Program Header %d: {", ph.index)
            log("        type: %#x", ph.type)
            log("      offset: %#x", ph.offset)
            log("       flags: %#x", ph.flags)
            log("    }")

        for section in self.iter_sections():
            log("    Section %d: {", section.index)
            log("        name: %s", section.name)
            log("        type: %#x", section.type)
            log("      offset: %#x", section.offset)
            log("        size: %d", section.size)
            log("    }")

        log("Symbol count: %d (table is %s)", self.symbol_count(), self._symbol_table_section_index)
        for index in range(1, self.symbol_count()):
            symbol = self.symbol(index)
            log("Symbol @%d:", index)
            log("    Name: %s", symbol.name)
            log("    In section: %s", self.section_index_to_string(symbol.section_index))
            log("    Value: %#x", symbol.value)
            log("    Size: %d", symbol.size)
        log("}")

    def __repr__(self) -> str:
        return f"Image(size={self._size}, valid={self._valid})"
