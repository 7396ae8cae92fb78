"""
Structural Views
=================

Lightweight ``(image, index)`` handles over the records of an
:class:`~elfscope.core.image.Image`.  A view copies nothing: every
attribute is decoded from the image buffer when it is read, so a view
can never disagree with the bytes it describes.  Views are cheap to
create and are handed out on demand by the image accessors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator, Optional

from elfscope.core.errors import verify
from elfscope.parsers.structs import (
    ELF32_REL,
    RELOCATION_PREFIX,
    SHN_UNDEF,
    SHT_NOBITS,
    SHT_NAMES,
    STB_NAMES,
    STT_FUNC,
    STT_NAMES,
    Elf32ProgramHeader,
    Elf32Rel,
    Elf32SectionHeader,
    Elf32Symbol,
)

if TYPE_CHECKING:
    from elfscope.core.image import Image


class _View:
    """Shared identity handling for index-based views."""

    __slots__ = ("_image", "_index")

    def __init__(self, image: Image, index: int) -> None:
        self._image = image
        self._index = index

    @property
    def image(self) -> Image:
        return self._image

    @property
    def index(self) -> int:
        return self._index

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, _View):
            return NotImplemented
        return (
            type(self) is type(other)
            and self._image is other._image
            and self._index == other._index
        )

    def __hash__(self) -> int:
        return hash((type(self).__name__, id(self._image), self._index))


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

class Section(_View):
    """A section-header entry and the bytes it describes."""

    __slots__ = ()

    @property
    def _record(self) -> Elf32SectionHeader:
        return self._image.section_header(self._index)

    @property
    def name(self) -> str:
        return self._image.section_header_table_string(self._record.sh_name) or ""

    @property
    def type(self) -> int:
        return self._record.sh_type

    @property
    def type_name(self) -> str:
        return SHT_NAMES.get(self.type, f"{self.type:#x}")

    @property
    def flags(self) -> int:
        return self._record.sh_flags

    @property
    def address(self) -> int:
        return self._record.sh_addr

    @property
    def offset(self) -> int:
        return self._record.sh_offset

    @property
    def size(self) -> int:
        return self._record.sh_size

    @property
    def link(self) -> int:
        return self._record.sh_link

    @property
    def info(self) -> int:
        return self._record.sh_info

    @property
    def entry_size(self) -> int:
        return self._record.sh_entsize

    @property
    def entry_count(self) -> int:
        record = self._record
        if not record.sh_entsize:
            return 0
        return record.sh_size // record.sh_entsize

    @property
    def raw_data(self) -> memoryview:
        """The section contents, truncated at the end of the buffer.

        ``SHT_NOBITS`` sections and sections whose offset lies outside the
        buffer yield an empty view.
        """
        record = self._record
        if record.sh_type == SHT_NOBITS or record.sh_size == 0:
            return memoryview(b"")
        if record.sh_offset >= self._image.size:
            return memoryview(b"")
        return self._image.raw_data(record.sh_offset)[:record.sh_size]

    def relocations(self) -> Optional[RelocationSection]:
        """Return the ``.rel<name>`` section that patches this one, if any."""
        found = self._image.lookup_section(RELOCATION_PREFIX + self.name)
        if found is None:
            return None
        self._image.log_debug("Found relocations for %s in %s", self.name, found.name)
        return RelocationSection(self._image, found.index)

    def __repr__(self) -> str:
        return f"Section(index={self._index}, name={self.name!r}, type={self.type_name})"


class RelocationSection(Section):
    """A section holding contiguous ``Elf32_Rel`` records."""

    __slots__ = ()

    @property
    def relocation_count(self) -> int:
        """Number of records, limited to those that lie inside the buffer."""
        offset = self.offset
        if offset >= self._image.size:
            return 0
        available = (self._image.size - offset) // ELF32_REL.size
        return min(self.entry_count, available)

    def relocation(self, index: int) -> Relocation:
        verify(
            0 <= index < self.relocation_count,
            f"relocation index {index} out of range ({self.relocation_count})",
        )
        record = Elf32Rel.unpack_from(
            self._image.raw_data(self.offset), index * ELF32_REL.size
        )
        return Relocation(self._image, record)

    def iter_relocations(self) -> Iterator[Relocation]:
        for index in range(self.relocation_count):
            yield self.relocation(index)

    def __repr__(self) -> str:
        return (
            f"RelocationSection(index={self._index}, name={self.name!r}, "
            f"count={self.relocation_count})"
        )


class Relocation:
    """A single relocation record read from a :class:`RelocationSection`."""

    __slots__ = ("_image", "_record")

    def __init__(self, image: Image, record: Elf32Rel) -> None:
        self._image = image
        self._record = record

    @property
    def offset(self) -> int:
        return self._record.r_offset

    @property
    def info(self) -> int:
        return self._record.r_info

    @property
    def type(self) -> int:
        return self._record.type

    @property
    def symbol_index(self) -> int:
        return self._record.sym

    def symbol(self) -> Optional[Symbol]:
        """The referenced symbol, or ``None`` if the index is past the table."""
        index = self.symbol_index
        if index >= self._image.symbol_count():
            return None
        return self._image.symbol(index)

    def __repr__(self) -> str:
        return (
            f"Relocation(offset={self.offset:#x}, type={self.type}, "
            f"symbol_index={self.symbol_index})"
        )


# ---------------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------------

class ProgramHeader(_View):
    """A program-header (segment) entry."""

    __slots__ = ()

    @property
    def _record(self) -> Elf32ProgramHeader:
        return self._image.program_header_record(self._index)

    @property
    def type(self) -> int:
        return self._record.p_type

    @property
    def offset(self) -> int:
        return self._record.p_offset

    @property
    def vaddr(self) -> int:
        return self._record.p_vaddr

    @property
    def paddr(self) -> int:
        return self._record.p_paddr

    @property
    def size_in_image(self) -> int:
        return self._record.p_filesz

    @property
    def size_in_memory(self) -> int:
        return self._record.p_memsz

    @property
    def flags(self) -> int:
        return self._record.p_flags

    @property
    def alignment(self) -> int:
        return self._record.p_align

    def __repr__(self) -> str:
        return f"ProgramHeader(index={self._index}, type={self.type:#x}, offset={self.offset:#x})"


# ---------------------------------------------------------------------------
# Symbols
# ---------------------------------------------------------------------------

class Symbol(_View):
    """An entry of the image's single symbol table."""

    __slots__ = ()

    @property
    def _record(self) -> Elf32Symbol:
        return self._image.symbol_record(self._index)

    @property
    def name(self) -> str:
        return self._image.string_table_string(self._record.st_name) or ""

    @property
    def value(self) -> int:
        return self._record.st_value

    @property
    def size(self) -> int:
        return self._record.st_size

    @property
    def section_index(self) -> int:
        return self._record.st_shndx

    @property
    def type(self) -> int:
        return self._record.type

    @property
    def bind(self) -> int:
        return self._record.bind

    @property
    def type_name(self) -> str:
        return STT_NAMES.get(self.type, f"UNKNOWN({self.type})")

    @property
    def bind_name(self) -> str:
        return STB_NAMES.get(self.bind, f"UNKNOWN({self.bind})")

    @property
    def is_undefined(self) -> bool:
        return self.section_index == SHN_UNDEF

    @property
    def is_function(self) -> bool:
        return self.type == STT_FUNC

    def section(self) -> Section:
        """The defining section.  Reserved indices are a contract violation."""
        return self._image.section(self.section_index)

    @property
    def raw_data(self) -> memoryview:
        """The bytes of the symbol's storage inside its defining section.

        Empty when the symbol has no defining section or when its address
        does not map to a range inside the buffer.
        """
        record = self._record
        if record.st_shndx == SHN_UNDEF or record.st_shndx >= self._image.section_count():
            return memoryview(b"")
        section = self._image.section(record.st_shndx)
        if record.st_value < section.address:
            return memoryview(b"")
        start = section.offset + (record.st_value - section.address)
        if start >= self._image.size:
            return memoryview(b"")
        return self._image.raw_data(start)[:record.st_size]

    def __repr__(self) -> str:
        return f"Symbol(index={self._index}, name={self.name!r}, value={self.value:#x})"
