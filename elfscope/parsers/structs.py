"""
ELF32 Record Layouts
=====================

Constants and fixed-size record layouts for the 32-bit little-endian
Executable and Linkable Format.  Records are decoded with :mod:`struct`
directly from the caller's buffer; nothing here owns any data.

References:
    - TIS Committee. (1995). Tool Interface Standard (TIS) Executable and
      Linkable Format (ELF) Specification, Version 1.2.
    - System V Application Binary Interface, Edition 4.1.
    - Linux man page: elf(5).
"""

from __future__ import annotations

import struct
from typing import NamedTuple


# ---------------------------------------------------------------------------
# Identification
# ---------------------------------------------------------------------------

ELF_MAGIC: bytes = b"\x7fELF"

EI_CLASS: int = 4
EI_DATA: int = 5
EI_VERSION: int = 6
EI_OSABI: int = 7
EI_NIDENT: int = 16

ELFCLASSNONE: int = 0
ELFCLASS32: int = 1
ELFCLASS64: int = 2

ELFDATANONE: int = 0
ELFDATA2LSB: int = 1  # Little-endian
ELFDATA2MSB: int = 2  # Big-endian

EV_NONE: int = 0
EV_CURRENT: int = 1

# ELF type
ET_NONE: int = 0
ET_REL: int = 1   # Relocatable
ET_EXEC: int = 2  # Executable
ET_DYN: int = 3   # Shared object / PIE
ET_CORE: int = 4  # Core dump

ET_NAMES: dict[int, str] = {
    ET_NONE: "None",
    ET_REL: "Relocatable",
    ET_EXEC: "Executable",
    ET_DYN: "Shared object",
    ET_CORE: "Core",
}

# Machine architectures
EM_NONE: int = 0
EM_SPARC: int = 2
EM_386: int = 3
EM_MIPS: int = 8
EM_PPC: int = 20
EM_ARM: int = 40
EM_X86_64: int = 62
EM_AARCH64: int = 183
EM_RISCV: int = 243

EM_NAMES: dict[int, str] = {
    EM_NONE: "None",
    EM_SPARC: "SPARC",
    EM_386: "x86",
    EM_MIPS: "MIPS",
    EM_PPC: "PowerPC",
    EM_ARM: "ARM",
    EM_X86_64: "x86_64",
    EM_AARCH64: "AArch64",
    EM_RISCV: "RISC-V",
}

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

SHT_NULL: int = 0
SHT_PROGBITS: int = 1
SHT_SYMTAB: int = 2
SHT_STRTAB: int = 3
SHT_RELA: int = 4
SHT_HASH: int = 5
SHT_DYNAMIC: int = 6
SHT_NOTE: int = 7
SHT_NOBITS: int = 8
SHT_REL: int = 9
SHT_DYNSYM: int = 11
SHT_INIT_ARRAY: int = 14
SHT_FINI_ARRAY: int = 15

SHT_NAMES: dict[int, str] = {
    SHT_NULL: "NULL",
    SHT_PROGBITS: "PROGBITS",
    SHT_SYMTAB: "SYMTAB",
    SHT_STRTAB: "STRTAB",
    SHT_RELA: "RELA",
    SHT_HASH: "HASH",
    SHT_DYNAMIC: "DYNAMIC",
    SHT_NOTE: "NOTE",
    SHT_NOBITS: "NOBITS",
    SHT_REL: "REL",
    SHT_DYNSYM: "DYNSYM",
    SHT_INIT_ARRAY: "INIT_ARRAY",
    SHT_FINI_ARRAY: "FINI_ARRAY",
}

SHF_WRITE: int = 0x1
SHF_ALLOC: int = 0x2
SHF_EXECINSTR: int = 0x4

# Special section indices
SHN_UNDEF: int = 0
SHN_LORESERVE: int = 0xFF00
SHN_ABS: int = 0xFFF1
SHN_COMMON: int = 0xFFF2

# Well-known section names
ELF_STRTAB: str = ".strtab"
RELOCATION_PREFIX: str = ".rel"

# ---------------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------------

PT_NULL: int = 0
PT_LOAD: int = 1
PT_DYNAMIC: int = 2
PT_INTERP: int = 3
PT_NOTE: int = 4
PT_SHLIB: int = 5
PT_PHDR: int = 6
PT_TLS: int = 7
PT_GNU_EH_FRAME: int = 0x6474E550
PT_GNU_STACK: int = 0x6474E551
PT_GNU_RELRO: int = 0x6474E552

PT_NAMES: dict[int, str] = {
    PT_NULL: "NULL",
    PT_LOAD: "LOAD",
    PT_DYNAMIC: "DYNAMIC",
    PT_INTERP: "INTERP",
    PT_NOTE: "NOTE",
    PT_SHLIB: "SHLIB",
    PT_PHDR: "PHDR",
    PT_TLS: "TLS",
    PT_GNU_EH_FRAME: "GNU_EH_FRAME",
    PT_GNU_STACK: "GNU_STACK",
    PT_GNU_RELRO: "GNU_RELRO",
}

PF_X: int = 0x1  # Execute
PF_W: int = 0x2  # Write
PF_R: int = 0x4  # Read

# ---------------------------------------------------------------------------
# Symbols
# ---------------------------------------------------------------------------

STB_LOCAL: int = 0
STB_GLOBAL: int = 1
STB_WEAK: int = 2

STB_NAMES: dict[int, str] = {
    STB_LOCAL: "LOCAL",
    STB_GLOBAL: "GLOBAL",
    STB_WEAK: "WEAK",
}

STT_NOTYPE: int = 0
STT_OBJECT: int = 1
STT_FUNC: int = 2
STT_SECTION: int = 3
STT_FILE: int = 4

STT_NAMES: dict[int, str] = {
    STT_NOTYPE: "NOTYPE",
    STT_OBJECT: "OBJECT",
    STT_FUNC: "FUNC",
    STT_SECTION: "SECTION",
    STT_FILE: "FILE",
}

# Upper bound on a single string-table scan.
PAGE_SIZE: int = 4096


# ---------------------------------------------------------------------------
# Record layouts
# ---------------------------------------------------------------------------

ELF32_EHDR = struct.Struct("<16sHHIIIIIHHHHHH")  # 52 bytes
ELF32_SHDR = struct.Struct("<IIIIIIIIII")        # 40 bytes
ELF32_PHDR = struct.Struct("<IIIIIIII")          # 32 bytes
ELF32_SYM = struct.Struct("<IIIBBH")             # 16 bytes
ELF32_REL = struct.Struct("<II")                 # 8 bytes


class Elf32Header(NamedTuple):
    """File header, read from offset 0."""
    e_ident: bytes
    e_type: int
    e_machine: int
    e_version: int
    e_entry: int
    e_phoff: int
    e_shoff: int
    e_flags: int
    e_ehsize: int
    e_phentsize: int
    e_phnum: int
    e_shentsize: int
    e_shnum: int
    e_shstrndx: int

    @classmethod
    def unpack_from(cls, buffer: bytes | memoryview, offset: int = 0) -> Elf32Header:
        return cls._make(ELF32_EHDR.unpack_from(buffer, offset))

    @property
    def ei_class(self) -> int:
        return self.e_ident[EI_CLASS]

    @property
    def ei_data(self) -> int:
        return self.e_ident[EI_DATA]

    @property
    def ei_version(self) -> int:
        return self.e_ident[EI_VERSION]

    @property
    def ei_osabi(self) -> int:
        return self.e_ident[EI_OSABI]


class Elf32SectionHeader(NamedTuple):
    """One entry of the section-header table."""
    sh_name: int
    sh_type: int
    sh_flags: int
    sh_addr: int
    sh_offset: int
    sh_size: int
    sh_link: int
    sh_info: int
    sh_addralign: int
    sh_entsize: int

    @classmethod
    def unpack_from(cls, buffer: bytes | memoryview, offset: int) -> Elf32SectionHeader:
        return cls._make(ELF32_SHDR.unpack_from(buffer, offset))


class Elf32ProgramHeader(NamedTuple):
    """One entry of the program-header (segment) table."""
    p_type: int
    p_offset: int
    p_vaddr: int
    p_paddr: int
    p_filesz: int
    p_memsz: int
    p_flags: int
    p_align: int

    @classmethod
    def unpack_from(cls, buffer: bytes | memoryview, offset: int) -> Elf32ProgramHeader:
        return cls._make(ELF32_PHDR.unpack_from(buffer, offset))


class Elf32Symbol(NamedTuple):
    """One symbol-table record.  ``st_info`` packs binding and type."""
    st_name: int
    st_value: int
    st_size: int
    st_info: int
    st_other: int
    st_shndx: int

    @classmethod
    def unpack_from(cls, buffer: bytes | memoryview, offset: int) -> Elf32Symbol:
        return cls._make(ELF32_SYM.unpack_from(buffer, offset))

    @property
    def bind(self) -> int:
        return self.st_info >> 4

    @property
    def type(self) -> int:
        return self.st_info & 0xF


class Elf32Rel(NamedTuple):
    """One relocation record without addend."""
    r_offset: int
    r_info: int

    @classmethod
    def unpack_from(cls, buffer: bytes | memoryview, offset: int) -> Elf32Rel:
        return cls._make(ELF32_REL.unpack_from(buffer, offset))

    @property
    def sym(self) -> int:
        return self.r_info >> 8

    @property
    def type(self) -> int:
        return self.r_info & 0xFF


def flags_string(value: int, table: tuple[tuple[int, str], ...]) -> str:
    """Render a flag word as a compact letter string (``"RWX"`` style)."""
    return "".join(letter if value & bit else "-" for bit, letter in table)


SEGMENT_FLAG_LETTERS: tuple[tuple[int, str], ...] = ((PF_R, "R"), (PF_W, "W"), (PF_X, "X"))
SECTION_FLAG_LETTERS: tuple[tuple[int, str], ...] = (
    (SHF_WRITE, "W"),
    (SHF_ALLOC, "A"),
    (SHF_EXECINSTR, "X"),
)
