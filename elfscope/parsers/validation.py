"""
ELF Header Validation
======================

Pure structural checks run before an :class:`~elfscope.core.image.Image`
trusts any offset in its buffer.  Both functions only read the buffer and
report failure as ``False``; with ``verbose`` set they also say why.

The checks bound every table described by the file header by the buffer
length, so that later accessors only need to bounds-check indices against
the header counts.

References:
    - TIS Committee. (1995). Tool Interface Standard (TIS) Executable and
      Linkable Format (ELF) Specification, Version 1.2. Book I, Chapter 1.
"""

from __future__ import annotations

import logging
from typing import Optional

from elfscope.parsers.structs import (
    ELF32_EHDR,
    ELF32_PHDR,
    ELF32_SHDR,
    ELF_MAGIC,
    ELFCLASS32,
    ELFDATA2LSB,
    ET_CORE,
    ET_DYN,
    ET_EXEC,
    ET_REL,
    EV_CURRENT,
    PT_INTERP,
    PT_LOAD,
    PT_NAMES,
    SHN_UNDEF,
    Elf32Header,
    Elf32ProgramHeader,
)

logger = logging.getLogger("elfscope.validation")

_SUPPORTED_TYPES: frozenset[int] = frozenset({ET_REL, ET_EXEC, ET_DYN, ET_CORE})


def _reject(verbose: bool, msg: str, *args: object) -> bool:
    if verbose:
        logger.warning(msg, *args)
    return False


def validate_elf_header(buffer: bytes | memoryview, *, verbose: bool = True) -> bool:
    """Check that the file header is self-consistent and fits *buffer*.

    Args:
        buffer: The complete image.
        verbose: Log the reason for a rejection.

    Returns:
        ``True`` if the header can be trusted.
    """
    file_size = len(buffer)
    if file_size < ELF32_EHDR.size:
        return _reject(verbose, "File is too small (%d bytes) for an ELF header", file_size)

    header = Elf32Header.unpack_from(buffer)

    if header.e_ident[:4] != ELF_MAGIC:
        return _reject(verbose, "File does not start with the ELF magic")
    if header.ei_class != ELFCLASS32:
        return _reject(verbose, "Unsupported ELF class %d, only ELF32 images are supported", header.ei_class)
    if header.ei_data != ELFDATA2LSB:
        return _reject(verbose, "Unsupported data encoding %d, only little-endian images are supported", header.ei_data)
    if header.ei_version != EV_CURRENT or header.e_version != EV_CURRENT:
        return _reject(
            verbose, "Unsupported ELF version (ident %d, header %d)",
            header.ei_version, header.e_version,
        )
    if header.e_ehsize != ELF32_EHDR.size:
        return _reject(verbose, "Header size %d does not match ELF32 (%d)", header.e_ehsize, ELF32_EHDR.size)
    if header.e_type not in _SUPPORTED_TYPES:
        return _reject(verbose, "Unsupported object file type %d", header.e_type)

    if header.e_phnum:
        if header.e_phentsize != ELF32_PHDR.size:
            return _reject(
                verbose, "Program header entry size %d does not match ELF32 (%d)",
                header.e_phentsize, ELF32_PHDR.size,
            )
        end = header.e_phoff + header.e_phnum * ELF32_PHDR.size
        if header.e_phoff < ELF32_EHDR.size or end > file_size:
            return _reject(
                verbose, "Program header table [%#x, %#x) lies outside the file (%d bytes)",
                header.e_phoff, end, file_size,
            )

    if header.e_shnum:
        if header.e_shentsize != ELF32_SHDR.size:
            return _reject(
                verbose, "Section header entry size %d does not match ELF32 (%d)",
                header.e_shentsize, ELF32_SHDR.size,
            )
        end = header.e_shoff + header.e_shnum * ELF32_SHDR.size
        if header.e_shoff < ELF32_EHDR.size or end > file_size:
            return _reject(
                verbose, "Section header table [%#x, %#x) lies outside the file (%d bytes)",
                header.e_shoff, end, file_size,
            )

    if header.e_shstrndx != SHN_UNDEF and header.e_shstrndx >= header.e_shnum:
        return _reject(
            verbose, "Section name table index %d is out of range (%d sections)",
            header.e_shstrndx, header.e_shnum,
        )

    return True


def validate_program_headers(
    buffer: bytes | memoryview,
    header: Elf32Header,
    *,
    interpreter_path: Optional[list[str]] = None,
    verbose: bool = True,
) -> bool:
    """Check every program header against *buffer*.

    Must only be called after :func:`validate_elf_header` accepted the
    header, which guarantees the table itself lies inside the buffer.

    Args:
        buffer: The complete image.
        header: The already validated file header.
        interpreter_path: If given, the ``PT_INTERP`` path is appended to it.
        verbose: Log the reason for a rejection.

    Returns:
        ``True`` if every segment's file image lies inside the buffer.
    """
    file_size = len(buffer)
    for index in range(header.e_phnum):
        ph = Elf32ProgramHeader.unpack_from(
            buffer, header.e_phoff + index * ELF32_PHDR.size
        )
        kind = PT_NAMES.get(ph.p_type, f"{ph.p_type:#x}")

        if ph.p_filesz and ph.p_offset + ph.p_filesz > file_size:
            return _reject(
                verbose, "Program header %d (%s) [%#x, %#x) lies outside the file (%d bytes)",
                index, kind, ph.p_offset, ph.p_offset + ph.p_filesz, file_size,
            )

        if ph.p_type == PT_LOAD and ph.p_filesz > ph.p_memsz:
            return _reject(
                verbose, "Program header %d (LOAD) file size %#x exceeds memory size %#x",
                index, ph.p_filesz, ph.p_memsz,
            )

        if ph.p_type == PT_INTERP:
            if ph.p_filesz == 0 or buffer[ph.p_offset + ph.p_filesz - 1] != 0:
                return _reject(verbose, "Program header %d (INTERP) is not NUL-terminated", index)
            if interpreter_path is not None:
                raw = bytes(buffer[ph.p_offset:ph.p_offset + ph.p_filesz - 1])
                interpreter_path.append(raw.decode("utf-8", errors="replace"))

    return True
