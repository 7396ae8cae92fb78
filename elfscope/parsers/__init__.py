"""
ElfScope Parsers
=================

ELF32 little-endian record layouts and the header validation run before
an image is trusted.
"""

from elfscope.parsers.validation import validate_elf_header, validate_program_headers

__all__ = [
    "validate_elf_header",
    "validate_program_headers",
]
