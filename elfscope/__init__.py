"""
ElfScope -- ELF Image Introspection and Symbolication
=======================================================

ElfScope is a read-only, random-access view over 32-bit little-endian ELF
images held in memory.  It validates the file and program headers once,
exposes sections, segments, symbols and relocations as lightweight views,
and resolves addresses to ``symbol +offset`` with demangled C++ names.

Capabilities:
    - ELF32 header and program-header validation
    - Section, program-header, symbol and relocation views
    - String-table lookups bounded by the image size
    - Function lookup by demangled name, ignoring overloads
    - Address symbolication through a lazily sorted symbol index
    - Rich console and JSON reports through the ``elfscope`` CLI
    - A local-socket acceptor for supervised services

References:
    - TIS Committee. (1995). ELF Specification, Version 1.2.
    - Itanium C++ ABI. https://itanium-cxx-abi.github.io/cxx-abi/abi.html
"""

__version__ = "1.0.0"
__all__ = [
    "Image",
    "ScopeEngine",
    "ImageReport",
    "ImageConsoleOutput",
    "LocalServer",
]
