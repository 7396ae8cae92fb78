"""
Symbol Name Demangling
=======================

Thin wrapper over :mod:`itanium_demangler` that never fails: names that
are not Itanium-mangled, or that the demangler cannot handle, come back
unchanged.

References:
    - Itanium C++ ABI, section 5.1 "External Names".
      https://itanium-cxx-abi.github.io/cxx-abi/abi.html#mangling
"""

from __future__ import annotations

import logging

from itanium_demangler import parse as _parse_mangled

logger = logging.getLogger("elfscope.demangle")

_MANGLED_PREFIX: str = "_Z"


def demangle(name: str) -> str:
    """Return the human-readable form of *name*, or *name* itself.

    Args:
        name: A raw symbol name as stored in the string table.

    Returns:
        The demangled name, e.g. ``"foo(int, int)"`` for ``"_Z3fooii"``.
    """
    if not name.startswith(_MANGLED_PREFIX):
        return name
    try:
        ast = _parse_mangled(name)
    except NotImplementedError:
        logger.debug("Unsupported mangling construct in %r", name)
        return name
    if ast is None:
        return name
    return str(ast)


def strip_parameters(demangled: str) -> str:
    """Cut a demangled name at its parameter list: ``"foo(int)"`` -> ``"foo"``."""
    index = demangled.find("(")
    if index < 0:
        return demangled
    return demangled[:index]
