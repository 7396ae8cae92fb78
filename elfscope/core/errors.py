"""
ElfScope Errors
================

Two classes of failure are kept apart:

* **Contract violations** -- an index past an already validated count,
  a structural accessor used on an invalid image, a raw offset that was
  not checked before the call.  These are bugs in ElfScope or its caller
  and raise :class:`ContractViolation`.
* **Data errors** -- malformed headers, duplicate symbol tables, offsets
  from the file that point outside the buffer.  These never raise; the
  affected call answers ``False``, ``None`` or ``"??"`` instead.

:class:`ImageLoadError` is raised by the engine layer only, when a file
cannot be turned into a valid image at all.
"""

from __future__ import annotations


class ContractViolation(AssertionError):
    """A precondition of the image API was broken by the caller."""


class ImageLoadError(Exception):
    """A file could not be loaded as a valid ELF image."""


def verify(condition: bool, message: str) -> None:
    """Raise :class:`ContractViolation` unless *condition* holds.

    Unlike ``assert`` this is not stripped under ``python -O``.
    """
    if not condition:
        raise ContractViolation(message)
