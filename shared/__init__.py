"""
ElfScope Shared Module
======================

Configuration, logging, and console utilities shared by the ElfScope
image engine, its command-line front end, and the local-socket acceptor.
"""

from shared.config import ScopeConfig

__all__ = ["ScopeConfig"]
