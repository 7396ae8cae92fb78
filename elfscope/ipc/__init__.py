"""
ElfScope IPC Module
====================

Listening ``AF_UNIX`` socket with supervisor takeover support.
"""

from elfscope.ipc.local_server import LocalServer

__all__ = [
    "LocalServer",
]
