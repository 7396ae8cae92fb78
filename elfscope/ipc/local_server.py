"""
Local Socket Acceptor
======================

:class:`LocalServer` owns one listening ``AF_UNIX`` stream socket.  It
either creates the socket itself (:meth:`LocalServer.listen`) or adopts
one inherited from a supervising process
(:meth:`LocalServer.take_over_from_system_server`).

The supervisor passes inherited sockets through an environment variable
(``SOCKET_TAKEOVER`` by default) formatted as ``"path:fd path:fd ..."``.
The variable is parsed once per process and then removed from the
environment so that children do not see it.

When an asyncio loop is available the listening socket is registered with
``loop.add_reader`` and :attr:`LocalServer.on_ready_to_accept` fires each
time a connection is pending.

Usage::

    server = LocalServer(on_ready_to_accept=handle_pending)
    if not server.take_over_from_system_server():
        server.listen("/tmp/elfscope.sock")
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import stat
from typing import Callable, ClassVar, Optional

from shared.config import ServerConfig
from shared.logger import ScopeLogger

from elfscope.core.errors import verify

_module_logger = logging.getLogger("elfscope.ipc")


class LocalServer:
    """Listening ``AF_UNIX`` socket with an optional readiness callback.

    Args:
        config: Socket path, takeover variable and backlog.  Defaults are
            used if not provided.
        loop: Event loop for the readiness notifier.  If omitted, the loop
            running at :meth:`listen` / takeover time is used; with no loop
            at all the notifier is skipped and callers poll :meth:`accept`.
        logger: Where failures are reported.
        on_ready_to_accept: Called with no arguments when a connection is
            pending.
    """

    _overtaken_sockets: ClassVar[dict[str, int]] = {}
    _overtaken_sockets_parsed: ClassVar[bool] = False

    def __init__(
        self,
        config: ServerConfig | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        logger: ScopeLogger | None = None,
        on_ready_to_accept: Optional[Callable[[], None]] = None,
    ) -> None:
        self._config: ServerConfig = config or ServerConfig()
        self._loop = loop
        self._logger: ScopeLogger | logging.Logger = logger or _module_logger
        self.on_ready_to_accept = on_ready_to_accept

        self._socket: Optional[socket.socket] = None
        self._listening: bool = False
        self._notifier_loop: Optional[asyncio.AbstractEventLoop] = None

    # ------------------------------------------------------------------ #
    #  Inherited sockets
    # ------------------------------------------------------------------ #

    @classmethod
    def _parse_sockets_from_system_server(cls, env_var: str) -> None:
        sockets: dict[str, int] = {}
        raw = os.environ.get(env_var)
        if raw:
            for entry in raw.split():
                path, sep, fd_text = entry.rpartition(":")
                if not sep or not path:
                    _module_logger.warning("Ignoring malformed %s entry %r", env_var, entry)
                    continue
                try:
                    sockets[path] = int(fd_text)
                except ValueError:
                    _module_logger.warning("Ignoring malformed %s entry %r", env_var, entry)
            os.environ.pop(env_var, None)
        cls._overtaken_sockets = sockets
        cls._overtaken_sockets_parsed = True

    def take_over_from_system_server(self, socket_path: Optional[str] = None) -> bool:
        """Adopt a listening socket handed down by the supervisor.

        With no *socket_path* the single inherited socket is used, and only
        if exactly one was passed.  Otherwise the socket registered for
        *socket_path* is used.
        """
        if self._listening:
            return False

        if not LocalServer._overtaken_sockets_parsed:
            LocalServer._parse_sockets_from_system_server(self._config.takeover_env_var)

        sockets = LocalServer._overtaken_sockets
        fd: Optional[int] = None
        if socket_path is None:
            if len(sockets) == 1:
                fd = next(iter(sockets.values()))
        else:
            fd = sockets.get(socket_path)

        if fd is not None:
            try:
                is_socket = stat.S_ISSOCK(os.fstat(fd).st_mode)
            except OSError as exc:
                self._logger.error("fstat(%d) failed: %s", fd, exc)
                is_socket = False
            if is_socket:
                # Inherited sockets arrive without close-on-exec.
                os.set_inheritable(fd, False)
                self._socket = socket.socket(fileno=fd)
                self._listening = True
                self._setup_notifier()
                return True
            self._logger.error("Inherited fd %d is not a socket", fd)

        self._logger.error(
            "Failed to take over socket %s from the system server",
            socket_path if socket_path is not None else "<only>",
        )
        return False

    take_over_inherited_socket = take_over_from_system_server

    # ------------------------------------------------------------------ #
    #  Listening
    # ------------------------------------------------------------------ #

    def listen(self, address: Optional[str] = None) -> bool:
        """Create, bind and listen on a socket at *address*.

        The socket file is restricted to mode ``0600``.  Returns ``False``
        if the server is already listening or if any step fails.
        """
        if self._listening:
            return False

        address = address or self._config.socket_path
        # Python sockets are created close-on-exec.
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.setblocking(False)
        try:
            # Linux ignores fchmod() on an unbound socket, so the file mode
            # has to come from the umask in force at bind time.
            previous_umask = os.umask(0o177)
            try:
                sock.bind(address)
            finally:
                os.umask(previous_umask)
            sock.listen(self._config.backlog)
        except OSError as exc:
            self._logger.error("Cannot listen on %s: %s", address, exc)
            sock.close()
            return False

        self._socket = sock
        self._listening = True
        self._setup_notifier()
        return True

    def _setup_notifier(self) -> None:
        assert self._socket is not None
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return
        loop.add_reader(self._socket.fileno(), self._ready_to_read)
        self._notifier_loop = loop

    def _ready_to_read(self) -> None:
        if self.on_ready_to_accept is not None:
            self.on_ready_to_accept()

    # ------------------------------------------------------------------ #
    #  Connections
    # ------------------------------------------------------------------ #

    def accept(self) -> Optional[socket.socket]:
        """Accept one pending connection.

        Returns a non-blocking, close-on-exec socket, or ``None`` if the
        accept fails (including when nothing is pending).
        """
        verify(self._listening, "accept() called on a server that is not listening")
        assert self._socket is not None
        try:
            connection, _ = self._socket.accept()
        except OSError as exc:
            self._logger.error("accept() failed: %s", exc)
            return None
        connection.setblocking(False)
        return connection

    @property
    def is_listening(self) -> bool:
        return self._listening

    def fileno(self) -> int:
        return self._socket.fileno() if self._socket is not None else -1

    def close(self) -> None:
        """Drop the notifier and close the listening socket."""
        if self._socket is None:
            return
        if self._notifier_loop is not None:
            self._notifier_loop.remove_reader(self._socket.fileno())
            self._notifier_loop = None
        self._socket.close()
        self._socket = None
        self._listening = False

    def __enter__(self) -> LocalServer:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
