"""
The relay moves bytes between a client and a server connection and mirrors
every chunk it reads to the frame sink for that direction.
"""

from __future__ import annotations

import logging
import socket
import threading

from sniffproxy import framing
from sniffproxy.coretypes import basethread
from sniffproxy.net import tcp

logger = logging.getLogger(__name__)


class Relay:
    """
    One client <-> server session.

    The relay does not care which connection is which, except for picking the
    frame sink: data read from `client` goes to `from_client`, data read from
    `server` goes to `from_server`.
    """

    chunk_size = 4096

    def __init__(
        self,
        client: socket.socket,
        server: socket.socket,
        id: int,
        from_client: framing.WriteFramer,
        from_server: framing.WriteFramer,
    ):
        self.client = client
        self.server = server
        self.id = id
        self.from_client = from_client
        self.from_server = from_server

        self.closed = False
        self.lock = threading.Lock()

        self._threads: list[threading.Thread] = []
        self._running = 0
        self._closed_conn: socket.socket | None = None

    def __repr__(self):
        return f"<Relay {self.id} ({'closed' if self.closed else 'open'})>"

    def run(self) -> None:
        """
        Starts both pumps and returns immediately.
        """
        pumps = [
            ("client -> server", self.client, self.server, self.from_client),
            ("server -> client", self.server, self.client, self.from_server),
        ]
        self._running = len(pumps)
        for direction, src, dst, sink in pumps:
            t = basethread.BaseThread(
                f"Relay {self.id} ({direction})",
                target=self._pump,
                args=(src, dst, sink),
            )
            self._threads.append(t)
        for t in self._threads:
            t.start()

    def join(self, timeout: float | None = None) -> bool:
        """
        Waits for both pumps to exit. Returns False if they are still running after `timeout`.
        """
        for t in self._threads:
            t.join(timeout)
        return not any(t.is_alive() for t in self._threads)

    def _pump(self, src, dst, sink: framing.WriteFramer) -> None:
        try:
            while True:
                read_error: BaseException | None = None
                write_error: BaseException | None = None
                try:
                    data = src.recv(self.chunk_size)
                except OSError as e:
                    data = b""
                    read_error = e
                else:
                    # End of stream and read errors take the same path.
                    if not data:
                        read_error = EOFError()

                if data:
                    with self.lock:
                        self._deliver(sink, data)
                    try:
                        dst.sendall(data)
                    except OSError as e:
                        write_error = e

                if read_error is not None:
                    if write_error is None:
                        self.set_closed(dst)
                    else:
                        self.set_closed(None)
                    return
                elif write_error is not None:
                    logger.debug(f"Relay {self.id}: write failed: {write_error!r}")
                    self.set_closed(src)
                    return
        finally:
            self._pump_done()

    def _deliver(self, sink: framing.WriteFramer, data: bytes) -> None:
        try:
            sink.write_frame(self, data)
        except Exception as e:
            logger.debug(f"Relay {self.id}: dropping frame, sink failed: {e!r}")

    def set_closed(self, conn) -> bool:
        """
        Marks the session as closed and returns the previous state.
        `conn` is closed only on the first call.
        """
        with self.lock:
            old = self.closed
            self.closed = True
            if not old and conn is not None:
                self._closed_conn = conn
                tcp.close_socket(conn)
            return old

    def _pump_done(self) -> None:
        with self.lock:
            self._running -= 1
            if self._running:
                return
            leftover = [
                c for c in (self.client, self.server) if c is not self._closed_conn
            ]
        for conn in leftover:
            tcp.close_socket(conn)
        logger.debug(f"Relay {self.id} finished.")
