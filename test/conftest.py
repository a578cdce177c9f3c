from __future__ import annotations

import io
import os
import socket
import threading

import pytest

from sniffproxy import exceptions
from sniffproxy import framing
from sniffproxy.dispatch import Dispatcher
from sniffproxy.net import tcp

skip_windows = pytest.mark.skipif(os.name == "nt", reason="Skipping due to Windows")

try:
    s = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
    s.bind(("::1", 0))
    s.close()
except OSError:
    no_ipv6 = True
else:
    no_ipv6 = False

skip_no_ipv6 = pytest.mark.skipif(no_ipv6, reason="Host has no IPv6 support")


class Sniffer:
    """
    A dispatch loop running in a background thread, relaying from an
    ephemeral local port to `remote` and capturing raw output in memory.
    """

    def __init__(self, remote, transformer=None, **kwargs):
        self.output = io.BytesIO()
        self.listener = tcp.Listener(("127.0.0.1", 0), poll_interval=0.01)
        from_client, from_server = framing.default_write_framers(self.output)
        if transformer is not None:
            from_client = framing.transform(transformer, from_client)
            from_server = framing.transform(transformer, from_server)
        self.dispatcher = Dispatcher(
            self.listener, remote, from_client, from_server, **kwargs
        )
        self.error: Exception | None = None
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    @property
    def address(self):
        return self.listener.address

    def _serve(self):
        try:
            self.dispatcher.serve_forever()
        except exceptions.TcpException as e:
            self.error = e

    def connect(self) -> socket.socket:
        return socket.create_connection(self.address[:2], timeout=5)

    def join_relays(self, timeout=5):
        for r in self.dispatcher.relays:
            assert r.join(timeout)

    def shutdown(self):
        self.listener.shutdown()
        self.thread.join(5)

    @property
    def text(self) -> str:
        return self.output.getvalue().decode()


@pytest.fixture
def make_sniffer():
    sniffers = []

    def make(remote, transformer=None, **kwargs):
        s = Sniffer(remote, transformer, **kwargs)
        sniffers.append(s)
        return s

    yield make
    for s in sniffers:
        s.shutdown()
