"""
The dispatch loop accepts client connections, dials the upstream server for
each of them and hands the pair to a new Relay.

A simple example, dumping all traffic that passes through 127.0.0.1:8081 on
its way to example.com:80 to stdout:

    listener = tcp.Listener(("127.0.0.1", 8081))
    sniff(listener, "example.com:80", sys.stdout.buffer)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import IO

from sniffproxy import exceptions
from sniffproxy import framing
from sniffproxy.net import server_spec
from sniffproxy.net import tcp
from sniffproxy.relay import Relay

logger = logging.getLogger(__name__)


class Dispatcher:
    def __init__(
        self,
        listener: tcp.Listener,
        remote: str | server_spec.Address,
        from_client: framing.WriteFramer,
        from_server: framing.WriteFramer,
        keep_serving: bool = False,
        dial: Callable[[server_spec.Address], object] = tcp.dial,
    ):
        self.listener = listener
        if isinstance(remote, str):
            remote = server_spec.parse(remote)
        self.remote = remote
        self.from_client = from_client
        self.from_server = from_server
        self.keep_serving = keep_serving
        self.dial = dial
        self.next_id = 0
        self.relays: list[Relay] = []

    def serve_forever(self) -> None:
        """
        Runs until accepting or (unless keep_serving is set) dialing fails.

        Raises:
            exceptions.TcpException
        """
        while True:
            client_conn, client_address = self.listener.accept()
            logger.debug("client connected", extra={"client": client_address})
            try:
                server_conn = self.dial(self.remote)
            except exceptions.TcpException as e:
                logger.error(str(e), extra={"client": client_address})
                tcp.close_socket(client_conn)
                if self.keep_serving:
                    continue
                raise

            relay = Relay(
                client_conn,
                server_conn,
                self.next_id,
                self.from_client,
                self.from_server,
            )
            self.next_id += 1
            logger.info(
                f"session {relay.id}: relaying to {self.remote[0]}:{self.remote[1]}",
                extra={"client": client_address},
            )
            self.relays = [r for r in self.relays if not r.join(0)]
            self.relays.append(relay)
            relay.run()

    def join_relays(self, timeout: float | None = None) -> bool:
        """
        Waits for the running sessions to finish, for at most `timeout` seconds
        in total. Returns False if some are still running.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        for relay in self.relays:
            remaining = None if deadline is None else max(0, deadline - time.monotonic())
            relay.join(remaining)
        self.relays = [r for r in self.relays if not r.join(0)]
        return not self.relays


def sniff(listener: tcp.Listener, remote: str, output: IO[bytes]) -> None:
    """
    Listens on the listener, dials the server for every client connection,
    and dumps the resulting traffic to `output`.
    """
    from_client, from_server = framing.default_write_framers(output)
    sniff_to_output(listener, remote, from_client, from_server)


def sniff_to_output(
    listener: tcp.Listener,
    remote: str,
    from_client: framing.WriteFramer,
    from_server: framing.WriteFramer,
    keep_serving: bool = False,
) -> None:
    Dispatcher(
        listener, remote, from_client, from_server, keep_serving=keep_serving
    ).serve_forever()
