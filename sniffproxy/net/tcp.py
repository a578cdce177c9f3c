import select
import socket
import threading

from sniffproxy import exceptions
from sniffproxy.net.server_spec import Address

# workaround for https://bugs.python.org/issue29515
# Python 3.6 for Windows is missing a constant
IPPROTO_IPV6 = getattr(socket, "IPPROTO_IPV6", 41)


def close_socket(sock):
    """
    Does a hard close of a socket, without emitting a RST.

    Shutting down the read half also wakes up any thread that is currently
    blocked in recv() on this socket.
    """
    try:
        # We already indicate that we close our end.
        # may raise "Transport endpoint is not connected" on Linux
        sock.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    try:
        # Now we can close the other half as well.
        sock.shutdown(socket.SHUT_RD)
    except OSError:
        pass

    sock.close()


def dial(address: Address, timeout: float | None = None) -> socket.socket:
    """
    Opens a stream connection to the given (host, port) address.

    Raises:
        exceptions.TcpException, if no address could be connected to.
    """
    # Based on the official socket.create_connection implementation of Python 3.6.
    # https://github.com/python/cpython/blob/3cc5817cfaf5663645f4ee447eaed603d2ad290a/Lib/socket.py
    err = None
    try:
        addrinfo = socket.getaddrinfo(address[0], address[1], 0, socket.SOCK_STREAM)
    except OSError as e:
        raise exceptions.TcpException(f'Error connecting to "{address[0]}": {e}')

    for af, socktype, proto, _, sa in addrinfo:
        sock = None
        try:
            sock = socket.socket(af, socktype, proto)
            if timeout:
                sock.settimeout(timeout)
            sock.connect(sa)
            sock.settimeout(None)
            return sock
        except OSError as _:
            err = _
            if sock is not None:
                sock.close()

    raise exceptions.TcpException(
        f'Error connecting to "{address[0]}": {err or "getaddrinfo returns an empty list"}'
    )


class Listener:
    """
    A listening TCP socket. accept() blocks until a client connects or
    shutdown() is called from another thread.
    """

    def __init__(self, address: Address, poll_interval: float = 0.1):
        self.poll_interval = poll_interval
        self._shutdown_request = threading.Event()
        self.socket = None

        try:
            # First try to bind an IPv6 socket, attempting to enable IPv4 support if the OS supports it.
            # This allows us to accept connections for ::1 and 127.0.0.1 on the same socket.
            # Only works if address[0] == ""
            self.socket = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
            self.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self.socket.setsockopt(IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
            self.socket.bind(address)
        except OSError:
            if self.socket:
                self.socket.close()
            self.socket = None

        if not self.socket:
            # Binding to an IPv6 + IPv4 socket failed, lets fall back to IPv4 only.
            try:
                self.socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
                self.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                self.socket.bind(address)
            except OSError as e:
                if self.socket:
                    self.socket.close()
                raise exceptions.TcpException(
                    f"Error listening on {address[0]}:{address[1]}: {e}"
                )

        self.address = self.socket.getsockname()
        self.socket.listen()

    @property
    def port(self) -> int:
        return self.address[1]

    def accept(self) -> tuple[socket.socket, tuple]:
        """
        Returns the next client connection and its address.

        Raises:
            exceptions.TcpException, if accepting failed or the listener has been shut down.
        """
        while not self._shutdown_request.is_set():
            try:
                r, _, _ = select.select([self.socket], [], [], self.poll_interval)
                if self.socket in r:
                    connection, client_address = self.socket.accept()
                    return connection, client_address
            except (OSError, ValueError) as e:
                if self._shutdown_request.is_set():
                    break
                raise exceptions.TcpException(f"Error accepting connection: {e}")
        raise exceptions.TcpException("Listener has been shut down.")

    @property
    def is_shut_down(self) -> bool:
        return self._shutdown_request.is_set()

    def shutdown(self) -> None:
        self._shutdown_request.set()
        self.socket.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.shutdown()
