"""
Every exception that might be externally visible to users shall be a subclass
of SniffproxyException. Every exception in the net module shall be a subclass
of NetlibException; those are handled inside the relay and only reach users
through the dispatch loop.
"""


class SniffproxyException(Exception):
    """
    Base class for all exceptions thrown by sniffproxy.
    """

    def __init__(self, message=None):
        super().__init__(message)


class OptionsError(SniffproxyException):
    pass


class NetlibException(SniffproxyException):
    """
    Base class for all exceptions thrown by sniffproxy.net.
    """


class TcpException(NetlibException):
    pass
