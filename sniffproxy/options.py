from typing import Optional

from sniffproxy import log
from sniffproxy import optmanager

CONF_DIR = "~/.sniffproxy"
CONF_BASENAME = "config"


class Options(optmanager.OptManager):
    def __init__(self, **kwargs) -> None:
        super().__init__()
        self.add_option(
            "local",
            str,
            "",
            """
            Address to listen on, e.g. "127.0.0.1:8081" or ":8081" for all interfaces.
            """,
        )
        self.add_option(
            "remote",
            Optional[str],
            None,
            """
            Remote server to dial for every client connection, e.g. "example.com:80".
            """,
        )
        self.add_option(
            "suppress_headers",
            bool,
            False,
            """
            Show only the first line of HTTP/1.x headers.
            Type "h" followed by enter while running to toggle.
            """,
        )
        self.add_option(
            "output_format",
            str,
            "raw",
            """
            Format of the captured traffic on stdout. "raw" tags every chunk with a
            direction line, "json" writes one record per chunk.
            """,
            choices=("raw", "json"),
        )
        self.add_option(
            "keep_serving",
            bool,
            False,
            """
            Keep accepting clients if the remote server cannot be reached.
            By default, a failed connection attempt stops the proxy.
            """,
        )
        self.add_option(
            "testserver",
            bool,
            False,
            """
            Run as a simple HTTP server on the local address instead, for testing purposes.
            """,
        )
        self.add_option(
            "termlog_verbosity",
            str,
            "info",
            "Log verbosity.",
            choices=log.LogLevels,
        )
        self.add_option(
            "confdir",
            str,
            CONF_DIR,
            "Location of the default sniffproxy configuration files.",
        )
        self.update(**kwargs)
