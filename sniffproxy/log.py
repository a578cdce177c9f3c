from __future__ import annotations

import ipaddress
import logging
import sys
from typing import IO

import click

LogLevels = [
    "error",
    "warn",
    "info",
    "debug",
]

LOG_COLORS = {logging.ERROR: "red", logging.WARNING: "yellow"}


class SniffFormatter(logging.Formatter):
    def __init__(self, colorize: bool):
        super().__init__()
        self.colorize = colorize
        time = "[%s]"
        client = "[%s]"
        if colorize:
            time = click.style(time, fg="cyan", dim=True)
            client = click.style(client, fg="yellow", dim=True)

        self.with_client = f"{time}{client} %s"
        self.without_client = f"{time} %s"

    default_time_format = "%H:%M:%S"
    default_msec_format = "%s.%03d"

    def format(self, record: logging.LogRecord) -> str:
        time = self.formatTime(record)
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        if self.colorize:
            message = click.style(message, fg=LOG_COLORS.get(record.levelno))
        if client := getattr(record, "client", None):
            client = format_address(client)
            return self.with_client % (time, client, message)
        else:
            return self.without_client % (time, message)


class TermLogHandler(logging.Handler):
    """
    Writes log records to a terminal. Defaults to stderr, stdout carries the captured traffic.
    """

    def __init__(self, out: IO[str] | None = None):
        super().__init__()
        self.file: IO[str] = out or sys.stderr
        self.formatter = SniffFormatter(self.file.isatty())

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print(self.format(record), file=self.file)
        except OSError:
            # We cannot print, exit immediately.
            sys.exit(1)

    def install(self) -> None:
        logging.getLogger().addHandler(self)

    def uninstall(self) -> None:
        logging.getLogger().removeHandler(self)


def setup(verbosity: str = "info", out: IO[str] | None = None) -> TermLogHandler:
    handler = TermLogHandler(out)
    handler.setLevel(log_level(verbosity))
    handler.install()
    logging.getLogger().setLevel(logging.DEBUG)
    return handler


def log_level(verbosity: str) -> int:
    if verbosity not in LogLevels:
        raise ValueError(f"Invalid log verbosity: {verbosity}")
    return logging.WARNING if verbosity == "warn" else getattr(logging, verbosity.upper())


def format_address(address: tuple | None) -> str:
    """
    Formats an IPv4/IPv6 socket address as host:port.
    """
    if address is None:
        return "<no address>"
    try:
        host = ipaddress.ip_address(address[0])
    except ValueError:
        return f"{address[0]}:{address[1]}"
    if host.is_unspecified:
        return f"*:{address[1]}"
    if isinstance(host, ipaddress.IPv6Address):
        if host.ipv4_mapped:
            return f"{host.ipv4_mapped}:{address[1]}"
        return f"[{host}]:{address[1]}"
    return f"{host}:{address[1]}"
