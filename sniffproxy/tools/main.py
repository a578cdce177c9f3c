from __future__ import annotations

import io
import logging
import os
import signal
import sys
from collections.abc import Sequence
from typing import IO

from sniffproxy import exceptions
from sniffproxy import framing
from sniffproxy import log
from sniffproxy import options
from sniffproxy import optmanager
from sniffproxy.coretypes import basethread
from sniffproxy.dispatch import Dispatcher
from sniffproxy.net import server_spec
from sniffproxy.net import tcp
from sniffproxy.tools import cmdline

logger = logging.getLogger(__name__)

# seconds to wait for open sessions after the listener stopped.
DRAIN_TIMEOUT = 1.0


def process_options(parser, opts, args):
    if args.quiet:
        args.termlog_verbosity = "error"
    if args.verbose:
        args.termlog_verbosity = "debug"

    adict = {
        key: val for key, val in vars(args).items() if key in opts and val is not None
    }
    opts.update(**adict)


def make_write_framers(
    opts: options.Options, out: IO[bytes]
) -> tuple[framing.WriteFramer, framing.WriteFramer]:
    """
    Builds the per-direction frame sinks for the configured output format.
    Header suppression follows the suppress_headers option, even while running.
    """
    if opts.output_format == "json":
        return framing.record_write_framers(
            framing.JSONLinesOutput(io.TextIOWrapper(out, encoding="utf8"))
        )

    suppress = framing.Toggle(
        framing.suppress_http_headers, enabled=opts.suppress_headers
    )

    def update_toggle(opts, updated):
        suppress.enabled = opts.suppress_headers

    opts.subscribe(update_toggle, ["suppress_headers"])

    from_client, from_server = framing.default_write_framers(out)
    return (
        framing.transform(suppress, from_client),
        framing.transform(suppress, from_server),
    )


def watch_stdin(opts: options.Options, stream: IO[str]) -> None:
    """
    Toggles header suppression whenever a line reading "h" arrives on `stream`.
    """
    toggle = opts.toggler("suppress_headers")
    for line in stream:
        if line.strip() != "h":
            continue
        if opts.output_format != "raw":
            logger.info("HTTP header suppression only applies to raw output.")
        else:
            toggle()
            logger.info(
                f"HTTP header suppression {'on' if opts.suppress_headers else 'off'}."
            )


def run(arguments: Sequence[str] | None = None) -> int:
    opts = options.Options()
    parser = cmdline.sniffproxy(opts)
    args = parser.parse_args(arguments)

    try:
        # --set confdir=... decides where the config file is looked up.
        opts.set(*[s for s in args.setoptions if s.startswith("confdir=")])
        optmanager.load_paths(
            opts,
            os.path.join(opts.confdir, f"{options.CONF_BASENAME}.yaml"),
            os.path.join(opts.confdir, f"{options.CONF_BASENAME}.yml"),
        )
        # the command line takes precedence over the config file.
        opts.set(*args.setoptions)
        process_options(parser, opts, args)
    except exceptions.OptionsError as e:
        print(f"{parser.prog}: {e}", file=sys.stderr)
        return 1

    if args.options:
        optmanager.dump_defaults(opts, sys.stdout)
        return 0

    handler = log.setup(opts.termlog_verbosity)
    try:
        return _run(opts)
    finally:
        handler.uninstall()


def _run(opts: options.Options) -> int:
    if not opts.local:
        logger.error("Please specify an address to listen on.")
        return 1
    try:
        local = server_spec.parse(opts.local)
        remote = server_spec.parse(opts.remote) if opts.remote else None
    except ValueError as e:
        logger.error(str(e))
        return 1

    if opts.testserver:
        from sniffproxy.tools import testserver

        testserver.run(local)
        return 0

    if remote is None:
        logger.error("Please specify a server to connect to.")
        return 1

    try:
        listener = tcp.Listener(local)
    except exceptions.TcpException as e:
        logger.error(str(e))
        return 1

    from_client, from_server = make_write_framers(opts, sys.stdout.buffer)
    dispatcher = Dispatcher(
        listener, remote, from_client, from_server, keep_serving=opts.keep_serving
    )

    def _sigterm(*_):
        listener.shutdown()

    signal.signal(signal.SIGTERM, _sigterm)
    if sys.stdin:
        basethread.BaseThread(
            "stdin watcher", target=watch_stdin, args=(opts, sys.stdin)
        ).start()

    logger.info(
        f"Listening on {listener.address[0]}:{listener.port}, relaying to {remote[0]}:{remote[1]}"
    )
    try:
        dispatcher.serve_forever()
    except exceptions.TcpException as e:
        if listener.is_shut_down:
            return 0
        logger.error(f"Proxy stopped: {e}")
        return 1
    except KeyboardInterrupt:
        return 0
    finally:
        listener.shutdown()
        if not dispatcher.join_relays(DRAIN_TIMEOUT):
            logger.debug("Some sessions were still open at shutdown.")


def sniffproxy(args=None) -> int:  # pragma: no cover
    return run(args)
