import argparse

from sniffproxy import version


def common_options(parser, opts):
    parser.add_argument(
        "--version",
        action="version",
        version=version.SNIFFPROXY,
    )
    parser.add_argument(
        "--options",
        action="store_true",
        help="Show all options and their default values",
    )
    parser.add_argument(
        "--set",
        type=str,
        dest="setoptions",
        default=[],
        action="append",
        metavar="option[=value]",
        help="""
            Set an option. When the value is omitted, booleans are set to true,
            strings and integers are set to None (if permitted).
            Boolean values can be true, false or toggle.
        """,
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", dest="quiet", help="Quiet."
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_const",
        dest="verbose",
        const="debug",
        help="Increase log verbosity.",
    )

    # Proxy options
    group = parser.add_argument_group("Proxy Options")
    opts.make_parser(group, "local", metavar="ADDR", short="l")
    opts.make_parser(group, "remote", metavar="ADDR", short="r")
    opts.make_parser(group, "keep_serving")
    opts.make_parser(group, "testserver")

    # Output options
    group = parser.add_argument_group("Output Options")
    opts.make_parser(group, "suppress_headers", short="H")
    opts.make_parser(group, "output_format", metavar="FORMAT")


def sniffproxy(opts):
    parser = argparse.ArgumentParser(
        usage="%(prog)s [options]",
        description="A TCP proxy that dumps all traffic passing through it to stdout.",
    )
    common_options(parser, opts)
    return parser
