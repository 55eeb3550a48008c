import argparse
import logging
import logging.handlers
import shlex
import sys


def add_logging(g):
    """
    Adds verbose, debug, and syslog arguments to a ArgumentParser.

    Parameters
    ----------
    g : argparse.ArgumentParser or argparse._ArgumentGroup

    """
    g.add_argument('-d', '--debug', action="store_const", dest="loglevel", const=logging.DEBUG,
                   help="Print lots of debugging statements",
                   default=logging.WARNING)
    g.add_argument('-v', '--verbose', action="store_const", dest="loglevel", const=logging.INFO,
                   help="Be verbose")
    g.add_argument('--syslog', action='store_true', default=False,
                   help='If given, logging goes to local syslog facility instead of stdout/stderr')


def setup_logging(logger, syslog=False, loglevel=logging.WARNING):
    """
    Set a logger to log to syslog or or stdout with a given `loglevel`

    Parameters
    ----------
    logger : logging.Logger
    syslog : bool
    loglevel : int
    """
    if syslog:
        handler = logging.handlers.SysLogHandler(address='/dev/log')
        formatter = logging.Formatter('%(message)s')
    else:
        handler = logging.StreamHandler(sys.stdout)
        # noinspection SpellCheckingInspection
        formatter = logging.Formatter('%(asctime)s %(name)s %(levelname)s - %(message)s')
    handler.setFormatter(formatter)
    logger.setLevel(loglevel)
    logger.addHandler(handler)


class LoadFromFile(argparse.Action):
    """
    Action for argparse to read parameters from a file.

    Only lines starting with a '-' as first non-whitespace character are processed.

    https://stackoverflow.com/a/27434050/17603877

    TODO: mutually exclusive arguments are not detected if one is given in file, and
        the other one via CLI. __main__ checks --url/--cam-id by hand for that reason.
    """

    # noinspection PyShadowingNames
    def __call__(self, parser, namespace, values, option_string=None):
        with values as f:
            # parse arguments in the file and store them in the target namespace
            for line in f:
                line = line.strip()  # remove leading and trailing whitespaces
                if line.startswith('-'):
                    # use shlex.split instead of line.split to preserve quoting of arguments containing spaces
                    parser.parse_args(shlex.split(line), namespace)


def uint8(s):
    """
    Argument type for a single channel value between 0 and 255.
    """
    value = int(s)
    if not 0 <= value <= 255:
        raise argparse.ArgumentTypeError(f'{value} is not in range [0, 255]')
    return value


def odd_or_zero(s):
    """
    Argument type for filter sizes, which must be odd, or 0 to disable the filter.
    """
    value = int(s)
    if value < 0 or (value and value % 2 == 0):
        raise argparse.ArgumentTypeError(f'{value} is neither 0 nor a positive odd number')
    return value
