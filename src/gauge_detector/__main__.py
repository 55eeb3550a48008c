import argparse
import logging
import os
from ._gauge_detector import main
from ._image_processing import (
    ThresholdMode,
    DP, MIN_DIST, CANNY_THRESHOLD, ACCUMULATOR_THRESHOLD, MIN_RADIUS, MAX_RADIUS,
    HSV_LOWER, HSV_UPPER, THRESHOLD,
    RHO, THETA_DEG, LINE_THRESHOLD, MIN_LINE_LENGTH, MAX_LINE_GAP,
)
from gauge_detector._parser import add_logging, setup_logging, LoadFromFile, uint8, odd_or_zero
logger = logging.getLogger('gauge_detector')


def setup_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog='gauge-detector',
                                description='Locates an analog gauge and its needle in camera frames.')

    p.add_argument('--settings-filename', type=open, action=LoadFromFile,
                   help='Read parameters from a file')

    # display
    g = p.add_argument_group(title='Display')
    g.add_argument('--port', type=int, default=None, choices=range(1, 65534),
                   metavar='[1-65534]',
                   help='TCP port number to start a http server showing live and debug images.')
    g.add_argument('--show', action='store_true', default=False,
                   help='Show annotated frames in a window. Press q to quit.')

    # logging
    g = p.add_argument_group(title='Logging')
    add_logging(g)

    # parameters for obtaining images
    g = p.add_argument_group(title='Parameters for obtaining images')
    g1 = g.add_mutually_exclusive_group()
    # Note: mutually_exclusive_group does not trigger if one argument is given with --settings-file and
    #       the other one is given directly, thus have a separate check later.

    g1.add_argument('--cam-id', type=int, default=None,
                    help='If given, it will be passed to cv2.VideoCapture() as camera ID. '
                         'If you have only one camera in your system, camera  is usually 0. '
                         'In case of multiple cameras, consult the documentation of '
                         'openCV on how to obtain the camera ID')

    g1.add_argument('--url', type=str, default=None,
                    help='Download image from an URL, e.g. http://camera.private.lan:8000/snapshot.cgi, '
                         'or read images from files matching a pattern, e.g. file:///tmp/gauge*.jpg')

    g.add_argument('--username', type=str, default=None,
                   help='Username used to download --url')

    g.add_argument('--password', type=str, default=None,
                   help='Password used to download --url.'
                        'Using this in the CLI exposes your password to all users '
                        '(visible with programs like `ps` or `top`). '
                        'Better read it via the --settings-file argument for a file with restrictive read-permissions '
                        'or provide it via the environment variable GAUGE_DETECTOR_IMAGE_PASSWORD')

    g.add_argument('--min-measurement-interval', type=float, default=None)
    # Note: frames from --url and --cam-id are always BGR, thus there is no option for the channel order.

    # gauge detection
    g = p.add_argument_group(title='Gauge detection',
                             description='Tuning of the Hough circle transform')
    g.add_argument('--blur-size', type=odd_or_zero, default=0,
                   help='Size of a median blur filter applied before circle detection, 0 to disable.')
    g.add_argument('--dp', type=float, default=DP)
    g.add_argument('--min-dist', type=float, default=MIN_DIST)
    g.add_argument('--canny-threshold', type=float, default=CANNY_THRESHOLD)
    g.add_argument('--accumulator-threshold', type=float, default=ACCUMULATOR_THRESHOLD)
    g.add_argument('--min-radius', type=float, default=MIN_RADIUS,
                   help='Smallest radius to search for as fraction of the frame height.')
    g.add_argument('--max-radius', type=float, default=MAX_RADIUS,
                   help='Largest radius to search for as fraction of the frame height.')

    # needle detection
    g = p.add_argument_group(title='Needle detection',
                             description='Tuning for the color of the needle and lighting conditions')
    g.add_argument('--hsv-lower', type=uint8, nargs=3, default=list(HSV_LOWER), metavar=('H', 'S', 'V'),
                   help='Lower bound of the needle color. Hue ranges from 0 to 180.')
    g.add_argument('--hsv-upper', type=uint8, nargs=3, default=list(HSV_UPPER), metavar=('H', 'S', 'V'),
                   help='Upper bound of the needle color.')
    g.add_argument('--threshold', type=int, choices=range(1, 254), default=THRESHOLD, metavar='[1-254]')
    g.add_argument('--threshold-mode', type=ThresholdMode, choices=list(ThresholdMode),
                   default=ThresholdMode.binary,
                   help='binary keeps pixels of the needle color as foreground, binary_inv inverts the mask.')
    g.add_argument('--rho', type=float, default=RHO)
    g.add_argument('--theta-deg', type=float, default=THETA_DEG)
    g.add_argument('--line-threshold', type=int, default=LINE_THRESHOLD)
    g.add_argument('--min-line-length', type=float, default=MIN_LINE_LENGTH)
    g.add_argument('--max-line-gap', type=float, default=MAX_LINE_GAP)

    return p


def run(argv=None):
    # parse arguments
    parser = setup_parser()
    args = parser.parse_args(argv)
    del args.settings_filename

    # input sanity checks
    if (args.url is None and args.cam_id is None) or (args.url is not None and args.cam_id is not None):
        parser.error('Either an --url or a --cam-id must be given')

    if args.min_radius >= args.max_radius:
        parser.error('--min-radius must be smaller than --max-radius')

    if any(lower > upper for lower, upper in zip(args.hsv_lower, args.hsv_upper)):
        parser.error('--hsv-lower must not be larger than --hsv-upper')

    if not args.password:
        args.password = os.getenv('GAUGE_DETECTOR_IMAGE_PASSWORD')

    setup_logging(logger, syslog=args.syslog, loglevel=args.loglevel)
    logger.debug('Starting with parameters %s', args.__dict__)
    del args.loglevel
    del args.syslog

    # start image processing
    main(**args.__dict__)


if __name__ == '__main__':
    run()
