import argparse
import logging

import pytest

import gauge_detector.__main__ as cli
import gauge_detector._gauge_detector as gd
from gauge_detector import ColorOrder, GaugeDetector, ThresholdMode
from gauge_detector._parser import odd_or_zero, setup_logging, uint8


def test_defaults():
    args = cli.setup_parser().parse_args(['--cam-id', '0'])

    assert args.cam_id == 0
    assert args.url is None
    assert args.port is None
    assert args.show is False
    assert args.loglevel == logging.WARNING
    assert args.threshold_mode == ThresholdMode.binary
    assert args.hsv_lower == [15, 30, 70]
    assert args.hsv_upper == [35, 50, 110]
    assert args.min_radius == 0.35
    assert args.max_radius == 0.48
    assert args.threshold == 175
    assert args.rho == 3
    assert args.min_line_length == 30
    assert args.max_line_gap == 0


def test_enums_from_cli():
    args = cli.setup_parser().parse_args(['--url', 'file:///tmp/*.jpg', '--threshold-mode', 'binary_inv', '-v'])
    assert args.threshold_mode == ThresholdMode.binary_inv
    assert args.loglevel == logging.INFO


def test_no_color_order_option():
    # every frame source of the CLI delivers BGR
    with pytest.raises(SystemExit):
        cli.setup_parser().parse_args(['--cam-id', '0', '--color-order', 'rgba'])
    assert not hasattr(cli.setup_parser().parse_args(['--cam-id', '0']), 'color_order')


def test_main_detector_uses_bgr(monkeypatch):
    created = []

    def detector(**kwargs):
        created.append(GaugeDetector(**kwargs))
        return created[-1]

    monkeypatch.setattr(gd, 'GaugeDetector', detector)
    monkeypatch.setattr(gd, 'get_frames', lambda **kwargs: (frame for frame in ()))
    monkeypatch.setattr(cli, 'setup_logging', lambda *args, **kwargs: None)

    cli.run(['--url', 'file:///nothing/*.jpg'])

    assert created[0].color_order == ColorOrder.bgr


def test_settings_file(tmp_path):
    settings = tmp_path / 'settings.txt'
    settings.write_text('# comment\n'
                        '--url "file:///tmp/my gauges/*.jpg"\n'
                        '  --hsv-lower 10 20 30\n'
                        '--min-radius 0.3\n')

    args = cli.setup_parser().parse_args(['--settings-filename', str(settings), '--threshold', '100'])

    assert args.url == 'file:///tmp/my gauges/*.jpg'
    assert args.hsv_lower == [10, 20, 30]
    assert args.min_radius == 0.3
    assert args.threshold == 100


@pytest.mark.parametrize('argv', [
    [],
    ['--cam-id', '0', '--min-radius', '0.5', '--max-radius', '0.4'],
    ['--cam-id', '0', '--hsv-lower', '40', '30', '70'],
    ['--cam-id', '0', '--hsv-upper', '35', '50', '300'],
    ['--cam-id', '0', '--blur-size', '4'],
])
def test_run_rejects_invalid_arguments(argv, monkeypatch):
    monkeypatch.setattr(cli, 'main', lambda **kwargs: pytest.fail('main must not be called'))
    with pytest.raises(SystemExit):
        cli.run(argv)


def test_run(monkeypatch):
    received = {}
    monkeypatch.setattr(cli, 'main', lambda **kwargs: received.update(kwargs))
    monkeypatch.setenv('GAUGE_DETECTOR_IMAGE_PASSWORD', 'secret')
    monkeypatch.setattr(cli, 'setup_logging', lambda *args, **kwargs: None)

    cli.run(['--url', 'http://camera/snapshot.jpg', '--username', 'user'])

    assert received['password'] == 'secret'
    assert received['username'] == 'user'
    assert 'loglevel' not in received
    assert 'syslog' not in received
    assert 'settings_filename' not in received


def test_uint8():
    assert uint8('255') == 255
    with pytest.raises(argparse.ArgumentTypeError):
        uint8('-1')


def test_odd_or_zero():
    assert odd_or_zero('0') == 0
    assert odd_or_zero('5') == 5
    with pytest.raises(argparse.ArgumentTypeError):
        odd_or_zero('2')


def test_setup_logging():
    logger = logging.getLogger('gauge_detector.test_setup_logging')
    setup_logging(logger, loglevel=logging.DEBUG)
    try:
        assert logger.level == logging.DEBUG
        assert isinstance(logger.handlers[-1], logging.StreamHandler)
    finally:
        logger.handlers.clear()
