"""
This module provides a service for reading frames from a camera, an IP cam
or image files, locating a circular analog gauge via Hough circle transform
and drawing candidate needle segments found via Hough line transform on a
color-thresholded mask.

Results are provided via built-in webserver, e.g. <http://localhost:8000>
or <http://localhost:8000/debug>, and optionally in a window.

No needle-angle-to-value mapping is done, see `GaugeDetector.read_value`.

"""

__version__ = 0.1

from ._image_processing import Circle, ColorOrder, ThresholdMode, avg_circles
from ._gauge_detector import DetectionError, GaugeDetector, get_frames
