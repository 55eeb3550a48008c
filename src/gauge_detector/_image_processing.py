import cv2
from enum import Enum
import logging
import numpy as np
from typing import NamedTuple
logger = logging.getLogger('gauge_detector.image_processing')

# Hough circle transform, radii are fractions of the frame height
DP = 1
MIN_DIST = 20
CANNY_THRESHOLD = 100
ACCUMULATOR_THRESHOLD = 50
MIN_RADIUS = 0.35
MAX_RADIUS = 0.48

# color band of the needle in OpenCV's HSV (hue 0-180)
HSV_LOWER = (15, 30, 70)
HSV_UPPER = (35, 50, 110)
THRESHOLD = 175

# probabilistic Hough line transform
RHO = 3
THETA_DEG = 1.0
LINE_THRESHOLD = 100
MIN_LINE_LENGTH = 30
MAX_LINE_GAP = 0

# drawing colors are given in BGR
RED = (0, 0, 255)
GREEN = (0, 255, 0)
ORANGE = (255, 200, 0)


class Circle(NamedTuple):
    """Center and radius in pixels of a detected gauge."""
    x: int
    y: int
    r: int


class ThresholdMode(Enum):
    """
    Polarity of the threshold applied to the needle mask.

    `binary` keeps needle-colored pixels as foreground, `binary_inv` turns them into background and lets the line
    transform run on everything else.

    This enum is specially crafted, so it can be used with argparse.ArgumentParser [1].

    References
    ----------
    .. [1] https://stackoverflow.com/questions/43968006/support-for-enum-arguments-in-argparse/55500795
    """
    binary = 'binary'
    binary_inv = 'binary_inv'

    def __str__(self):
        return self.name


class ColorOrder(Enum):
    """
    Channel order of incoming frames.

    `bgr` is what cv2.VideoCapture and cv2.imread deliver, `rgba` is the alpha-inclusive order of
    mobile camera bridges.
    """
    bgr = 'bgr'
    rgba = 'rgba'

    def __str__(self):
        return self.name


_GRAY_CODES = {ColorOrder.bgr: cv2.COLOR_BGR2GRAY,
               ColorOrder.rgba: cv2.COLOR_RGBA2GRAY}

# COLOR_RGB2HSV also accepts 4 channel input and ignores alpha
_HSV_CODES = {ColorOrder.bgr: cv2.COLOR_BGR2HSV,
              ColorOrder.rgba: cv2.COLOR_RGB2HSV}


def to_color(bgr, color_order=ColorOrder.bgr):
    """
    Converts a BGR color tuple to the channel order of the frame that is drawn on.
    """
    if color_order == ColorOrder.rgba:
        b, g, r = bgr
        return r, g, b, 255
    return tuple(bgr)


def to_gray(img, color_order=ColorOrder.bgr):
    if img.ndim == 2:
        return img
    return cv2.cvtColor(img, _GRAY_CODES[color_order])


def avg_circles(circles) -> Circle:
    """
    Averages circle candidates as returned by cv2.HoughCircles.

    All coordinates are summed up first and divided by the number of candidates once,
    which gives the arithmetic mean rounded to the nearest pixel.

    Parameters
    ----------
    circles : np.ndarray or list
        Candidates of shape (1, N, 3) like HoughCircles returns them, or any sequence of (x, y, r).

    Returns
    -------
    Circle

    Raises
    ------
    ValueError
        If `circles` is empty.
    """
    circles = np.asarray(circles, dtype=float).reshape(-1, 3)
    if len(circles) == 0:
        raise ValueError('Cannot average an empty list of circles')

    x, y, r = np.mean(circles, axis=0)
    return Circle(int(round(x)), int(round(y)), int(round(r)))


def detect_dial(gray, dp=DP, min_dist=MIN_DIST,
                canny_threshold=CANNY_THRESHOLD, accumulator_threshold=ACCUMULATOR_THRESHOLD,
                min_radius=MIN_RADIUS, max_radius=MAX_RADIUS,
                blur_size=0):
    """
    Detects the face of the dial by searching for circles in the image `gray` using HoughCircles function from
    OpenCV and averaging found circles to get a reliable result.

    Restricting the search to 35-48% of the image height gives fairly good results across different samples.

    Parameters
    ----------
    gray : np.ndarray
        The grayscale image where circles should be detected.
    dp : float
        Inverse ratio of the accumulator resolution to the image resolution.
    min_dist : float
        Minimum distance in pixels between the centers of two candidates.
    canny_threshold : float
        Upper threshold of the internal Canny edge detector.
    accumulator_threshold : float
        Votes a center needs to become a candidate.
    min_radius : float
        Minimum radius of circles to look for as fraction (between 0.0 and 1.0) of the image height.
    max_radius : float
        See min_radius.
    blur_size : int
        If positive, a median blur filter of this size (must be odd) is applied prior to the Hough transform.
        A median blur filter is computationally heavy, thus it is off by default.

    Returns
    -------
    circle : Circle or None
        The averaged circle or None if no circles have been found.
    img_c : np.ndarray
        A debug image with found circles and the average circle with its center on top of the input image
        to the Hough-transform.

    """

    height = gray.shape[0]

    if blur_size:
        gray = cv2.medianBlur(gray, blur_size)

    circles = cv2.HoughCircles(gray, cv2.HOUGH_GRADIENT, dp, min_dist,
                               param1=canny_threshold, param2=accumulator_threshold,
                               minRadius=int(height*min_radius), maxRadius=int(height*max_radius))

    img_c = cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)
    if circles is None or circles.size == 0:
        logger.debug('Found 0 circles')
        return None, img_c

    logger.debug('Found %d circles', circles.shape[1])

    # average found circles, which is easier than tuning HoughCircles' parameters
    # for a perfect result under all conditions since the dial is never a perfect circle
    # in the camera image
    circle = avg_circles(circles)

    # output candidates on image
    for c in circles[0]:
        cv2.circle(img_c, (int(c[0]), int(c[1])), int(c[2]), ORANGE, 1, cv2.LINE_AA)
    draw_dial(img_c, circle)

    return circle, img_c


def draw_dial(img, circle, color_order=ColorOrder.bgr):
    """
    Draws the outline of the dial in red and its center as green dot.

    Parameters
    ----------
    img : np.ndarray
        Image to draw on
    circle : Circle
        See `detect_dial`
    color_order : ColorOrder
        Channel order of `img`
    """
    center = (circle.x, circle.y)
    cv2.circle(img, center, circle.r, to_color(RED, color_order), 3, cv2.LINE_AA)  # draw circle
    cv2.circle(img, center, 2, to_color(GREEN, color_order), 3, cv2.LINE_AA)  # draw center of circle


def needle_mask(img, lower=HSV_LOWER, upper=HSV_UPPER, color_order=ColorOrder.bgr):
    """
    Selects pixels whose hue, saturation and value are within [`lower`, `upper`].

    The default band is tuned to the needle of one sample gauge and is not adaptive.

    Returns
    -------
    np.ndarray
        Single channel mask with 255 for selected pixels and 0 otherwise.
    """
    hsv = cv2.cvtColor(img, _HSV_CODES[color_order])
    return cv2.inRange(hsv, np.array(lower, dtype=np.uint8), np.array(upper, dtype=np.uint8))


def apply_threshold(mask, threshold_mode=ThresholdMode.binary, threshold=THRESHOLD):
    """
    Binarizes `mask` at `threshold`, which helps for finding lines.

    Returns
    -------
    ret : float
        The threshold that was used.
    mask : np.ndarray
    """
    if threshold_mode is None or threshold_mode == ThresholdMode.binary:
        ret, mask = cv2.threshold(mask, threshold, 255, cv2.THRESH_BINARY)
    elif threshold_mode == ThresholdMode.binary_inv:
        ret, mask = cv2.threshold(mask, threshold, 255, cv2.THRESH_BINARY_INV)
    else:
        raise ValueError(f'Unknown threshold mode {threshold_mode}')

    return ret, mask


def detect_lines(binary, rho=RHO, theta_deg=THETA_DEG, threshold=LINE_THRESHOLD,
                 min_line_length=MIN_LINE_LENGTH, max_line_gap=MAX_LINE_GAP):
    """
    Finds straight segments in the binary image `binary` with the probabilistic Hough transform.

    Hough lines generally perform better without Canny or blurring on the mask, thus none is applied.

    Parameters
    ----------
    binary : np.ndarray
        Single channel image, non-zero pixels are foreground.
    rho : float
        Distance resolution in pixels. It is set to 3 to detect more lines.
    theta_deg : float
        Angle resolution in degrees.
    threshold : int
        Votes a line needs to be reported.
    min_line_length : float
        Minimum length in pixels of a segment.
    max_line_gap : float
        Maximum gap in pixels between points to be joined into one segment.

    Returns
    -------
    list[tuple[int, int, int, int]]
        Found segments as (x1, y1, x2, y2), empty if nothing was found.
    """
    lines = cv2.HoughLinesP(image=binary, rho=rho, theta=theta_deg*np.pi/180, threshold=threshold,
                            minLineLength=min_line_length, maxLineGap=max_line_gap)
    if lines is None:
        logger.debug('Found 0 lines')
        return []

    # OpenCV 4 returns shape (N, 1, 4), OpenCV 5 returns (N, 4)
    lines = np.asarray(lines).reshape(-1, 4)
    logger.debug('Found %d lines', len(lines))
    return [(int(x1), int(y1), int(x2), int(y2)) for x1, y1, x2, y2 in lines]


def draw_lines(img, lines, color_order=ColorOrder.bgr, thickness=2):
    for x1, y1, x2, y2 in lines:
        cv2.line(img, (x1, y1), (x2, y2), to_color(GREEN, color_order), thickness)
