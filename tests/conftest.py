import cv2
import numpy as np
import pytest

HEIGHT, WIDTH = 480, 640
CENTER = (320, 240)
RADIUS = 200  # within 35-48% of HEIGHT


@pytest.fixture
def needle_color():
    """BGR color in the middle of the default needle band."""
    return tuple(int(c) for c in cv2.cvtColor(np.uint8([[[25, 40, 90]]]), cv2.COLOR_HSV2BGR)[0, 0])


@pytest.fixture
def gauge_frame():
    """A dark dial on white background."""
    img = np.full((HEIGHT, WIDTH, 3), 255, dtype=np.uint8)
    # an aliased disk has too jagged an edge for the Hough circle transform
    cv2.circle(img, CENTER, RADIUS, (80, 80, 80), -1, cv2.LINE_AA)
    return img


@pytest.fixture
def gauge_frame_with_needle(gauge_frame, needle_color):
    # off-center, so the drawn center of the dial does not split the needle
    cv2.line(gauge_frame, (160, 300), (400, 300), needle_color, 1)
    return gauge_frame


@pytest.fixture
def uniform_frame():
    return np.full((HEIGHT, WIDTH, 3), 128, dtype=np.uint8)
