import cv2
from datetime import datetime
import exifread
import glob
import logging
import numpy as np
import os
import pickle
import time
import requests
from threading import Thread
import urllib3
from ._http_server import start_httpserver
from ._image_processing import (
    ColorOrder, ThresholdMode,
    DP, MIN_DIST, CANNY_THRESHOLD, ACCUMULATOR_THRESHOLD, MIN_RADIUS, MAX_RADIUS,
    HSV_LOWER, HSV_UPPER, THRESHOLD,
    RHO, THETA_DEG, LINE_THRESHOLD, MIN_LINE_LENGTH, MAX_LINE_GAP,
    apply_threshold, detect_dial, detect_lines, draw_dial, draw_lines, needle_mask, to_gray,
)


logger = logging.getLogger('gauge_detector.main')


class DetectionError(Exception):
    """
    Named exception for easier exception handling when the Hough-transform
    does not find plausible circles
    """
    pass


def get_frames(url=None, cam_id=None, username=None, password=None, **kwargs):
    """
    Delivers frames one after another.

    **kwargs are forwarded to `requests.get()`, e.g. to set a timeout.

    Parameters
    ----------
    url : str
        If `url` starts with http, it will be downloaded using `username` and `password` over and over again.
        If `url` starts with file:// it is treated as glob pattern and every matching file will be opened once.
    cam_id : int
        If `url` was None, `cam_id` will be used for cv2.VideoCapture() to grab frames from the attached camera
        with id `cam_id`. The camera is released when the generator is closed.
    username : str
        Optional username for image download.
    password : str
        Optional password for image download.

    Yields
    ------
    timestamp : datetime
        If url started with 'file://', timestamp is taken from exif data (if existing) or from file creation time.
        Otherwise, timestamp is taken right before the frame is requested.

    img : np.ndarray
        The obtained frame.

    """
    if (url is None and cam_id is None) or (url is not None and cam_id is not None):
        raise RuntimeError('Either an URL or a camera ID must be given')

    if url is not None and url.lower().startswith('http'):
        while True:
            timestamp = datetime.now()
            logger.debug('Import image from URL %s', url)
            try:
                resp = requests.get(url,
                                    auth=(username, password) if username is not None else None,
                                    **kwargs)
            except (requests.exceptions.RequestException,
                    urllib3.exceptions.HTTPError) as e:
                logger.error('%s', e)
                continue
            buf = np.asarray(bytearray(resp.content), dtype='uint8')
            if len(buf) == 0 or not resp.ok:
                logger.error('Empty image received from %s with %s: %s',
                             url, resp, resp.reason)
                continue
            img = cv2.imdecode(buf, cv2.IMREAD_COLOR)
            if img is None:
                logger.error('Cannot decode image received from %s', url)
                continue
            logger.debug('Import image is done')
            yield timestamp, img

    elif url is not None and url.lower().startswith('file://'):
        pattern = url[7:]
        for filename in sorted(glob.glob(pattern)):
            logger.debug('Import image from file %s', filename)
            if not os.path.isfile(filename):
                logger.error('%s is not a file', filename)
                continue
            img = cv2.imread(filename)
            if img is None:
                logger.error('Cannot read image from %s', filename)
                continue
            with open(filename, 'rb') as f:
                exif_data = exifread.process_file(f, stop_tag="EXIF DateTimeOriginal", details=False)
            if 'EXIF DateTimeOriginal' in exif_data:
                timestamp = datetime.strptime(exif_data['EXIF DateTimeOriginal'].values, '%Y:%m:%d %H:%M:%S')
            else:
                timestamp = datetime.fromtimestamp(os.stat(filename).st_ctime)
            logger.debug('Import image is done')
            yield timestamp, img

    elif cam_id is not None:
        cam_id = int(cam_id)
        logger.debug('Import image from camera %d', cam_id)
        cap = cv2.VideoCapture(cam_id)
        try:
            while True:
                timestamp = datetime.now()
                s, img = cap.read()
                if not s:
                    logger.error('Empty image received from camera %d', cam_id)
                    continue
                logger.debug('Import image is done')
                yield timestamp, img
        finally:
            cap.release()

    else:
        raise RuntimeError(f'Neither url "{url}" nor cam_id "{cam_id}" is understandable.')


class GaugeDetector:
    """
    Locates a circular gauge and candidate needle segments in every frame and draws them on the frame.

    Frames are processed independently of each other. Every tuning constant is a keyword argument, see
    `detect_dial`, `needle_mask`, `apply_threshold` and `detect_lines` for their meaning.
    """

    def __init__(self, color_order=ColorOrder.bgr, blur_size=0,
                 dp=DP, min_dist=MIN_DIST,
                 canny_threshold=CANNY_THRESHOLD, accumulator_threshold=ACCUMULATOR_THRESHOLD,
                 min_radius=MIN_RADIUS, max_radius=MAX_RADIUS,
                 hsv_lower=HSV_LOWER, hsv_upper=HSV_UPPER,
                 threshold=THRESHOLD, threshold_mode=ThresholdMode.binary,
                 rho=RHO, theta_deg=THETA_DEG, line_threshold=LINE_THRESHOLD,
                 min_line_length=MIN_LINE_LENGTH, max_line_gap=MAX_LINE_GAP):
        self.color_order = ColorOrder(color_order)
        self.blur_size = blur_size
        self.dp = dp
        self.min_dist = min_dist
        self.canny_threshold = canny_threshold
        self.accumulator_threshold = accumulator_threshold
        self.min_radius = min_radius
        self.max_radius = max_radius
        self.hsv_lower = tuple(hsv_lower)
        self.hsv_upper = tuple(hsv_upper)
        self.threshold = threshold
        self.threshold_mode = ThresholdMode.binary if threshold_mode is None else ThresholdMode(threshold_mode)
        self.rho = rho
        self.theta_deg = theta_deg
        self.line_threshold = line_threshold
        self.min_line_length = min_line_length
        self.max_line_gap = max_line_gap

        self.frame_size = None

        # results of the most recent frame, replaced for every frame
        self.debug_imgs = {}
        self.circle = None
        self.lines = []

    def on_camera_view_started(self, width, height):
        logger.info('Camera view started with %dx%d pixels', width, height)
        self.frame_size = (width, height)

    def on_camera_view_stopped(self):
        logger.info('Camera view stopped')
        self.frame_size = None

    def on_camera_frame(self, img):
        """
        Per-frame callback: returns `img` with the gauge and needle candidates drawn on it.

        If no gauge is found or OpenCV fails, a warning is logged and the frame is returned unmodified,
        so the display keeps running.
        """
        raw = img.copy()  # store image before it's annotated
        self.debug_imgs = {'raw': raw}
        self.circle = None
        self.lines = []
        try:
            img, circle, lines = self.run_once(img)
        except DetectionError as e:
            logger.warning('%s', e)
            return raw
        except cv2.error as e:
            logger.warning('Image processing failed: %s', e)
            return raw

        self.circle = circle
        self.lines = lines
        value = self.read_value(circle, lines)
        if value is not None:
            logger.info('Reading %s', value)

        return img

    def run_once(self, img):
        """
        Locates the gauge and draws the needle candidates of a single frame.

        Returns
        -------
        img : np.ndarray
            The annotated frame. Grayscale frames are converted to BGR first, all others are annotated in place.
        circle : Circle
        lines : list[tuple[int, int, int, int]]

        Raises
        ------
        DetectionError
            If no circle has been found. Nothing has been drawn on `img` in that case.
        """
        color_order = self.color_order
        if img.ndim == 2:
            img = cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
            color_order = ColorOrder.bgr

        img, circle = self.calibrate_gauge(img, color_order=color_order)
        img = self.get_current_value(img, circle, color_order=color_order)

        return img, circle, self.lines

    def get_gauge_outline(self, img, color_order=None):
        """
        Returns the averaged circle of the gauge in `img` without drawing on it.

        Raises
        ------
        DetectionError
            If no circles have been found.
        """
        gray = to_gray(img, self.color_order if color_order is None else color_order)
        circle, debug_img = detect_dial(gray, dp=self.dp, min_dist=self.min_dist,
                                        canny_threshold=self.canny_threshold,
                                        accumulator_threshold=self.accumulator_threshold,
                                        min_radius=self.min_radius, max_radius=self.max_radius,
                                        blur_size=self.blur_size)
        self.debug_imgs['detect_dial_debug_img'] = debug_img
        if circle is None:
            raise DetectionError('No circles found')
        return circle

    def calibrate_gauge(self, img, color_order=None):
        """
        Finds center point and radius of the gauge and draws them on `img`.

        Returns
        -------
        img : np.ndarray
        circle : Circle
        """
        circle = self.get_gauge_outline(img, color_order=color_order)
        draw_dial(img, circle, color_order=self.color_order if color_order is None else color_order)
        return img, circle

    def get_needle_lines(self, img, color_order=None):
        """
        Thresholds the needle color band of `img` and returns the segments found in the resulting mask.
        """
        mask = needle_mask(img, lower=self.hsv_lower, upper=self.hsv_upper,
                           color_order=self.color_order if color_order is None else color_order)
        self.debug_imgs['needle_mask_img'] = mask

        _, binary = apply_threshold(mask, self.threshold_mode, threshold=self.threshold)
        self.debug_imgs['after_threshold_img'] = binary

        return detect_lines(binary, rho=self.rho, theta_deg=self.theta_deg, threshold=self.line_threshold,
                            min_line_length=self.min_line_length, max_line_gap=self.max_line_gap)

    def get_current_value(self, img, circle, color_order=None):
        """
        Draws the needle candidates on `img` and returns it. The drawn segments are kept in `self.lines`.

        `circle` is not consulted for masking yet, segments anywhere in the frame are drawn.
        """
        self.lines = self.get_needle_lines(img, color_order=color_order)
        draw_lines(img, self.lines, color_order=self.color_order if color_order is None else color_order)
        return img

    def read_value(self, circle, lines):
        """
        Converts gauge geometry to a reading.

        No mapping from needle angle to value is implemented, thus this returns None.
        Subclasses may return a reading, which is then logged for every frame.
        """
        return None


def main(port=None, show=False,
         url=None, cam_id=None, username=None, password=None,  # parameters to access live image
         min_measurement_interval=None,
         **kwargs):
    """
    Reads frames from `url` or `cam_id`, annotates them and hands them to the display.

    Remaining **kwargs are passed to `GaugeDetector`.
    """

    if port:
        # start webserver
        http_thd = Thread(target=start_httpserver, daemon=True,
                          kwargs={'port': port, })
        http_thd.start()

        # sometimes the webserver needs a bit to start up and the first get to http://localhost:{port}/is_debug fails
        # Crude solution: wait a bit
        time.sleep(0.2)
        requests.get(f'http://localhost:{port}/is_debug', timeout=1.0)

    detector = GaugeDetector(**kwargs)
    loop_start_time = 0.0  # time keeping for minimum loop duration

    frames = get_frames(url=url, cam_id=cam_id, username=username, password=password, timeout=5.0)
    try:
        for timestamp, img in frames:

            # limit rate for the case the loop just falls through due to errors like "ConnectionRefused" or firewall
            # errors preventing get_frames() to retry too quickly
            if min_measurement_interval:
                time.sleep(max(0.0, (loop_start_time+min_measurement_interval)-time.time()))

            loop_start_time = time.time()

            if detector.frame_size is None:
                detector.on_camera_view_started(img.shape[1], img.shape[0])

            img = detector.on_camera_frame(img)

            status = None
            if detector.circle is not None:
                circle = detector.circle
                status = f'{timestamp.isoformat()},{circle.x},{circle.y},{circle.r},{len(detector.lines)}'
                logger.info('%s', status)

            if port:
                post_results(port, img, status, detector.debug_imgs)

            if show:
                cv2.imshow('Gauge Detector', img)
                if cv2.waitKey(1) & 0xFF == ord('q'):
                    break

            logger.debug('Image processing finished')
    finally:
        frames.close()
        if detector.frame_size is not None:
            detector.on_camera_view_stopped()
        if show:
            cv2.destroyAllWindows()


def post_results(port, img, status, debug_imgs):
    """
    Sends the annotated frame, the status line and, if requested by a viewer, the debug images to the
    HTTP server on localhost.
    """
    if status is not None:
        requests.post(f'http://localhost:{port}/data', status.encode(), timeout=1.0)

    # send resulting images to HTTP server as JPG
    jpg = cv2.imencode('.jpg', img)[1].tobytes()
    requests.post(f'http://localhost:{port}/img', jpg, timeout=1.0)

    # check is we need to supply debug images to webserver
    is_debug = bool(int(requests.get(f'http://localhost:{port}/is_debug', timeout=1.0).content))

    if is_debug:
        # encode numpy arrays of debug plots to JPG
        debug_jpgs = {}
        for key, value in debug_imgs.items():
            debug_jpgs[key] = cv2.imencode('.jpg', value)[1].tobytes()
        debug_jpgs['final_img'] = jpg

        requests.post(f'http://localhost:{port}/debug', pickle.dumps(debug_jpgs), timeout=1.0)
