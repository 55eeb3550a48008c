import base64
import logging
import pickle
import socket
import socketserver
import time
from threading import Lock
from gauge_detector._http_request_handler import html_template, HTTPRequestHandler

logger = logging.getLogger('gauge_detector.httpd')

# HTML template string with refresh
# Use with caution, since http-equiv="refresh" causes severe flickering in most browsers
html_template_autoreload = html_template.format(head='<meta http-equiv="refresh" content="1" />',
                                                body='{body}')

# seconds the debug images are generated after the debug page was requested the last time
DEBUG_KEEPALIVE = 10

debug_image_names = ('raw', 'detect_dial_debug_img', 'needle_mask_img', 'after_threshold_img', 'final_img')


def str_to_html_id(s):
    """
    Encode a string, so it can be used as an id in HTML.
    """
    # prefix (here `id_`) is required since base64 encoded strings can start with a number
    return f'id_{base64.b64encode(s.encode()).decode()}'


def canvas_page(image_urls, links, refresh_ms=1000):
    """
    Generates a page that shows every image of `image_urls` in its own canvas.

    Images are reloaded via javascript, which is flicker-less compared to http-equiv="refresh",
    but image position does not auto-adjust with page-resize.

    Parameters
    ----------
    image_urls : dict[str, str]
        Maps canvas names to the image URL drawn into them.
    links : dict[str, str]
        Maps link text to target, shown below the images.
    refresh_ms : int
        Delay between the end of one image load and the start of the next one.
    """
    head = ['<script type="text/JavaScript">',
            f'var timeoutPeriod = {refresh_ms};',
            'var imgs = {};']
    for name in image_urls:
        html_id = str_to_html_id(name)
        head.append(f'imgs["{html_id}"] = new Image();\n'
                    f'imgs["{html_id}"].onload = function() {{\n'
                    f'    var canvas = document.getElementById("{html_id}");\n'
                    '    var context = canvas.getContext("2d");\n'
                    f'    canvas.setAttribute("width", imgs["{html_id}"].width);\n'
                    f'    canvas.setAttribute("height", imgs["{html_id}"].height);\n'
                    f'    context.drawImage(imgs["{html_id}"], 0, 0);\n'
                    '};')
    # just change src attribute, will always trigger the onload callback
    head.append('function timedRefresh() {')
    for name, url in image_urls.items():
        head.append(f'    imgs["{str_to_html_id(name)}"].src = "{url}";')
    head.append('    setTimeout(timedRefresh, timeoutPeriod);\n}')
    head.append('</script>\n<title>Gauge Detector</title>')

    body = [f'<canvas id="{str_to_html_id(name)}" width="30" height="30"></canvas>' for name in image_urls]
    body.append('<p>' + ' '.join(f'<a href="{target}" class="button">{text}</a>'
                                 for text, target in links.items()) + '</p>')

    html = html_template.format(head='\n'.join(head), body='\n'.join(body))
    return html.replace('<body>', '<body onload="JavaScript:timedRefresh();">', 1)


class DebugViewerServer(socketserver.ThreadingTCPServer):
    # allow for rapid stop/start cycles during debugging
    # Assumption is, that no other process will start listening on `port` during restart of this script
    allow_reuse_address = True

    # allow IPv4 and IPv6
    address_family = socket.AF_INET6

    def __init__(self, *args, **kwargs):
        self.my_lock = Lock()
        self.server_data = {}
        super().__init__(*args, **kwargs)


class DebugViewerRequestHandler(HTTPRequestHandler):
    server: DebugViewerServer

    # noinspection PyPep8Naming
    def do_GET(self):

        if self.path == '/':
            html = canvas_page({'result': '/result.jpg'}, {'Debug': '/debug'})
            self.send_data(html.encode(), 'text/html')

        elif self.path == '/data':
            # the last status line "timestamp,x,y,r,lines"
            with self.server.my_lock:
                data = self.server.server_data.get('data')
            if data is not None:
                self.send_data(data.encode(), 'text/plain')
            else:
                html = html_template_autoreload.format(body='Waiting for first data sample...')
                self.send_data(html.encode(), 'text/html')

        elif self.path == '/result.jpg' or self.path.startswith('/result.jpg#'):
            # the hash-suffix is allowed for javascript based flicker-free reload
            with self.server.my_lock:
                data = self.server.server_data.get('img')
            if data is not None:
                self.send_data(data, 'image/jpeg')
            else:
                self.send_error(503, message='Cannot find requested image')

        elif self.path.startswith('/debug/') and self.path.endswith('.jpg'):
            name = self.path[len('/debug/'):-len('.jpg')]
            with self.server.my_lock:
                # reset debug timer
                self.server.server_data['last_time_debug_was_requested'] = time.time()
                debug_jpgs = self.server.server_data.get('debug_jpgs', {})
                data = debug_jpgs.get(name)
                available = list(debug_jpgs)

            if data is not None:
                self.send_data(data, 'image/jpeg')
            else:
                # serve list of available images
                body = f'Currently available debug images: {available}'
                self.send_data(html_template_autoreload.format(body=body).encode(), 'text/html', code=503)

        elif self.path == '/debug':
            with self.server.my_lock:
                # reset debug timer
                self.server.server_data['last_time_debug_was_requested'] = time.time()
                has_debug_jpgs = 'debug_jpgs' in self.server.server_data

            if has_debug_jpgs:
                html = canvas_page({name: f'/debug/{name}.jpg' for name in debug_image_names}, {'Live': '/'})
            else:
                html = html_template_autoreload.format(body='<p>Debug images are generated. Please wait...</p>')
            self.send_data(html.encode(), 'text/html')

        elif self.path == '/is_debug':
            # keep debug flag active for some seconds after last time a debug was requested
            with self.server.my_lock:
                last_time = self.server.server_data.get('last_time_debug_was_requested', 0.0)
            data = b'1' if time.time() < last_time + DEBUG_KEEPALIVE else b'0'
            self.send_data(data, 'text/plain')

        else:  # any other path
            super().do_GET()

    # noinspection PyPep8Naming
    def do_POST(self):
        if not self.is_localhost():
            # only accept POST from localhost, ideally it would be only from this process
            logger.debug('POST from %s rejected', self.client_address)
            self.send_response(403)
            self.end_headers()
            return

        content_len = int(self.headers.get('Content-Length', 0))
        post_body = self.rfile.read(content_len)

        if self.path == '/data':
            with self.server.my_lock:
                self.server.server_data['data'] = post_body.decode()
        elif self.path == '/img':
            with self.server.my_lock:
                self.server.server_data['img'] = post_body
        elif self.path == '/debug':
            data = pickle.loads(post_body)
            with self.server.my_lock:
                self.server.server_data['debug_jpgs'] = data
        else:
            self.send_response(404)
            self.end_headers()
            return

        self.send_response(200)
        self.end_headers()


def start_httpserver(port=8000):
    logger.info('Starting debug HTTP server on port %s', port)

    # start server
    with DebugViewerServer(("", port), DebugViewerRequestHandler) as httpd:
        httpd.serve_forever()
