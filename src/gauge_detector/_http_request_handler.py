import http.server
import logging

logger = logging.getLogger('gauge_detector.httpd')


# HTML template string without refresh
html_template = r"""<html><head>
<meta charset="utf-8" />
{head}
</head><body>
{body}
</body></html>
"""

# img = np.array((32, 32, 3), dtype=np.uint8)
# favicon = cv2.imencode('*.png', img)[1].tobytes()
favicon = b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x03\x08\x00\x00\x00\x00w\xb6:^\x00\x00\x00\x0eIDAT\x08\x1dcP`P``\x06\x00\x01\t\x00D\x80E+\xa9\x00\x00\x00\x00IEND\xaeB`\x82'


# noinspection PyPep8Naming
class HTTPRequestHandler(http.server.BaseHTTPRequestHandler):
    """
    HTTP request handler serving a favicon and uncached content.
    """

    def do_HEAD(self):
        """ send a simple HTTP text/html header with caching disabled"""
        self.send_response(200)
        self.send_header("Content-Type", "text/html")
        self.send_no_cache_headers()
        self.end_headers()

    def do_GET(self):

        if self.path == '/favicon.ico':
            self.send_data(favicon, 'image/vnd.microsoft.icon', no_cache=False)

        else:  # any other path
            self.send_response(404)
            self.end_headers()

    def send_no_cache_headers(self):
        self.send_header('Cache-Control', 'no-store, must-revalidate')
        self.send_header('Expires', '0')

    def send_data(self, data: bytes, content_type: str, code=200, no_cache=True):
        """
        Sends a complete response with `data` as body.
        """
        self.send_response(code)
        self.send_header('Content-Type', content_type)
        if no_cache:
            self.send_no_cache_headers()
        self.send_header('Content-Length', str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    # noinspection PyShadowingBuiltins,PyShadowingNames
    def log_message(self, format, *args):
        """
        Override logging function, since per default every request is printed to stderr
        """

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s %s",
                         self.address_string(), format % args)
        elif not self.is_localhost():
            logger.info("%s %s",
                        self.address_string(), format % args)

    def is_localhost(self):
        # noinspection SpellCheckingInspection
        return self.client_address[0] in ('127.0.0.1',
                                          '127.0.0.2',
                                          '::ffff:127.0.0.1',
                                          '::1')
