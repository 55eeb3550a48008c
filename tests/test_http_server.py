import pickle
import socket
from threading import Thread

import pytest
import requests

from gauge_detector._http_server import (
    DebugViewerRequestHandler, DebugViewerServer, canvas_page, debug_image_names, str_to_html_id,
)


@pytest.fixture
def server_url():
    try:
        httpd = DebugViewerServer(('::1', 0), DebugViewerRequestHandler)
    except OSError:
        pytest.skip('IPv6 loopback is not available')
    thd = Thread(target=httpd.serve_forever, daemon=True)
    thd.start()
    try:
        yield f'http://[::1]:{httpd.server_address[1]}'
    finally:
        httpd.shutdown()
        httpd.server_close()


@pytest.fixture
def session():
    with requests.Session() as s:
        # do not route requests to localhost via a proxy from the environment
        s.trust_env = False
        yield s


def test_str_to_html_id():
    html_id = str_to_html_id('raw')
    assert html_id.startswith('id_')
    assert html_id != str_to_html_id('final_img')


def test_canvas_page():
    html = canvas_page({name: f'/debug/{name}.jpg' for name in debug_image_names}, {'Live': '/'}, refresh_ms=500)

    assert html.count('<canvas') == len(debug_image_names)
    for name in debug_image_names:
        assert f'id="{str_to_html_id(name)}"' in html
        assert f'"/debug/{name}.jpg"' in html
    assert 'var timeoutPeriod = 500;' in html
    assert '<body onload="JavaScript:timedRefresh();">' in html
    assert '<a href="/" class="button">Live</a>' in html


def test_live_page(server_url, session):
    resp = session.get(server_url + '/')
    assert resp.status_code == 200
    assert '/result.jpg' in resp.text


def test_result_image(server_url, session):
    assert session.get(server_url + '/result.jpg').status_code == 503

    assert session.post(server_url + '/img', data=b'jpeg bytes').status_code == 200

    resp = session.get(server_url + '/result.jpg#123')
    assert resp.status_code == 200
    assert resp.headers['Content-Type'] == 'image/jpeg'
    assert resp.content == b'jpeg bytes'


def test_data(server_url, session):
    assert 'Waiting for first data sample' in session.get(server_url + '/data').text

    session.post(server_url + '/data', data=b'2024-01-01T00:00:00,320,240,200,1')

    resp = session.get(server_url + '/data')
    assert resp.headers['Content-Type'] == 'text/plain'
    assert resp.text == '2024-01-01T00:00:00,320,240,200,1'


def test_debug(server_url, session):
    assert session.get(server_url + '/is_debug').content == b'0'

    resp = session.get(server_url + '/debug')
    assert 'Please wait' in resp.text
    assert session.get(server_url + '/is_debug').content == b'1'

    session.post(server_url + '/debug', data=pickle.dumps({'raw': b'raw bytes'}))

    resp = session.get(server_url + '/debug')
    assert resp.text.count('<canvas') == len(debug_image_names)
    assert session.get(server_url + '/debug/raw.jpg').content == b'raw bytes'

    resp = session.get(server_url + '/debug/final_img.jpg')
    assert resp.status_code == 503
    assert "['raw']" in resp.text


def test_favicon_and_unknown_paths(server_url, session):
    resp = session.get(server_url + '/favicon.ico')
    assert resp.status_code == 200
    assert resp.content.startswith(b'\x89PNG')

    assert session.get(server_url + '/unknown').status_code == 404
    assert session.post(server_url + '/unknown', data=b'x').status_code == 404


def test_server_is_dual_stack():
    assert DebugViewerServer.address_family == socket.AF_INET6
    assert DebugViewerServer.allow_reuse_address
