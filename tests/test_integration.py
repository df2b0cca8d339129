"""
Integration tests for the Infogram client against a local HTTP server.

The server checks api_key/api_sig the way the Infogram API does, using its
own signing code, and serves canned resources.
"""

import base64
import hashlib
import hmac
import io
import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qsl, quote_plus, urlsplit

import pytest

from infogram import (
    APIError,
    ClientConfig,
    Infographic,
    InfogramClient,
    RequestCancelledError,
    Theme,
    list_of
)

API_KEY = "integration-key"
API_SECRET = "integration-secret"

INFOGRAPHIC = {
    "id": 1,
    "title": "Number One",
    "thumbnail_url": "https://example.com/1.png",
    "theme_id": 99,
    "published": True,
    "date_modified": "2021-03-04T05:06:07Z",
    "url": "https://example.com/1"
}
THEMES = [{"id": 7, "title": "Dark", "thumbnail_url": "https://example.com/dark.png"}]
PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00binary"


def expected_signature(method, url, params):
    pairs = "&".join(
        f"{quote_plus(key)}={quote_plus(params[key])}" for key in sorted(params)
    )
    base = f"{method}&{quote_plus(url)}&{quote_plus(pairs)}"
    digest = hmac.new(API_SECRET.encode(), base.encode(), hashlib.sha1).digest()
    return base64.b64encode(digest).decode()


class FakeInfogramHandler(BaseHTTPRequestHandler):
    """Minimal stand-in for the Infogram REST API."""

    def log_message(self, format, *args):
        pass

    def _send(self, status, body, content_type="application/json"):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _verify(self, params):
        params = dict(params)
        signature = params.pop("api_sig", None)
        host, port = self.server.server_address[:2]
        url = f"http://{host}:{port}{urlsplit(self.path).path}"
        return params.get("api_key") == API_KEY and \
            signature == expected_signature(self.command, url, params)

    def do_GET(self):
        parts = urlsplit(self.path)
        params = dict(parse_qsl(parts.query, keep_blank_values=True))

        if not self._verify(params):
            self._send(401, b"invalid signature", "text/plain")
            return

        path = parts.path
        if path == "/service/v1/infographics":
            self._send(200, json.dumps([INFOGRAPHIC]).encode())
        elif path == "/service/v1/infographics/1" and params.get("format") == "png":
            self._send(200, PNG_BYTES, "image/png")
        elif path == "/service/v1/infographics/1":
            self._send(200, json.dumps(INFOGRAPHIC).encode())
        elif path == "/service/v1/infographics/2":
            self._send(200, b"")
        elif path == "/service/v1/users/12345/infographics":
            self._send(200, json.dumps([INFOGRAPHIC, INFOGRAPHIC]).encode())
        elif path == "/service/v1/themes":
            self._send(200, json.dumps(THEMES).encode())
        elif path == "/service/v1/slow":
            time.sleep(1)
            self._send(200, b"[]")
        elif path == "/service/v1/stall":
            # headers go out at once, the body only after the client gave up
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", "10")
            self.end_headers()
            self.wfile.flush()
            time.sleep(1.5)
            try:
                self.wfile.write(b"[]        ")
            except OSError:
                pass
        else:
            self._send(404, b"not found", "text/plain")

    def do_POST(self):
        length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(length).decode()

        if self.headers.get("Content-Type") == "application/json":
            params = dict(parse_qsl(urlsplit(self.path).query, keep_blank_values=True))
        else:
            params = dict(parse_qsl(body, keep_blank_values=True))

        if not self._verify(params):
            self._send(401, b"invalid signature", "text/plain")
            return

        params.pop("api_sig")
        if self.headers.get("Content-Type") == "application/json":
            self._send(200, json.dumps({"query": params, "body": json.loads(body)}).encode())
        else:
            self._send(200, json.dumps(params).encode())


class TestIntegration:
    """Integration tests with a local API server."""

    @pytest.fixture(scope="class")
    def server(self):
        """Start the fake API server for the test class."""
        httpd = ThreadingHTTPServer(("127.0.0.1", 0), FakeInfogramHandler)
        httpd.daemon_threads = True
        thread = threading.Thread(target=httpd.serve_forever, daemon=True)
        thread.start()

        yield httpd

        httpd.shutdown()
        httpd.server_close()

    @pytest.fixture
    def client(self, server):
        host, port = server.server_address[:2]
        config = ClientConfig(endpoint=f"http://{host}:{port}/service/v1", timeout=5)
        with InfogramClient(API_KEY, API_SECRET, config) as client:
            yield client

    def test_infographics(self, client):
        infographics = client.infographics()

        assert infographics == [Infographic.from_dict(INFOGRAPHIC)]
        assert infographics[0].published is True

    def test_infographic(self, client):
        assert client.infographic(1) == Infographic.from_dict(INFOGRAPHIC)

    def test_infographic_empty_body(self, client):
        assert client.infographic(2) == Infographic()

    def test_infographic_not_found(self, client):
        with pytest.raises(APIError) as exc_info:
            client.infographic(404)

        assert str(exc_info.value) == "not found"
        assert exc_info.value.status_code == 404

    def test_user_infographics(self, client):
        assert len(client.user_infographics(12345)) == 2

    def test_themes(self, client):
        assert client.themes() == [Theme(id=7, title="Dark", thumbnail_url="https://example.com/dark.png")]

    def test_export_png(self, client):
        sink = io.BytesIO()

        client.export_infographic(1, "png", sink)

        assert sink.getvalue() == PNG_BYTES

    def test_wrong_secret(self, server):
        """Test that a wrong secret results in the server's error text."""
        host, port = server.server_address[:2]
        config = ClientConfig(endpoint=f"http://{host}:{port}/service/v1")

        with InfogramClient(API_KEY, "wrong-secret", config) as client:
            with pytest.raises(APIError) as exc_info:
                client.themes()

        assert str(exc_info.value) == "invalid signature"
        assert exc_info.value.status_code == 401

    def test_signed_form_post(self, client):
        """Test write-style requests are signed in the form body."""
        request = client.sign_request(
            client.new_request("POST", "/echo", data={"title": "Q3 report", "theme_id": 7})
        )

        echoed = client.do(request, dict)

        assert echoed == {"title": "Q3 report", "theme_id": "7", "api_key": API_KEY}

    def test_signed_json_post(self, client):
        """Test a JSON body is sent untouched and signed through the query string."""
        payload = {"title": "Q3 report", "theme_id": 7, "tags": ["a", "b"]}
        request = client.sign_request(client.new_request("POST", "/echo", json=payload))

        echoed = client.do(request, dict)

        assert echoed == {"query": {"api_key": API_KEY}, "body": payload}

    def test_deadline(self, client):
        request = client.sign_request(client.new_request("GET", "/slow"))

        with pytest.raises(RequestCancelledError) as exc_info:
            client.do(request, timeout=0.2)

        assert exc_info.value.reason == "deadline exceeded"

    def test_deadline_while_reading_body(self, client):
        """Test a server that sends headers and then stalls hits the deadline."""
        request = client.sign_request(client.new_request("GET", "/stall"))

        with pytest.raises(RequestCancelledError) as exc_info:
            client.do(request, list_of(Theme), timeout=0.3)

        assert exc_info.value.reason == "deadline exceeded"

    def test_concurrent_requests(self, client):
        """Test one client shared between threads."""
        results = []

        def fetch():
            results.append(client.themes())

        threads = [threading.Thread(target=fetch) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 5
        assert all(themes == results[0] for themes in results)
