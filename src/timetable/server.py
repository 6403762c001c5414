"""Minimal HTTP surface for the two JSON operations.

    POST /fetch-options     -> api.resolve_options
    POST /fetch-timetable   -> api.fetch_timetable
    GET  /health            -> "ok"

Browsers call this cross-origin, so every response carries permissive CORS
headers and OPTIONS preflights are answered directly.
"""

import json
from http.server import BaseHTTPRequestHandler, HTTPServer

from src.timetable import api
from src.timetable.logging import get_logger
from src.timetable.options import OptionsResolver
from src.timetable.timetable import TimetableFetcher

logger = get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


class TimetableRequestHandler(BaseHTTPRequestHandler):
    resolver: OptionsResolver | None = None
    fetcher: TimetableFetcher | None = None

    def _send_json(self, code: int, payload: dict) -> None:
        body = json.dumps(payload).encode()
        self.send_response(code)
        for name, value in CORS_HEADERS.items():
            self.send_header(name, value)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_OPTIONS(self):
        self.send_response(204)
        for name, value in CORS_HEADERS.items():
            self.send_header(name, value)
        self.end_headers()

    def do_GET(self):
        if self.path == "/health":
            self.send_response(200)
            self.send_header("Content-Type", "text/plain")
            self.end_headers()
            self.wfile.write(b"ok")
            return
        self._send_json(404, {"success": False, "error": "Not found"})

    def do_POST(self):
        routes = {
            "/fetch-options": lambda body: api.resolve_options(body, self.resolver),
            "/fetch-timetable": lambda body: api.fetch_timetable(body, self.fetcher),
        }
        handler = routes.get(self.path)
        if handler is None:
            self._send_json(404, {"success": False, "error": "Not found"})
            return

        content_length = int(self.headers.get("Content-Length", 0))
        raw = self.rfile.read(content_length)
        try:
            body = json.loads(raw or b"{}")
        except ValueError:
            self._send_json(400, {"success": False, "error": "Invalid JSON"})
            return

        try:
            code, payload = handler(body)
        except Exception:
            logger.exception("request_failed", path=self.path)
            code, payload = 500, {"success": False, "error": "Internal error"}
        self._send_json(code, payload)

    def log_message(self, format, *args):
        logger.debug("http_request", client=self.client_address[0], message=format % args)


def make_server(
    host: str,
    port: int,
    resolver: OptionsResolver | None = None,
    fetcher: TimetableFetcher | None = None,
) -> HTTPServer:
    """Build an HTTPServer whose handler uses the given resolver and fetcher."""
    handler = type(
        "BoundTimetableRequestHandler",
        (TimetableRequestHandler,),
        {
            "resolver": resolver or OptionsResolver(),
            "fetcher": fetcher or TimetableFetcher(),
        },
    )
    return HTTPServer((host, port), handler)
