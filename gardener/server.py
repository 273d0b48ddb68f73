"""
Status Server
=============

Passive HTTP reporter for the station. Serves a JSON snapshot of the
station's devices and state; it never calls into the control loop.

Endpoints:
  GET /status   station snapshot
  GET /health   {"ok": true}
"""

import http.server
import json
import socketserver
import threading
from typing import Any, Callable, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)

StatusProvider = Callable[[], Dict[str, Any]]


class _ThreadingServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True


def _make_handler(status: StatusProvider):

    class StatusRequestHandler(http.server.BaseHTTPRequestHandler):
        """HTTP request handler with CORS headers and JSON responses."""

        def end_headers(self):
            """Add CORS headers to all responses."""
            self.send_header('Access-Control-Allow-Origin', '*')
            self.send_header('Access-Control-Allow-Methods', 'GET, OPTIONS')
            self.send_header('Cache-Control', 'no-cache, no-store, must-revalidate')
            super().end_headers()

        def do_OPTIONS(self):
            """Handle OPTIONS requests for CORS preflight."""
            self.send_response(200)
            self.end_headers()

        def do_GET(self):
            path = self.path.split('?', 1)[0].rstrip('/')
            if path == '/health':
                self._send_json(200, {"ok": True})
            elif path in ('', '/status'):
                self._send_json(200, status())
            else:
                self._send_json(404, {"error": f"unknown path {self.path}"})

        def _send_json(self, code: int, body: Dict[str, Any]):
            data = json.dumps(body).encode('utf-8')
            self.send_response(code)
            self.send_header('Content-Type', 'application/json')
            self.send_header('Content-Length', str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def log_message(self, format, *args):
            logger.debug("http request", client=self.address_string(), request=format % args)

    return StatusRequestHandler


class StatusServer:
    """Background HTTP server reporting station status."""

    def __init__(self, status: StatusProvider, host: str = "0.0.0.0", port: int = 8011):
        """Initialize the server.

        Args:
            status: Callable returning the JSON-serializable snapshot
            host: Interface to bind
            port: TCP port (0 picks a free port)
        """
        self.host = host
        self.requested_port = port
        self._status = status
        self._httpd: Optional[_ThreadingServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        if self._httpd is None:
            return self.requested_port
        return self._httpd.server_address[1]

    @property
    def running(self) -> bool:
        return self._httpd is not None

    def start(self) -> None:
        if self._httpd is not None:
            return
        self._httpd = _ThreadingServer((self.host, self.requested_port),
                                       _make_handler(self._status))
        self._thread = threading.Thread(
            target=self._httpd.serve_forever, name="status-server", daemon=True
        )
        self._thread.start()
        logger.info("status server started", host=self.host, port=self.port)

    def stop(self) -> None:
        httpd, self._httpd = self._httpd, None
        if httpd is None:
            return
        httpd.shutdown()
        httpd.server_close()
        logger.info("status server stopped")
