"""
Flask web interface for the Registry Console.
Serves the console page and proxies every /api/* request to the Console API
(python/api.py), which owns the delete-by-date sessions.
"""
import os
from datetime import datetime
from typing import Dict

import httpx
from flask import Flask, Response, jsonify, render_template, request

from registry_console.config_manager import config_manager

# Configuration (config.yaml "frontend" section, FRONTEND_*/CONSOLE_API_URL env overrides)
HOST = config_manager.get_frontend_host()
PORT = config_manager.get_frontend_port()
CONSOLE_API_URL = config_manager.get_console_api_url()
PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "60"))
POLL_INTERVAL_MS = int(os.environ.get("POLL_INTERVAL_MS", "250"))

# Flask app setup
app = Flask(__name__, static_url_path="/static", static_folder="templates/static")
app.secret_key = os.environ.get("SECRET_KEY") or os.urandom(24)


# ── Helpers ────────────────────────────────────────────────────────────────────


def _forward_headers() -> Dict[str, str]:
    headers: Dict[str, str] = {"Accept": "application/json"}
    if request.content_type:
        headers["Content-Type"] = request.content_type
    return headers


# ── Page ───────────────────────────────────────────────────────────────────────


@app.route("/")
def index():
    """Console page: repositories, dashboards and delete-by-date"""
    return render_template("index.html", poll_interval_ms=POLL_INTERVAL_MS)


# ── Console API proxy ──────────────────────────────────────────────────────────
# The browser only talks to this server; the Console API is not exposed.


@app.route("/api/<path:path>", methods=["GET", "POST", "PUT", "DELETE"])
def proxy_api(path):
    """Proxy: /api/<path> → Console API, status code and body passed through"""
    try:
        resp = httpx.request(
            request.method,
            f"{CONSOLE_API_URL}/api/{path}",
            params=list(request.args.items(multi=True)),
            content=request.get_data() or None,
            headers=_forward_headers(),
            timeout=PROXY_TIMEOUT,
        )
    except httpx.ConnectError:
        return jsonify({"error": "Console API is unavailable"}), 503
    except httpx.TimeoutException:
        return jsonify({"error": "Console API did not answer in time"}), 504

    return Response(
        resp.content,
        status=resp.status_code,
        content_type=resp.headers.get("content-type", "application/json"),
    )


# ── Health ─────────────────────────────────────────────────────────────────────


@app.route("/health")
def health():
    """Health check endpoint"""
    return jsonify({"status": "healthy", "timestamp": datetime.now().isoformat()})


if __name__ == "__main__":
    from waitress import serve
    print(f"Starting Registry Console Web UI on {HOST}:{PORT} (Console API: {CONSOLE_API_URL})")
    serve(app, host=HOST, port=PORT)
