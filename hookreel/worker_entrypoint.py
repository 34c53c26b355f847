"""Render worker process for container deployments.

Serves a health probe on ``$PORT`` from a daemon thread and runs the Celery
render worker in the foreground. Requires REDIS_URL; the in-process backend
needs no separate worker.
"""

import json
import logging
import os
import subprocess
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

from hookreel.config import configure_logging, get_settings

logger = logging.getLogger(__name__)

HEALTH_PATHS = ("/", "/health")


def health_payload() -> bytes:
    settings = get_settings()
    return json.dumps({
        "status": "ok",
        "app": settings.app_name,
        "version": settings.app_version,
        "queue": settings.queue_name,
    }).encode()


class HealthHandler(BaseHTTPRequestHandler):
    """Answers liveness probes; everything else is 404."""

    def do_GET(self):
        if self.path not in HEALTH_PATHS:
            self.send_response(404)
            self.end_headers()
            return
        body = health_payload()
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        # Probes arrive every few seconds
        pass


def start_health_server(port: int | None = None) -> HTTPServer:
    port = port if port is not None else int(os.environ.get("PORT", 8080))
    server = HTTPServer(("0.0.0.0", port), HealthHandler)
    threading.Thread(target=server.serve_forever, daemon=True, name="health").start()
    logger.info(f"[WORKER] Health server listening on port {server.server_port}")
    return server


def celery_worker_command() -> list[str]:
    settings = get_settings()
    return [
        "celery",
        "-A", "hookreel.celery_app",
        "worker",
        f"--loglevel={settings.log_level.lower()}",
        f"--concurrency={settings.worker_concurrency}",
        "--queues", settings.queue_name,
    ]


def run_celery_worker() -> int:
    """Run the Celery render worker until it exits; returns its exit code."""
    if not get_settings().has_redis:
        raise SystemExit("REDIS_URL is not set; the Celery worker needs a broker")
    command = celery_worker_command()
    logger.info(f"[WORKER] Starting: {' '.join(command)}")
    return subprocess.run(command).returncode


def main() -> None:
    configure_logging()
    start_health_server()
    raise SystemExit(run_celery_worker())


if __name__ == "__main__":
    main()
