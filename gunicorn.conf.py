"""
Gunicorn configuration for the Defer API.

  gunicorn -c gunicorn.conf.py

Env vars that override defaults:
  PORT     — TCP port to bind
  WORKERS  — number of worker processes (default: 1)

The outbox, analytics buffer and notification center live in process
memory, so each worker holds its own. Keep one worker unless an external
consumer drains every worker.
"""
import os

wsgi_app = "defer.main:app"

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

workers = int(os.environ.get("WORKERS", "1"))

# Each worker runs Uvicorn's ASGI event loop inside Gunicorn's process manager.
worker_class = "uvicorn.workers.UvicornWorker"

keepalive = 5

# Kill a worker that hasn't responded in 120 s.
timeout = 120

# stdout only; application logs use the same stream (defer.core.logging_config).
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'

# Wait up to 30 s for in-flight requests, then the lifespan flushes the outbox.
graceful_timeout = 30
