#!/usr/bin/env python3
"""
Brief Engine service entrypoint.

Runs the FastAPI app under gunicorn with uvicorn workers. Set PORT and
WEB_WORKERS in the environment to override the defaults.
"""

import os

PORT = os.environ.get("PORT", "8080")
WORKERS = os.environ.get("WEB_WORKERS", "2")

print("=" * 50)
print("Brief Engine: web")
print("=" * 50)

# Generation streams for minutes; the worker timeout must outlast a run.
cmd = [
    "gunicorn", "briefing.api.main:app",
    "--workers", WORKERS,
    "--worker-class", "uvicorn.workers.UvicornWorker",
    "--bind", f"0.0.0.0:{PORT}",
    "--timeout", "900",
    "--graceful-timeout", "120"
]

print(f"Running: {' '.join(cmd)}")
print("=" * 50)

os.execvp(cmd[0], cmd)
