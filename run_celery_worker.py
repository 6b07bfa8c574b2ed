#!/usr/bin/env python3
# run_celery_worker.py
"""
Development Celery worker runner.

Runs an embedded beat scheduler (-B) so the daily status job fires
without a separate beat process.
"""

import os
import subprocess
import sys

if __name__ == "__main__":
    queues = os.getenv("CELERY_QUEUES") or "celery,maintenance"
    print(f"Starting Celery worker with beat; consuming queues: {queues}")

    cmd = [
        sys.executable,
        "-m",
        "celery",
        "-A",
        "booking_engine.tasks.celery_app",
        "worker",
        "-B",
        "--loglevel=info",
        "--concurrency=2",
        "-Q",
        queues,
    ]

    subprocess.run(cmd)
