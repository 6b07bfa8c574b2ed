#!/usr/bin/env python3
# run.py
"""
Development server runner for the booking engine API.

Creates missing tables on the configured database before serving.
"""

import os

import uvicorn

from booking_engine.database import init_db

if __name__ == "__main__":
    init_db()
    port = int(os.getenv("PORT", "8000"))
    print(f"Starting booking engine API at http://localhost:{port} (docs at /docs)")

    uvicorn.run("booking_engine.main:app", host="0.0.0.0", port=port, reload=True, log_level="info")
