"""Thin launcher so Railpack auto-detection (main.py) starts the crawl API."""
import os

os.execvp("uvicorn", [
    "uvicorn", "talkwatch.admin_api:app",
    "--host=0.0.0.0",
    "--port=" + os.environ.get("PORT", "8000"),
])
