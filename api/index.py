"""
Vercel Serverless Entry Point

Vercel's Python runtime calls this file for every request to /api/*.
It exposes the same FastAPI application the long-running server uses;
the database pool is created lazily by the first request that needs it
and reused by later invocations served by the same warm instance.
"""

import sys
from pathlib import Path

# The application packages live under src/api, not at the repository root
api_root = Path(__file__).resolve().parents[1] / "src" / "api"
if str(api_root) not in sys.path:
    sys.path.insert(0, str(api_root))

from main import app  # noqa: E402

__all__ = ["app"]
