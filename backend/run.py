#!/usr/bin/env python3
# backend/run.py
"""
Development server runner.

Creates the tables on the configured database first, then serves the API
with auto-reload. For local development only.
"""
import os
from pathlib import Path
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

os.environ.setdefault("SITE_MODE", "local")

import uvicorn

if __name__ == "__main__":
    from mentorline.init_db import init_db

    init_db()
    print("🚀 Starting Mentorline API (SITE_MODE=" + os.getenv("SITE_MODE", "local") + ")…")
    print("🌐 Access at: http://localhost:8000")
    print("📚 API Docs: http://localhost:8000/docs")

    uvicorn.run("mentorline.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
