#!/usr/bin/env python3
# backend/run.py
"""
Development server runner.

Builds the app through the factory so settings are read (and validated)
once at startup; a missing STRIPE_SECRET_KEY stops the server here.
"""
import os
from pathlib import Path
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

import uvicorn

if __name__ == "__main__":
    print("Starting ThoughtCloud API at http://localhost:8000 (docs at /docs)")

    uvicorn.run(
        "app.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        log_level="info",
    )
