#!/usr/bin/env python3
"""
Quick runner for the LEXIFY Lifecycle Service
=============================================

Usage:
    python -m lexify_backend.run
"""

import uvicorn

if __name__ == "__main__":
    print("Starting LEXIFY Lifecycle Service...")
    print("API docs: http://localhost:8000/docs")
    print("Health:   http://localhost:8000/health")
    print()

    uvicorn.run(
        "lexify_backend.api:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
