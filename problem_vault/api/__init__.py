"""
FastAPI control service.

Provides REST API for collector and pipeline control:
- POST /collect/{sourceType}, POST /stop/{sourceType}
- GET /status, GET /status/{sourceType}, GET /runs/{sourceType}
- POST /pipeline/process, GET /pipeline/status
- GET /health
"""

from problem_vault.api.app import create_app

__all__ = ["create_app"]
