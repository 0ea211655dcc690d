"""
Estimatix - HTTP API layer (FastAPI).
"""
from estimatix.api.main import create_app

__all__ = ["create_app"]
