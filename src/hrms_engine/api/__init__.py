"""HTTP API."""

from hrms_engine.api.app import create_app

__all__ = ["create_app"]
