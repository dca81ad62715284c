"""Local HTTP surface of the orchestrator."""

from motorscope.api.app import create_app

__all__ = ["create_app"]
