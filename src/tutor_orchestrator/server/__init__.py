"""HTTP server module."""

from tutor_orchestrator.server.main import create_app, start_server

__all__ = ["create_app", "start_server"]
