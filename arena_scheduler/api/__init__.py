"""
Arena Scheduler API module.

Provides FastAPI HTTP endpoints for the scheduling engine.
"""

from arena_scheduler.api.main import app, run_server

__all__ = ["app", "run_server"]
