"""Parley admin listener.

Served on its own port so it can be bound to a private interface; it shares
the user listener's store, signing key, limiter and metrics.
"""

from fastapi import FastAPI

from parley.api.router import build_admin_router
from parley.main import build_app
from parley.state import AppState


def create_admin_app(state: AppState) -> FastAPI:
    return build_app(state, build_admin_router(), "Parley moderation API")
