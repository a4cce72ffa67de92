"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. Everything they return is built once in the app
lifespan and stored on app.state.
"""

from __future__ import annotations

from fastapi import Request

from config import AppSettings
from services.dispatch import DispatchOrchestrator


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


async def get_db(request: Request):
    """Return the async MongoDB database from app.state."""
    return request.app.state.db


def get_orchestrator(request: Request) -> DispatchOrchestrator:
    """Return the DispatchOrchestrator wired in the app lifespan."""
    return request.app.state.orchestrator
