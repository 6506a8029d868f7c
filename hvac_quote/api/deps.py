"""FastAPI dependencies.

Collaborators are built once in the app lifespan and hung on ``app.state``;
tests swap them there without touching module globals.
"""

from __future__ import annotations

from fastapi import Depends, Request

from hvac_quote.errors import Unauthorized
from hvac_quote.services.auth import AdminSessions
from hvac_quote.services.lead_store import LeadStore
from hvac_quote.services.orchestrator import LeadOrchestrator


def get_orchestrator(request: Request) -> LeadOrchestrator:
    return request.app.state.orchestrator


def get_store(request: Request) -> LeadStore:
    return request.app.state.orchestrator.store


def get_sessions(request: Request) -> AdminSessions:
    return request.app.state.sessions


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_admin(
    request: Request, sessions: AdminSessions = Depends(get_sessions)
) -> str:
    """Resolve the caller's admin token or fail with 401."""
    token = bearer_token(request)
    if token is None or not sessions.check(token):
        raise Unauthorized()
    return token
