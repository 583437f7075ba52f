from __future__ import annotations

from fastapi import HTTPException


# ──────────────────────────────────────────────────────────────
# Domain errors
# ──────────────────────────────────────────────────────────────

class SearchError(Exception):
    """Base for errors surfaced to the caller of a search."""

    code = "search_error"


class InvalidQuery(SearchError):
    """Malformed origin or non-positive radius. Never retried."""

    code = "invalid_query"


class SearchTimeout(SearchError):
    """Overall deadline exceeded before any source produced data."""

    code = "search_timeout"


class SourceUnavailable(Exception):
    """A source fetch failed hard (network, HTTP status, bad payload)."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class ProviderUnavailable(Exception):
    """A routing provider could not produce a distance."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


# ──────────────────────────────────────────────────────────────
# HTTP helpers
# ──────────────────────────────────────────────────────────────

def bad_request(code: str, message: str):
    raise HTTPException(status_code=400, detail={"code": code, "message": message})


def not_found(code: str, message: str):
    raise HTTPException(status_code=404, detail={"code": code, "message": message})


def service_unavailable(code: str, message: str):
    raise HTTPException(status_code=503, detail={"code": code, "message": message})


def gateway_timeout(code: str, message: str):
    raise HTTPException(status_code=504, detail={"code": code, "message": message})
