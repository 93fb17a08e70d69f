"""
Request-level authentication helpers
"""
from typing import Optional

from fastapi import Request

from study_buddy.session_tokens import SessionTokenService

_token_service: SessionTokenService = None


def get_token_service() -> SessionTokenService:
    """Get or create the session token service singleton"""
    global _token_service

    if _token_service is None:
        _token_service = SessionTokenService()

    return _token_service


def get_client_ip(request: Request) -> str:
    """
    Best-effort client IP for rate limiting and audit rows.

    Prefers the first x-forwarded-for hop, then cf-connecting-ip, then the
    socket peer.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip

    return request.client.host if request.client else "unknown"


def get_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Token from an `Authorization: Bearer <token>` header, if present."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization[len("Bearer "):].strip() or None
