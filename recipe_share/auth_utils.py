"""
Request authorization dependencies.

Authorization strategies:

1. Public endpoints (no auth required):
   - GET / and GET /health
   - GET /recipes, GET /recipes/{id}, GET /recipes/user/{userId}
   - POST /auth/register, POST /auth/login

2. User-required endpoints (bearer token):
   - GET /auth/profile
   - POST /recipes
   - PUT /recipes/{id} and DELETE /recipes/{id} (plus ownership, see recipes.py)

Usage in endpoints:

    @router.post("/recipes")
    def create(claim: SessionClaim = Depends(require_auth)):
        ...

A failing token raises a TokenError before the endpoint body runs; the
registered error handlers turn it into a 401 response.
"""
import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .auth import TokenService
from .errors import TokenError
from .schemas import SessionClaim

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False, description="Enter JWT token in format: Bearer <token>")


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def require_auth(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    tokens: TokenService = Depends(get_token_service),
) -> SessionClaim:
    """Authenticate the request and attach the claim to `request.state.claim`."""
    token = credentials.credentials if credentials is not None else None
    try:
        claim = tokens.verify(token)
    except TokenError as exc:
        logger.debug("Rejected %s %s: %s", request.method, request.url.path, type(exc).__name__)
        raise
    request.state.claim = claim
    return claim
