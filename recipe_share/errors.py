"""Domain error hierarchy.

Every error carries a client-safe message and the HTTP status it maps to.
The API layer turns them into `{"error": message}` bodies; nothing here
knows about FastAPI.
"""
from typing import Dict, Optional


class RecipeShareError(Exception):
    """Base exception for all expected request failures."""

    http_status: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None

    def to_response(self) -> Dict[str, str]:
        return {"error": self.message}


# 400-level: bad input

class InputValidationError(RecipeShareError):
    http_status = 400
    default_message = "Invalid input"


class WeakPasswordError(InputValidationError):
    default_message = "Password must be at least 6 characters long"


class DuplicateUsernameError(RecipeShareError):
    http_status = 400
    default_message = "Username already exists"


class InvalidIdentifierError(RecipeShareError):
    http_status = 400
    default_message = "Invalid ID"


# 401: authentication

class AuthenticationError(RecipeShareError):
    http_status = 401
    default_message = "Authentication required"


class InvalidCredentialsError(AuthenticationError):
    default_message = "Invalid credentials"


class TokenError(AuthenticationError):
    """Bearer token problems; clients are told which scheme to use."""

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class MissingTokenError(TokenError):
    default_message = "Access token required"


class InvalidTokenError(TokenError):
    default_message = "Invalid token"


class ExpiredTokenError(TokenError):
    default_message = "Token expired"


# 403 / 404 / 409

class ForbiddenError(RecipeShareError):
    http_status = 403
    default_message = "Not authorized"


class NotFoundError(RecipeShareError):
    http_status = 404
    default_message = "Not found"


class ConflictError(RecipeShareError):
    """The record changed between the ownership check and the write."""

    http_status = 409
    default_message = "Recipe was modified concurrently, retry the request"
