import logging

from .auth import PasswordHasher
from .constants import MIN_PASSWORD_LENGTH, normalize_username
from .errors import (
    DuplicateUsernameError,
    InputValidationError,
    InvalidCredentialsError,
    WeakPasswordError,
)
from .models import User
from .storage import UserStore

logger = logging.getLogger(__name__)


class CredentialStore:
    """User registration and credential checks on top of a UserStore."""

    def __init__(self, users: UserStore, hasher: PasswordHasher | None = None):
        self.users = users
        self.hasher = hasher or PasswordHasher()

    def register(self, username: str, password: str) -> User:
        name = normalize_username(username)
        if not name or not password:
            raise InputValidationError("Username and password are required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise WeakPasswordError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

        # add() re-checks under its own lock/unique index; this only avoids hashing for a taken name
        if self.users.get_by_username(name) is not None:
            raise DuplicateUsernameError()

        user = self.users.add(name, self.hasher.hash(password))
        logger.info("Registered user %s (%s)", user.username, user.id)
        return user

    def verify_credentials(self, username: str, password: str) -> User:
        """Return the user for a matching username/password pair.

        Unknown usernames and wrong passwords fail identically.
        """
        name = normalize_username(username)
        if not name or not password:
            raise InputValidationError("Username and password are required")

        user = self.users.get_by_username(name)
        if user is None:
            self.hasher.dummy_verify()
            logger.info("Login failed for unknown username")
            raise InvalidCredentialsError()
        if not self.hasher.verify(password, user.password_hash):
            logger.info("Login failed for user %s", user.id)
            raise InvalidCredentialsError()
        return user
