"""Signed-in user identity shared by the session-scoped services."""

from dataclasses import dataclass
from uuid import UUID

from nutrition_sync.errors import AuthenticationError


@dataclass
class UserSession:
    """Holds the authenticated user id, if any."""

    user_id: UUID | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def sign_in(self, user_id: UUID) -> None:
        self.user_id = user_id

    def sign_out(self) -> None:
        self.user_id = None

    def require_user(self) -> UUID:
        """Return the user id or raise when nobody is signed in."""
        if self.user_id is None:
            raise AuthenticationError()
        return self.user_id
