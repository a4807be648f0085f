"""Identity lookup — resolves a token subject (email) to the user record behind it"""
from typing import Callable, NamedTuple, Optional, Tuple

from sqlalchemy.orm import Session

from shop_auth.models.user import User


class Identity(NamedTuple):
    """Detached snapshot of a user, safe to pass across threads."""
    id: int
    subject: str                 # email; the token 'sub' claim
    roles: Tuple[str, ...]       # ordered role names, e.g. ("ROLE_USER",)
    password_hash: str


class IdentityDirectory:
    """Looks identities up by subject using a fresh session per call."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def find_by_subject(self, subject: str) -> Optional[Identity]:
        """Return the identity for ``subject`` or None if no such user exists."""
        db = self._session_factory()
        try:
            user = db.query(User).filter(User.email == subject).first()
            if user is None:
                return None
            return Identity(
                id=user.id,
                subject=user.email,
                roles=tuple(role.name for role in user.roles),
                password_hash=user.password,
            )
        finally:
            db.close()
