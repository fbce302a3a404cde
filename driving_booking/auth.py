import logging
from typing import Sequence

from jose import JWTError, jwt
from pydantic import ValidationError

from driving_booking import api, config, persist
from driving_booking.exceptions import ApiError, AuthError
from driving_booking.models import User

logger = logging.getLogger(__name__)


def decode_user(token: str) -> User:
    """Reads the user claims from an access token. The signature is the API's business."""
    claims = jwt.get_unverified_claims(token)
    return User.model_validate(claims)


def landing_route(role: str) -> str:
    """Where a user goes right after logging in."""
    if role == config.STUDENT_ROLE:
        return config.STUDENT_ROUTE
    return config.PORTAL_ROUTE


def guard_route(user: User | None, allowed_roles: Sequence[str] | None = None) -> str | None:
    """Returns the route to redirect to, or None if the user may stay."""
    if user is None:
        return config.LOGIN_ROUTE
    if allowed_roles and user.role not in allowed_roles:
        if user.role == config.STUDENT_ROLE:
            return config.STUDENT_ROUTE
        return config.HOME_ROUTE
    return None


class AuthSession:
    def __init__(self):
        self.user: User | None = None
        self.loading = True

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def restore(self) -> User | None:
        """Picks up the token stored by a previous login."""
        token = persist.load_token()
        if token:
            try:
                self.user = decode_user(token)
            except (JWTError, ValidationError) as e:
                logger.error(f"Invalid stored token, logging out: {e}")
                persist.clear_token()
                self.user = None
        self.loading = False
        return self.user

    def accept_token(self, token: str) -> User:
        user = decode_user(token)
        persist.save_token(token)
        self.user = user
        return user

    def login(self, email: str, password: str) -> str:
        """Logs in and returns the landing route for the user's role."""
        try:
            token = api.login_user(email, password)
            user = self.accept_token(token)
        except (ApiError, JWTError, ValidationError) as e:
            logger.error(f"Login failed for {email}: {e}")
            raise AuthError("Invalid credentials") from e
        logger.info(f"Logged in as {user.email} ({user.role})")
        return landing_route(user.role)

    def logout(self):
        persist.clear_token()
        self.user = None
