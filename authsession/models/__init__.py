"""Re-export the data models for convenient access."""

from authsession.models.user import (
    Profile,
    ProfileResponse,
    SignInResponse,
    TokenPair,
    TokenResponse,
)

__all__ = [
    "Profile",
    "ProfileResponse",
    "SignInResponse",
    "TokenPair",
    "TokenResponse",
]
