"""Pydantic v2 models for the authenticated user and the auth endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class Profile(BaseModel):
    """The authenticated user.

    Immutable; the avatar is the only field that changes after sign-in and
    is replaced with ``profile.model_copy(update={"avatar": uri})``.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    email: str
    name: str
    verified: bool = False
    avatar: str | None = None


class TokenPair(BaseModel):
    """Opaque access/refresh credential pair issued by the server."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    access: str
    refresh: str


class SignInResponse(BaseModel):
    """Body returned by the sign-in endpoint."""

    profile: Profile
    tokens: TokenPair


class TokenResponse(BaseModel):
    """Body returned by the refresh-token endpoint."""

    tokens: TokenPair


class ProfileResponse(BaseModel):
    """Body returned by the profile endpoint."""

    profile: Profile
