"""Authentication services package."""

from family_tracker.services.auth.identity import (
    PROFILE_SETUP_FAILED_MESSAGE,
    AuthError,
    AuthSession,
    FirebaseIdentityProvider,
    IdentityProvider,
    InMemoryIdentityProvider,
    ProfileCreationError,
    clean_auth_message,
)

__all__ = [
    "PROFILE_SETUP_FAILED_MESSAGE",
    "AuthError",
    "AuthSession",
    "FirebaseIdentityProvider",
    "IdentityProvider",
    "InMemoryIdentityProvider",
    "ProfileCreationError",
    "clean_auth_message",
]
