"""
Authentication using Firebase Identity Toolkit

DESIGN DECISION: We talk to the Identity Toolkit REST API directly because:
1. The Admin SDK cannot verify a user's password
2. Email/password sign-in is two POST requests; no client SDK is needed
3. The same accounts work with the existing web client

This service handles:
1. Sign-in and sign-up against the provider
2. Translating provider error codes into messages a person can act on
3. Writing the PENDING profile that gates a new account
4. Publishing identity changes to the access resolver

CRITICAL: A new account is only published as signed in once its profile
exists. If the profile write fails the session stays signed out and the
caller gets a ProfileCreationError explaining what happened.
"""

from abc import ABC, abstractmethod
from itertools import count
from typing import Callable, Optional

import requests

from family_tracker.audit import AuditLogger
from family_tracker.config import get_settings
from family_tracker.models.profile import Identity, UserProfile, UserStatus
from family_tracker.services.storage.interface import (
    CallbackEventSource,
    DocumentStore,
    EventSource,
    StorageError,
    Unsubscribe,
    profile_path,
)


IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"

VENDOR_PREFIX = "Firebase: "

PROFILE_SETUP_FAILED_MESSAGE = (
    "Account created, but failed to set up profile. "
    "Please contact the administrator."
)

# Identity Toolkit error codes we can explain better than the raw code
AUTH_ERROR_MESSAGES = {
    "EMAIL_EXISTS": "An account with this email already exists.",
    "EMAIL_NOT_FOUND": "Invalid email or password.",
    "INVALID_PASSWORD": "Invalid email or password.",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password.",
    "INVALID_EMAIL": "The email address is badly formatted.",
    "MISSING_PASSWORD": "Please enter a password.",
    "WEAK_PASSWORD": "Password should be at least 6 characters.",
    "USER_DISABLED": "This account has been disabled.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Please try again later.",
    "OPERATION_NOT_ALLOWED": "Email/password sign-in is not enabled for this project.",
}


class AuthError(Exception):
    """Sign-in or sign-up was rejected."""
    pass


class ProfileCreationError(AuthError):
    """The account exists but its profile document could not be written."""

    def __init__(self, uid: str, message: str = PROFILE_SETUP_FAILED_MESSAGE):
        self.uid = uid
        super().__init__(message)


def clean_auth_message(raw: str) -> str:
    """
    Turn a provider error into the text shown on the sign-in form.

    The vendor prefix is dropped. Known codes are translated; codes
    may carry a detail suffix ("WEAK_PASSWORD : Password should be...").
    """
    message = (raw or "").strip()
    if message.startswith(VENDOR_PREFIX):
        message = message[len(VENDOR_PREFIX):].strip()

    code = message.split(" : ", 1)[0].strip()
    if code in AUTH_ERROR_MESSAGES:
        return AUTH_ERROR_MESSAGES[code]
    return message or "Authentication failed."


class IdentityProvider(ABC):
    """
    Abstract interface for the authentication provider.

    Providers only verify credentials; session state lives in AuthSession.
    """

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Identity:
        """
        Verify credentials.

        Raises:
            AuthError: If the provider rejects them
        """
        pass

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> Identity:
        """
        Create an account and return its identity.

        Raises:
            AuthError: If the provider rejects the account
        """
        pass


class FirebaseIdentityProvider(IdentityProvider):
    """Identity Toolkit REST client for email/password accounts."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 20,
    ):
        self._api_key = api_key or get_settings().firebase.web_api_key
        self._session = session or requests.Session()
        self._timeout = timeout

    def _post(self, endpoint: str, email: str, password: str) -> Identity:
        payload = {"email": email, "password": password, "returnSecureToken": True}
        try:
            response = self._session.post(
                f"{IDENTITY_TOOLKIT_URL}/{endpoint}",
                params={"key": self._api_key},
                json=payload,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise AuthError(f"Could not reach the authentication service: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code != 200:
            raw = (body.get("error") or {}).get("message", response.reason or "")
            raise AuthError(clean_auth_message(raw))

        return Identity(
            uid=body["localId"],
            email=body.get("email", email),
            id_token=body.get("idToken"),
            refresh_token=body.get("refreshToken"),
        )

    async def sign_in(self, email: str, password: str) -> Identity:
        return self._post("accounts:signInWithPassword", email, password)

    async def sign_up(self, email: str, password: str) -> Identity:
        return self._post("accounts:signUp", email, password)


class InMemoryIdentityProvider(IdentityProvider):
    """
    Provider that keeps accounts in a dict.

    Used by tests and by the memory storage backend.
    """

    MIN_PASSWORD_LENGTH = 6

    def __init__(self):
        self._accounts: dict[str, tuple[str, str]] = {}
        self._ids = count(1)

    def add_account(self, email: str, password: str, uid: Optional[str] = None) -> Identity:
        uid = uid or f"user{next(self._ids):04d}"
        self._accounts[email.strip().lower()] = (uid, password)
        return Identity(uid=uid, email=email)

    async def sign_in(self, email: str, password: str) -> Identity:
        account = self._accounts.get(email.strip().lower())
        if account is None or account[1] != password:
            raise AuthError(clean_auth_message("INVALID_LOGIN_CREDENTIALS"))
        return Identity(uid=account[0], email=email)

    async def sign_up(self, email: str, password: str) -> Identity:
        if email.strip().lower() in self._accounts:
            raise AuthError(clean_auth_message("EMAIL_EXISTS"))
        if len(password) < self.MIN_PASSWORD_LENGTH:
            raise AuthError(clean_auth_message("WEAK_PASSWORD"))
        return self.add_account(email, password)


class AuthSession:
    """
    The signed-in identity of one app session.

    Identity changes are published through `identity_changes()`, which
    delivers the current identity on subscribe and every change after.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        store: DocumentStore,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._provider = provider
        self._store = store
        self._audit = audit_logger or AuditLogger()
        self._identity: Optional[Identity] = None
        self._listeners: list[Callable[[Optional[Identity]], None]] = []

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    def identity_changes(self) -> EventSource[Optional[Identity]]:
        def subscribe(on_next, on_error) -> Unsubscribe:
            self._listeners.append(on_next)
            on_next(self._identity)

            def unsubscribe() -> None:
                if on_next in self._listeners:
                    self._listeners.remove(on_next)

            return unsubscribe

        return CallbackEventSource(subscribe)

    def _publish(self, identity: Optional[Identity]) -> None:
        self._identity = identity
        for listener in list(self._listeners):
            listener(identity)

    async def sign_in(self, email: str, password: str) -> Identity:
        try:
            identity = await self._provider.sign_in(email.strip(), password)
        except AuthError as e:
            self._audit.log_auth_failed(email, str(e))
            raise

        self._audit.log_signed_in(identity.uid, identity.email)
        self._publish(identity)
        return identity

    async def sign_up(
        self,
        email: str,
        password: str,
        username: Optional[str] = None,
    ) -> Identity:
        """
        Create an account and its PENDING profile.

        Raises:
            AuthError: If the provider rejects the account
            ProfileCreationError: If the profile write fails; the session
                is left signed out
        """
        try:
            identity = await self._provider.sign_up(email.strip(), password)
        except AuthError as e:
            self._audit.log_auth_failed(email, str(e))
            raise

        profile = UserProfile(
            id=identity.uid,
            email=identity.email,
            username=username or None,
            status=UserStatus.PENDING,
        )
        try:
            await self._store.set(
                profile_path(identity.uid),
                profile.to_document(),
                timestamp_field="createdAt",
            )
        except StorageError as e:
            self._audit.log_profile_creation_failed(identity.uid, str(e))
            self._publish(None)
            raise ProfileCreationError(identity.uid) from e

        self._audit.log_signed_up(identity.uid, identity.email)
        self._publish(identity)
        return identity

    async def sign_out(self) -> None:
        if self._identity is None:
            return
        self._audit.log_signed_out(self._identity.uid)
        self._publish(None)
