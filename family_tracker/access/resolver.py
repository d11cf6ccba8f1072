"""
Access State Resolver

Decides what the current session may see. The inputs are the signed-in
identity and that identity's profile document; the output is exactly one
AccessState.

DESIGN DECISION: A non-admin identity without a profile document resolves
to REJECTED. Sign-up writes the profile before publishing the identity,
so a missing profile means something went wrong and we fail closed rather
than creating one from the client.

Expiry is a pure function of the clock at evaluation time. There is no
timer: the watcher re-evaluates on every profile snapshot and on every
read of `state`.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from family_tracker.audit import AuditLogger
from family_tracker.models.profile import AccessState, Identity, UserProfile, UserStatus
from family_tracker.services.storage.interface import (
    DocumentStore,
    EventSource,
    StorageError,
    StoredDocument,
    Unsubscribe,
    profile_path,
)


logger = structlog.get_logger(__name__)


def is_admin(
    identity: Identity,
    admin_uid: Optional[str] = None,
    admin_email: Optional[str] = None,
) -> bool:
    """True when the identity matches the configured administrator."""
    if admin_uid and identity.uid == admin_uid:
        return True
    if admin_email and identity.email:
        return identity.email.strip().lower() == admin_email.strip().lower()
    return False


def resolve_access_state(
    identity: Optional[Identity],
    profile: Optional[UserProfile],
    *,
    admin_uid: Optional[str] = None,
    admin_email: Optional[str] = None,
    now: datetime,
    identity_loading: bool = False,
    lookup_failed: bool = False,
) -> AccessState:
    """
    Derive the access state of a session.

    Args:
        identity: Signed-in identity, or None when signed out
        profile: The identity's profile, or None if it does not exist
        admin_uid: Configured administrator uid
        admin_email: Configured administrator email (case-insensitive)
        now: Evaluation time; compared against accessExpiresAt
        identity_loading: Identity (or its profile) is still being resolved
        lookup_failed: Reading the profile was rejected by the store

    Returns:
        The single AccessState for these inputs
    """
    if identity_loading:
        return AccessState.LOADING

    if identity is None:
        return AccessState.NO_AUTH

    # The administrator never depends on a profile document
    if is_admin(identity, admin_uid, admin_email):
        return AccessState.ADMIN

    if lookup_failed or profile is None:
        return AccessState.REJECTED

    if profile.status == UserStatus.PENDING:
        return AccessState.PENDING

    if profile.status == UserStatus.REJECTED:
        return AccessState.REJECTED

    expires_at = profile.access_expires_at
    if expires_at is None:
        return AccessState.APPROVED

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    if now >= expires_at:
        return AccessState.EXPIRED
    return AccessState.APPROVED


class UserStatusWatcher:
    """
    Live access state for one session.

    Listens to identity changes and, for non-admin identities, to the
    identity's profile document. The profile subscription is replaced
    whenever the identity changes and is torn down by `close()`.
    """

    def __init__(
        self,
        identities: EventSource[Optional[Identity]],
        store: DocumentStore,
        *,
        admin_uid: Optional[str] = None,
        admin_email: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._identities = identities
        self._store = store
        self._admin_uid = admin_uid
        self._admin_email = admin_email
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._audit = audit_logger or AuditLogger()

        self._identity: Optional[Identity] = None
        self._identity_loading = True
        self._profile: Optional[UserProfile] = None
        self._profile_loading = False
        self._lookup_failed = False
        self._generation = 0
        self._last_state: Optional[AccessState] = None

        self._unsubscribe_identity: Optional[Unsubscribe] = None
        self._unsubscribe_profile: Optional[Unsubscribe] = None

    def start(self) -> "UserStatusWatcher":
        if self._unsubscribe_identity is None:
            self._unsubscribe_identity = self._identities.subscribe(
                self._on_identity,
                self._on_identity_error,
            )
        return self

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._profile

    @property
    def state(self) -> AccessState:
        state = resolve_access_state(
            self._identity,
            self._profile,
            admin_uid=self._admin_uid,
            admin_email=self._admin_email,
            now=self._clock(),
            identity_loading=self._identity_loading or self._profile_loading,
            lookup_failed=self._lookup_failed,
        )
        if state != self._last_state:
            if self._last_state is not None:
                self._audit.log_access_state_changed(
                    self._identity.uid if self._identity else None,
                    self._last_state.value,
                    state.value,
                )
            self._last_state = state
        return state

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def _teardown_profile(self) -> None:
        self._generation += 1
        if self._unsubscribe_profile is not None:
            self._unsubscribe_profile()
            self._unsubscribe_profile = None

    def _on_identity(self, identity: Optional[Identity]) -> None:
        self._teardown_profile()
        self._identity = identity
        self._identity_loading = False
        self._profile = None
        self._lookup_failed = False
        self._profile_loading = False

        if identity is None or is_admin(identity, self._admin_uid, self._admin_email):
            return

        generation = self._generation
        self._profile_loading = True

        def on_profile(doc: Optional[StoredDocument]) -> None:
            if generation != self._generation:
                return
            self._on_profile(doc)

        def on_profile_error(error: Exception) -> None:
            if generation != self._generation:
                return
            self._on_profile_error(error)

        self._unsubscribe_profile = self._store.watch_document(
            profile_path(identity.uid)
        ).subscribe(on_profile, on_profile_error)

    @property
    def awaiting_profile(self) -> bool:
        return self._profile_loading

    async def load_profile(self) -> None:
        """
        Read the profile once instead of waiting for the first snapshot.

        The Firestore SDK delivers listener snapshots on its own thread,
        after the page that signed the user in has already rendered. A
        direct read settles the state for the current run; later snapshots
        still replace it.
        """
        if not self._profile_loading or self._identity is None:
            return

        generation = self._generation
        try:
            doc = await self._store.get(profile_path(self._identity.uid))
        except StorageError as e:
            if generation == self._generation and self._profile_loading:
                self._on_profile_error(e)
            return

        if generation == self._generation and self._profile_loading:
            self._on_profile(doc)

    def _on_identity_error(self, error: Exception) -> None:
        logger.error("identity_stream_failed", error=str(error))
        self._on_identity(None)

    def _on_profile(self, doc: Optional[StoredDocument]) -> None:
        self._profile_loading = False
        if doc is None:
            self._profile = None
            return
        try:
            self._profile = UserProfile.from_document(doc.id, doc.data)
            self._lookup_failed = False
        except PydanticValidationError as e:
            logger.error("profile_document_invalid", uid=doc.id, error=str(e))
            self._profile = None
            self._lookup_failed = True

    def _on_profile_error(self, error: Exception) -> None:
        logger.error(
            "profile_lookup_failed",
            uid=self._identity.uid if self._identity else None,
            error=str(error),
        )
        self._profile_loading = False
        self._profile = None
        self._lookup_failed = True

    def close(self) -> None:
        """Stop listening to identity and profile changes."""
        self._teardown_profile()
        if self._unsubscribe_identity is not None:
            self._unsubscribe_identity()
            self._unsubscribe_identity = None
