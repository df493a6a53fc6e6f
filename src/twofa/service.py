"""Enrollment and login-time verification flows.

Ties the TOTP engine to the enrollment store. Every state change goes through
EnrollmentStore.update so the check and the write happen under the store lock.
The host supplies account lookup and session issuance through the protocols
below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from twofa.auth.totp import TotpEngine
from twofa.config import Settings
from twofa.errors import EnrollmentDisabled
from twofa.models import (
    ConfirmResult,
    EnrollmentRecord,
    EnrollResponse,
    LoginResult,
    VerifyResult,
)
from twofa.store import AccountId, EnrollmentStore

logger = logging.getLogger(__name__)

# Login failures share generic wording so callers cannot tell which check failed.
INVALID_CREDENTIALS = "Invalid username or password."
CODE_REQUIRED = "One-time code required."
INVALID_CODE = "Invalid one-time code."
SESSION_FAILED = "Unable to create session."


@dataclass
class DeviceInfo:
    name: str = "Web Browser - 2FA"
    device_id: str | None = None
    remote_address: str = ""


class AccountDirectory(Protocol):
    def display_name(self, account_id: str) -> str | None: ...

    def authenticate(self, username: str, password: str) -> str | None:
        """Account id for a valid username/password pair, else None."""
        ...


class SessionIssuer(Protocol):
    def issue(self, account_id: str, device: DeviceInfo) -> str | None: ...


class TwoFactorService:
    def __init__(
        self,
        store: EnrollmentStore,
        engine: TotpEngine,
        settings: Settings,
        accounts: AccountDirectory,
        sessions: SessionIssuer | None = None,
    ) -> None:
        self.store = store
        self.engine = engine
        self.settings = settings
        self.accounts = accounts
        self.sessions = sessions

    async def enroll(self, account_id: AccountId) -> EnrollResponse:
        """Start (or restart) enrollment with a fresh secret."""
        if not self.settings.allow_user_enrollment:
            raise EnrollmentDisabled("User enrollment is disabled.")

        name = self.accounts.display_name(str(account_id))
        if not name or not name.strip():
            name = self.engine.issuer
        secret = self.engine.generate_secret()
        # URI first: a failure here must leave the stored record untouched
        uri = self.engine.provisioning_uri(name, secret)

        await self.store.update(account_id, lambda _current: EnrollmentRecord(secret=secret))
        logger.info("Started 2FA enrollment for account %s", account_id)
        return EnrollResponse(secret=secret, provisioning_uri=uri)

    async def confirm(self, account_id: AccountId, code: str) -> ConfirmResult:
        """Activate the pending secret once the user proves they hold it."""

        accepted = False

        def _confirm(record: EnrollmentRecord) -> EnrollmentRecord | None:
            nonlocal accepted
            if not record.secret or not self.engine.validate(record.secret, code):
                return None
            accepted = True
            return record.model_copy(update={"confirmed": True, "enabled": True})

        await self.store.update(account_id, _confirm)
        if not accepted:
            logger.info("2FA confirmation rejected for account %s", account_id)
            return ConfirmResult.INVALID_CODE
        logger.info("2FA enabled for account %s", account_id)
        return ConfirmResult.SUCCESS

    async def verify(self, account_id: AccountId, code: str) -> VerifyResult:
        """Check a login-time code for an active account."""
        outcome = VerifyResult.NOT_ENABLED

        def _verify(record: EnrollmentRecord) -> EnrollmentRecord | None:
            nonlocal outcome
            if not record.is_active:
                outcome = VerifyResult.NOT_ENABLED
                return None
            if not self.engine.validate(record.secret, code):
                outcome = VerifyResult.INVALID_CODE
                return None
            outcome = VerifyResult.SUCCESS
            return record.model_copy(update={"last_verified_at": datetime.now(UTC)})

        await self.store.update(account_id, _verify)
        if outcome is not VerifyResult.SUCCESS:
            logger.info("2FA verification failed for account %s (%s)", account_id, outcome)
        return outcome

    async def disable(self, account_id: AccountId) -> None:
        await self.store.update(account_id, lambda _current: EnrollmentRecord())
        logger.info("2FA disabled for account %s", account_id)

    async def is_required(self, account_id: AccountId) -> bool:
        if not self.settings.enable_totp:
            return False
        record = await self.store.get(account_id)
        return record.is_active

    async def authenticate(
        self,
        username: str,
        password: str,
        otp: str | None = None,
        device: DeviceInfo | None = None,
    ) -> LoginResult:
        """Password check, then a code check when the account requires one, then a session."""
        account_id = self.accounts.authenticate(username, password)
        if account_id is None:
            return LoginResult(error_message=INVALID_CREDENTIALS)

        if await self.is_required(account_id):
            if not otp or not otp.strip():
                return LoginResult(error_message=CODE_REQUIRED)
            if await self.verify(account_id, otp) is not VerifyResult.SUCCESS:
                return LoginResult(error_message=INVALID_CODE)

        if self.sessions is None:
            return LoginResult(ok=True, account_id=account_id)
        token = self.sessions.issue(account_id, device or DeviceInfo())
        if token is None:
            return LoginResult(error_message=SESSION_FAILED)
        return LoginResult(ok=True, account_id=account_id, access_token=token)
