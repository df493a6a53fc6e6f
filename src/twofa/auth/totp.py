"""TOTP (Time-based One-Time Password, RFC 6238) management for 2FA.

Secrets are generated here and encoded with our Base32 codec; per-step codes
come from pyotp's HOTP so the truncation matches RFC 4226 exactly.
"""

from __future__ import annotations

import hashlib
import logging
import math
import re
import secrets as _secrets
import time
from collections.abc import Callable
from datetime import datetime, timezone
from urllib.parse import quote

import pyotp
from pyotp.utils import strings_equal

from twofa.auth import base32
from twofa.config import HashAlgorithm, Settings
from twofa.errors import FormatError, InvalidArgument

logger = logging.getLogger(__name__)

DEFAULT_SECRET_BYTES = 20
DEFAULT_DIGITS = 6
DEFAULT_PERIOD = 30
DEFAULT_DRIFT = 1

_DIGESTS = {
    HashAlgorithm.SHA1: hashlib.sha1,
    HashAlgorithm.SHA256: hashlib.sha256,
    HashAlgorithm.SHA512: hashlib.sha512,
}
_CODE_SEPARATORS = re.compile(r"[\s\-]+")

Timestamp = datetime | float | int


def generate_secret(byte_length: int = DEFAULT_SECRET_BYTES) -> str:
    """Generate a new TOTP secret (base32-encoded, 32 chars for 20 bytes)."""
    if byte_length <= 0:
        raise InvalidArgument("Secret length must be positive.")
    return base32.encode(_secrets.token_bytes(byte_length))


def build_provisioning_uri(
    issuer: str,
    account_name: str,
    secret: str,
    digits: int = DEFAULT_DIGITS,
    period_seconds: int = DEFAULT_PERIOD,
    algorithm: HashAlgorithm = HashAlgorithm.SHA1,
) -> str:
    """Get the otpauth:// URI for QR code enrollment."""
    if not issuer or not issuer.strip():
        raise InvalidArgument("Issuer is required.")
    if not account_name or not account_name.strip():
        raise InvalidArgument("Account name is required.")
    if not secret or not secret.strip():
        raise InvalidArgument("Secret is required.")

    label = quote(f"{issuer}:{account_name}", safe="")
    uri = (
        f"otpauth://totp/{label}?secret={secret}&issuer={quote(issuer, safe='')}"
        f"&digits={digits}&period={period_seconds}"
    )
    if algorithm is not HashAlgorithm.SHA1:
        uri += f"&algorithm={algorithm.value}"
    return uri


def compute_code(
    key: bytes,
    counter: int,
    digits: int = DEFAULT_DIGITS,
    algorithm: HashAlgorithm = HashAlgorithm.SHA1,
) -> str:
    """HOTP value for one counter, zero-padded to ``digits``."""
    if not 1 <= digits <= 10:
        raise InvalidArgument("Digits must be between 1 and 10.")
    if counter < 0:
        raise InvalidArgument("Counter must not be negative.")
    # pyotp takes its key as Base32 text; hand it the canonical encoding
    hotp = pyotp.HOTP(base32.encode(key), digits=digits, digest=_DIGESTS[HashAlgorithm(algorithm)])
    return hotp.at(counter)


def time_step(now: Timestamp | None = None, period_seconds: int = DEFAULT_PERIOD) -> int:
    """Counter for the period containing ``now`` (naive datetimes are UTC)."""
    if period_seconds <= 0:
        raise InvalidArgument("Period must be positive.")
    if now is None:
        seconds = time.time()
    elif isinstance(now, datetime):
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        seconds = now.timestamp()
    else:
        seconds = now
    return math.floor(seconds) // period_seconds


def current_code(
    secret: str,
    now: Timestamp | None = None,
    digits: int = DEFAULT_DIGITS,
    period_seconds: int = DEFAULT_PERIOD,
    algorithm: HashAlgorithm = HashAlgorithm.SHA1,
) -> str:
    """Get the TOTP code for a secret at ``now`` (default: current time)."""
    key = base32.decode(secret)
    if not key:
        raise FormatError("Secret is empty.")
    return compute_code(key, time_step(now, period_seconds), digits, algorithm)


def _normalize_code(code: str, digits: int) -> str | None:
    cleaned = _CODE_SEPARATORS.sub("", code)
    if len(cleaned) != digits or not (cleaned.isascii() and cleaned.isdigit()):
        return None
    return cleaned


def validate_code(
    secret: str | None,
    code: str | None,
    now: Timestamp | None = None,
    drift_steps: int = DEFAULT_DRIFT,
    digits: int = DEFAULT_DIGITS,
    period_seconds: int = DEFAULT_PERIOD,
    algorithm: HashAlgorithm = HashAlgorithm.SHA1,
) -> bool:
    """Verify a user-supplied code against a secret, allowing +-drift_steps periods.

    Malformed input resolves to False, as does a digit count outside 1-10
    (no code of that width can be produced). Only a non-positive period raises.
    """
    if not secret or not secret.strip() or not code or not code.strip():
        return False
    if period_seconds <= 0:
        raise InvalidArgument("Period must be positive.")
    if not 1 <= digits <= 10:
        return False

    normalized = _normalize_code(code, digits)
    if normalized is None:
        return False

    try:
        key = base32.decode(secret)
    except FormatError:
        return False
    if not key:
        return False

    step = time_step(now, period_seconds)
    for drift in range(-drift_steps, drift_steps + 1):
        counter = step + drift
        if counter < 0:
            continue
        if strings_equal(compute_code(key, counter, digits, algorithm), normalized):
            return True
    return False


class TotpEngine:
    """TOTP operations bound to one issuer and parameter set."""

    def __init__(
        self,
        issuer: str = "Jellyfin",
        secret_bytes: int = DEFAULT_SECRET_BYTES,
        digits: int = DEFAULT_DIGITS,
        period_seconds: int = DEFAULT_PERIOD,
        drift_steps: int = DEFAULT_DRIFT,
        algorithm: HashAlgorithm = HashAlgorithm.SHA1,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if period_seconds <= 0:
            raise InvalidArgument("Period must be positive.")
        self.issuer = issuer
        self.secret_bytes = secret_bytes
        self.digits = digits
        self.period_seconds = period_seconds
        self.drift_steps = drift_steps
        self.algorithm = HashAlgorithm(algorithm)
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> TotpEngine:
        return cls(
            issuer=settings.totp_issuer,
            secret_bytes=settings.secret_bytes,
            digits=settings.digits,
            period_seconds=settings.period_seconds,
            drift_steps=settings.drift_steps,
            algorithm=settings.algorithm,
        )

    def generate_secret(self) -> str:
        return generate_secret(self.secret_bytes)

    def provisioning_uri(self, account_name: str, secret: str) -> str:
        return build_provisioning_uri(
            self.issuer, account_name, secret, self.digits, self.period_seconds, self.algorithm
        )

    def validate(self, secret: str | None, code: str | None, now: Timestamp | None = None) -> bool:
        return validate_code(
            secret,
            code,
            now=self.clock() if now is None else now,
            drift_steps=self.drift_steps,
            digits=self.digits,
            period_seconds=self.period_seconds,
            algorithm=self.algorithm,
        )

    def current_code(self, secret: str, now: Timestamp | None = None) -> str:
        if now is None:
            now = self.clock()
        return current_code(secret, now, self.digits, self.period_seconds, self.algorithm)
