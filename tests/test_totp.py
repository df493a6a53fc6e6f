"""Tests for TOTP generation and validation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, unquote, urlparse

import pyotp
import pytest

from twofa.auth import base32
from twofa.auth.totp import (
    TotpEngine,
    build_provisioning_uri,
    compute_code,
    current_code,
    generate_secret,
    time_step,
    validate_code,
)
from twofa.config import HashAlgorithm, Settings
from twofa.errors import InvalidArgument

# RFC 4226 Appendix D / RFC 6238 Appendix B shared secret
RFC_KEY = b"12345678901234567890"
RFC_SECRET = base32.encode(RFC_KEY)
RFC_HOTP = ["755224", "287082", "359152", "969429", "338314", "254676", "287922", "162583", "399871", "520489"]


# --- secrets ---

def test_generate_secret_default_length():
    secret = generate_secret()
    assert len(secret) == 32
    assert len(base32.decode(secret)) == 20


def test_generate_secret_is_random():
    assert generate_secret() != generate_secret()


@pytest.mark.parametrize("n", [0, -1])
def test_generate_secret_rejects_non_positive(n):
    with pytest.raises(InvalidArgument):
        generate_secret(n)


# --- provisioning URI ---

def test_provisioning_uri_format():
    uri = build_provisioning_uri("Jellyfin", "alice smith", "JBSWY3DPEHPK3PXP")
    assert uri == (
        "otpauth://totp/Jellyfin%3Aalice%20smith?secret=JBSWY3DPEHPK3PXP"
        "&issuer=Jellyfin&digits=6&period=30"
    )


def test_provisioning_uri_escapes_issuer():
    uri = build_provisioning_uri("My Server&Co", "bob", "JBSWY3DPEHPK3PXP", digits=8, period_seconds=60)
    query = parse_qs(urlparse(uri).query)
    assert query["issuer"] == ["My Server&Co"]
    assert query["digits"] == ["8"]
    assert query["period"] == ["60"]
    assert "algorithm" not in query


def test_provisioning_uri_names_non_default_algorithm():
    uri = build_provisioning_uri("Jellyfin", "bob", "JBSWY3DPEHPK3PXP", algorithm=HashAlgorithm.SHA256)
    assert uri.endswith("&algorithm=SHA256")


def test_provisioning_uri_accepted_by_pyotp():
    uri = build_provisioning_uri("Jellyfin", "alice", "JBSWY3DPEHPK3PXP")
    parsed = pyotp.parse_uri(uri)
    assert parsed.secret == "JBSWY3DPEHPK3PXP"
    assert parsed.issuer == "Jellyfin"
    # pyotp versions differ on whether the issuer prefix stays in the name
    assert unquote(parsed.name).endswith("alice")


@pytest.mark.parametrize(
    "issuer,name,secret",
    [("", "alice", "ABC"), ("  ", "alice", "ABC"), ("Jellyfin", "", "ABC"), ("Jellyfin", "alice", " ")],
)
def test_provisioning_uri_requires_fields(issuer, name, secret):
    with pytest.raises(InvalidArgument):
        build_provisioning_uri(issuer, name, secret)


# --- code computation ---

def test_rfc4226_hotp_vectors():
    for counter, expected in enumerate(RFC_HOTP):
        assert compute_code(RFC_KEY, counter) == expected


@pytest.mark.parametrize(
    "timestamp,expected",
    [
        (59, "94287082"),
        (1111111109, "07081804"),
        (1111111111, "14050471"),
        (1234567890, "89005924"),
        (2000000000, "69279037"),
        (20000000000, "65353130"),
    ],
)
def test_rfc6238_sha1_vectors(timestamp, expected):
    assert compute_code(RFC_KEY, time_step(timestamp), digits=8) == expected
    assert validate_code(RFC_SECRET, expected, now=timestamp, digits=8, drift_steps=0)


def test_rfc6238_sha256_and_sha512_vectors():
    key256 = b"12345678901234567890123456789012"
    key512 = b"1234567890" * 6 + b"1234"
    assert compute_code(key256, time_step(59), 8, HashAlgorithm.SHA256) == "46119246"
    assert compute_code(key512, time_step(59), 8, HashAlgorithm.SHA512) == "90693936"


def test_six_digit_codes_are_zero_padded():
    # 89005924 -> 005924 at 6 digits
    assert compute_code(RFC_KEY, time_step(1234567890)) == "005924"
    assert validate_code(RFC_SECRET, "005924", now=1234567890)


def test_compute_code_is_deterministic():
    assert compute_code(RFC_KEY, 42) == compute_code(RFC_KEY, 42)


def test_compute_code_rejects_bad_arguments():
    with pytest.raises(InvalidArgument):
        compute_code(RFC_KEY, -1)
    with pytest.raises(InvalidArgument):
        compute_code(RFC_KEY, 1, digits=0)


def test_known_secret_fixed_code():
    # counter 56803680, HMAC-SHA1 over key b"Hello!\xde\xad\xbe\xef"
    at = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    expected = "882660"
    assert current_code("JBSWY3DPEHPK3PXP", now=at) == expected
    assert validate_code("JBSWY3DPEHPK3PXP", expected, now=at)


def test_time_step_accepts_datetimes():
    aware = datetime(2009, 2, 13, 23, 31, 30, tzinfo=timezone.utc)
    naive = datetime(2009, 2, 13, 23, 31, 30)
    assert time_step(aware) == time_step(naive) == 1234567890 // 30
    assert time_step(aware.astimezone(timezone(timedelta(hours=5)))) == 1234567890 // 30


# --- validation ---

def test_validate_accepts_spaces_and_hyphens():
    assert validate_code(RFC_SECRET, "287 082", now=59)
    assert validate_code(RFC_SECRET, "287-082", now=59)


def test_validate_accepts_lowercase_secret():
    assert validate_code(RFC_SECRET.lower(), "287082", now=59)


def test_drift_window():
    now = 5 * 30 + 1  # counter 5
    # counter 3 and 7 are two steps away
    assert not validate_code(RFC_SECRET, RFC_HOTP[3], now=now, drift_steps=1)
    assert not validate_code(RFC_SECRET, RFC_HOTP[7], now=now, drift_steps=1)
    assert validate_code(RFC_SECRET, RFC_HOTP[3], now=now, drift_steps=2)
    assert validate_code(RFC_SECRET, RFC_HOTP[7], now=now, drift_steps=2)
    # adjacent steps within the default window
    assert validate_code(RFC_SECRET, RFC_HOTP[4], now=now)
    assert validate_code(RFC_SECRET, RFC_HOTP[6], now=now)
    assert not validate_code(RFC_SECRET, RFC_HOTP[4], now=now, drift_steps=0)


def test_drift_window_skips_negative_counters():
    assert validate_code(RFC_SECRET, RFC_HOTP[0], now=0, drift_steps=3)


@pytest.mark.parametrize(
    "secret,code",
    [
        ("", "287082"),
        ("   ", "287082"),
        (None, "287082"),
        (RFC_SECRET, ""),
        (RFC_SECRET, "  "),
        (RFC_SECRET, None),
        (RFC_SECRET, "28708"),
        (RFC_SECRET, "2870820"),
        (RFC_SECRET, "28708a"),
        (RFC_SECRET, "２８７０８２"),
        ("not base32!", "287082"),
        ("A", "287082"),  # decodes to zero bytes
    ],
)
def test_validate_returns_false_for_bad_input(secret, code):
    assert validate_code(secret, code, now=59) is False


def test_validate_rejects_non_positive_period():
    with pytest.raises(InvalidArgument):
        validate_code(RFC_SECRET, "287082", now=59, period_seconds=0)


@pytest.mark.parametrize("digits", [0, 11])
def test_validate_unsupported_digit_count_is_false(digits):
    assert validate_code(RFC_SECRET, "1" * max(digits, 1), now=59, digits=digits) is False


def test_validate_with_current_time():
    secret = generate_secret()
    assert validate_code(secret, current_code(secret))


# --- engine ---

def test_engine_from_settings():
    s = Settings(_env_file=None, totp_issuer="Acme", digits=8, period_seconds=60, drift_steps=2)
    engine = TotpEngine.from_settings(s)
    assert engine.issuer == "Acme"
    assert engine.digits == 8
    secret = engine.generate_secret()
    assert "digits=8&period=60" in engine.provisioning_uri("alice", secret)
    code = engine.current_code(secret, now=1_700_000_000)
    assert len(code) == 8
    assert engine.validate(secret, code, now=1_700_000_000 + 120)
    assert not engine.validate(secret, code, now=1_700_000_000 + 240)


def test_engine_rejects_non_positive_period():
    with pytest.raises(InvalidArgument):
        TotpEngine(period_seconds=0)


def test_engine_uses_its_clock_when_now_is_omitted():
    engine = TotpEngine(digits=8, drift_steps=0, clock=lambda: 1111111111)
    assert engine.current_code(RFC_SECRET) == "14050471"
    assert engine.validate(RFC_SECRET, "14050471")
    assert not engine.validate(RFC_SECRET, "07081804")
