"""Shared fixtures: a service wired to a temp store and fake host collaborators."""

from __future__ import annotations

import pytest

from twofa.auth import base32
from twofa.auth.totp import TotpEngine, compute_code, time_step
from twofa.config import Settings
from twofa.service import DeviceInfo, TwoFactorService
from twofa.store import EnrollmentStore


class FakeDirectory:
    def __init__(self) -> None:
        self.users = {"alice": ("acct-alice", "hunter2", "Alice")}

    def display_name(self, account_id: str) -> str | None:
        for acct, _password, name in self.users.values():
            if acct == account_id:
                return name
        return None

    def authenticate(self, username: str, password: str) -> str | None:
        entry = self.users.get(username)
        if entry and entry[1] == password:
            return entry[0]
        return None


class FakeSessions:
    def __init__(self) -> None:
        self.issued: list[tuple[str, DeviceInfo]] = []

    def issue(self, account_id: str, device: DeviceInfo) -> str | None:
        self.issued.append((account_id, device))
        return f"token-{account_id}"


def _wrong_code(engine: TotpEngine, secret: str) -> str:
    """A well-formed code that is not valid anywhere in the current drift window."""
    key = base32.decode(secret)
    step = time_step(period_seconds=engine.period_seconds)
    window = {
        compute_code(key, step + d, engine.digits)
        for d in range(-engine.drift_steps - 1, engine.drift_steps + 2)
    }
    candidate = 0
    while f"{candidate:0{engine.digits}d}" in window:
        candidate += 1
    return f"{candidate:0{engine.digits}d}"


@pytest.fixture
def settings(tmp_path):
    return Settings(_env_file=None, config_dir=tmp_path)


@pytest.fixture
def store(settings):
    return EnrollmentStore(settings.store_path)


@pytest.fixture
def engine(settings):
    return TotpEngine.from_settings(settings)


@pytest.fixture
def sessions():
    return FakeSessions()


@pytest.fixture
def service(store, engine, settings, sessions):
    return TwoFactorService(store, engine, settings, FakeDirectory(), sessions)


@pytest.fixture
def wrong_code(engine):
    return lambda secret: _wrong_code(engine, secret)
