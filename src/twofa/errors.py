"""Exception types shared across the codec, engine and store."""

from __future__ import annotations


class InvalidArgument(ValueError):
    """A caller passed a value that violates the function contract."""


class FormatError(ValueError):
    """Text is not valid Base32."""


class PersistenceError(OSError):
    """The enrollment document could not be read or written."""


class EnrollmentDisabled(RuntimeError):
    """Self-service enrollment is turned off."""
