"""twofa — TOTP two-factor enrollment and verification."""

__version__ = "0.1.0"
