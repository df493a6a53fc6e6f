"""twofa CLI — unified entry point.

Usage:
    python -m twofa status            # Settings summary
    python -m twofa accounts          # List enrollment records
    python -m twofa show ACCOUNT      # Show one account's 2FA state
    python -m twofa disable ACCOUNT   # Reset an account's 2FA
    python -m twofa code SECRET       # Current code for a secret
    python -m twofa uri NAME SECRET   # Provisioning URI
    python -m twofa server            # Start the API (FastAPI on port 8096)
"""

from twofa.cli import main

if __name__ == "__main__":
    main()
