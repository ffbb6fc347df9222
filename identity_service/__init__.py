"""Identity lifecycle service: sign-up, verification, sign-in and credentials."""

__version__ = "0.1.0"
