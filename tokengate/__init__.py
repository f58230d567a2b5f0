"""Token-gated account actions (password reset, email verification)."""

__version__ = "0.1.0"
