"""
Core utilities shared across the tokengate service.

This package hosts:
- configuration helpers (env vars, TTLs, store timeouts)
- cross-cutting services such as logging, the email/mailer adapter,
  hashing helpers and the in-memory rate limiter.

Services and repositories depend on these primitives instead of reading
os.environ or importing FastAPI directly.
"""
