"""
Persistence adapters.

These modules encapsulate how users and action tokens are stored/retrieved.
Services depend on these repositories instead of touching SQLAlchemy sessions.
"""
