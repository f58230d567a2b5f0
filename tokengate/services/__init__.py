"""
High-level use cases for the tokengate service.

Service modules orchestrate repositories/adapters to implement business rules
(request a password reset, verify an e-mail, etc.). Routers call these services
instead of manipulating the database directly.
"""
