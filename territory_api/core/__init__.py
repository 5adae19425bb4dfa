"""
Core application utilities for settings, security and FastAPI dependencies.

This package provides:
- Application-level settings (separate from DB settings)
- JWT and password helpers, session cookie helpers
- Dependency helpers (authenticated user resolution)
"""
