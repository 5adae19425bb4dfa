"""
Repository layer for data access.

Repositories encapsulate SQLAlchemy queries for each area: users and
password reset tokens, sessions, territories (GPX data, images, layers)
and user configuration.
"""
