"""
Territory Generator backend.

FastAPI service providing account management (registration, confirmation,
cookie sessions, password reset), transactional mail, and persistence and
generation of territory maps, images and paint layers.
"""
