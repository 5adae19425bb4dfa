"""
API route modules.

This package contains subrouters for:
- Auth: register, confirm, login, logout and password reset
- Users: current user and username search
- Territories: GPX data, generated images and complete saves
- Layers: paint layers drawn over territory images
- User Config: image generation settings

Routers are included from territory_api.api.main (under API_PREFIX).
"""
