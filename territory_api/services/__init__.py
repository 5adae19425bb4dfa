"""
Domain services: territory workflows, image rendering, file storage and mail.
"""
