from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession


class BaseService:
    """
    Services combine repositories, file storage and rendering for one request.

    The session is shared with every repository the service creates, so their
    writes land on the same connection.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.logger = logging.getLogger(type(self).__module__)
