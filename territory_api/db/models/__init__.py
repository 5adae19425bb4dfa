"""
ORM models for accounts, sessions, territories, images, layers and user
configuration.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .users import (  # noqa: F401
    User,
    Session,
    PasswordResetToken,
)
from .territories import (  # noqa: F401
    TerritoryData,
    TerritoryImage,
    TerritoryLayer,
)
from .config import (  # noqa: F401
    UserConfig,
)
