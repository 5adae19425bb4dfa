"""Initial schema.

- users
- sessions
- passwordResetTokens
- territories (one GPX document per user)
- images
- layers
- userConfigs
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import mysql

# revision identifiers, used by Alembic.
revision: str = "3c1d2e4f5a60"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("createdAt", sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.Column("updatedAt", sa.DateTime(), server_default=sa.func.now(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("emailVerified", sa.DateTime(), nullable=True),
        sa.Column("password", sa.String(255), nullable=True),
        sa.Column("disabled", sa.Boolean(), server_default="0", nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "sessions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("userId", sa.String(36), nullable=False),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("expiresAt", sa.DateTime(), nullable=False),
        sa.Column("createdAt", sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_sessions"),
        sa.ForeignKeyConstraint(["userId"], ["users.id"], name="fk_sessions_userId_users", ondelete="CASCADE"),
    )
    op.create_index("ix_sessions_userId", "sessions", ["userId"])
    op.create_index("ix_sessions_expiresAt", "sessions", ["expiresAt"])

    op.create_table(
        "passwordResetTokens",
        sa.Column("token", sa.String(500), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("expiresAt", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("token", name="pk_passwordResetTokens"),
    )

    op.create_table(
        "territories",
        sa.Column("userId", sa.String(36), nullable=False),
        sa.Column("data", sa.Text().with_variant(mysql.LONGTEXT(), "mysql"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("userId", name="pk_territories"),
        sa.ForeignKeyConstraint(["userId"], ["users.id"], name="fk_territories_userId_users", ondelete="CASCADE"),
    )

    op.create_table(
        "images",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("userId", sa.String(36), nullable=False),
        sa.Column("territoryNumber", sa.String(50), nullable=False),
        sa.Column("imageType", sa.String(20), nullable=False),
        sa.Column("fileName", sa.String(255), nullable=False),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("bbox", sa.Text(), nullable=True),
        sa.Column("rotation", sa.Float(), nullable=True),
        sa.Column("cropData", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_images"),
        sa.ForeignKeyConstraint(["userId"], ["users.id"], name="fk_images_userId_users", ondelete="CASCADE"),
        sa.UniqueConstraint("userId", "territoryNumber", "imageType", name="uq_images_user_territory_type"),
    )
    op.create_index("ix_images_userId", "images", ["userId"])

    op.create_table(
        "layers",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("userId", sa.String(36), nullable=False),
        sa.Column("territoryNumber", sa.String(50), nullable=False),
        sa.Column("imageType", sa.String(20), nullable=False),
        sa.Column("visible", sa.Boolean(), server_default="1", nullable=False),
        sa.Column("locked", sa.Boolean(), server_default="0", nullable=False),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("style", sa.Text(), nullable=False),
        sa.Column("layerType", sa.String(20), nullable=False),
        sa.Column("layerData", sa.Text(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_layers"),
        sa.ForeignKeyConstraint(["userId"], ["users.id"], name="fk_layers_userId_users", ondelete="CASCADE"),
    )
    op.create_index("ix_layers_userId", "layers", ["userId"])

    op.create_table(
        "userConfigs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("userId", sa.String(36), nullable=False),
        sa.Column("ppp", sa.Integer(), server_default="250", nullable=False),
        sa.Column("ratioX", sa.Numeric(10, 6), server_default="1.618000", nullable=False),
        sa.Column("ratioY", sa.Numeric(10, 6), server_default="1.000000", nullable=False),
        sa.Column("largeRatioX", sa.Numeric(10, 6), server_default="1.000000", nullable=False),
        sa.Column("largeRatioY", sa.Numeric(10, 6), server_default="1.618000", nullable=False),
        sa.Column("largeFactor", sa.Numeric(5, 3), server_default="0.200", nullable=False),
        sa.Column("contourColor", sa.String(50), server_default="red", nullable=False),
        sa.Column("contourWidth", sa.Integer(), server_default="8", nullable=False),
        sa.Column("thumbnailWidth", sa.Integer(), server_default="500", nullable=False),
        sa.Column("palette", sa.Text(), nullable=False),
        sa.Column("networkRetries", sa.Integer(), server_default="3", nullable=False),
        sa.Column("networkDelay", sa.Integer(), server_default="1000", nullable=False),
        sa.Column("ignApiRateLimit", sa.Integer(), server_default="40", nullable=False),
        sa.Column("ignApiBaseUrl", sa.String(255), server_default="https://data.geopf.fr/wms-r", nullable=False),
        sa.Column("ignApiLayer", sa.String(255), server_default="GEOGRAPHICALGRIDSYSTEMS.PLANIGNV2", nullable=False),
        sa.Column("ignApiFormat", sa.String(50), server_default="image/png", nullable=False),
        sa.Column("ignApiCRS", sa.String(50), server_default="EPSG:4326", nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_userConfigs"),
        sa.ForeignKeyConstraint(["userId"], ["users.id"], name="fk_userConfigs_userId_users", ondelete="CASCADE"),
        sa.UniqueConstraint("userId", name="uq_userConfigs_userId"),
    )


def downgrade() -> None:
    op.drop_table("userConfigs")
    op.drop_index("ix_layers_userId", table_name="layers")
    op.drop_table("layers")
    op.drop_index("ix_images_userId", table_name="images")
    op.drop_table("images")
    op.drop_table("territories")
    op.drop_table("passwordResetTokens")
    op.drop_index("ix_sessions_expiresAt", table_name="sessions")
    op.drop_index("ix_sessions_userId", table_name="sessions")
    op.drop_table("sessions")
    op.drop_table("users")
