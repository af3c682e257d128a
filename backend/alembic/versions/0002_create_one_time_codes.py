"""Create one_time_codes table for passwordless login.

At most one unconsumed code may exist per email, enforced by a partial
unique index.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "one_time_codes",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=6), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_one_time_codes_email", "one_time_codes", ["email"])
    op.create_index("ix_one_time_codes_expires_at", "one_time_codes", ["expires_at"])
    op.create_index(
        "ix_one_time_codes_lookup", "one_time_codes", ["email", "consumed", "expires_at"]
    )
    op.create_index(
        "uq_one_time_codes_active_email",
        "one_time_codes",
        ["email"],
        unique=True,
        postgresql_where=sa.text("consumed = false"),
        sqlite_where=sa.text("consumed = 0"),
    )


def downgrade() -> None:
    op.drop_index("uq_one_time_codes_active_email", table_name="one_time_codes")
    op.drop_index("ix_one_time_codes_lookup", table_name="one_time_codes")
    op.drop_index("ix_one_time_codes_expires_at", table_name="one_time_codes")
    op.drop_index("ix_one_time_codes_email", table_name="one_time_codes")
    op.drop_table("one_time_codes")
