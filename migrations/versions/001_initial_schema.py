"""Initial schema: the document store table.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── documents ─────────────────────────────────────────────────────
    op.create_table(
        "documents",
        sa.Column("collection", sa.String(64), primary_key=True),
        sa.Column("doc_id", sa.String(64), primary_key=True),
        sa.Column(
            "data",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_documents_collection_created",
        "documents",
        ["collection", "created_at"],
    )
    # Ride history filters on these two keys inside the body.
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_documents_passenger_status "
        "ON documents ((data->>'passenger_id'), (data->>'status')) "
        "WHERE collection = 'ride_requests'"
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_documents_passenger_status")
    op.drop_index("idx_documents_collection_created", table_name="documents")
    op.drop_table("documents")
