"""Document store table.

One row per document path; ``collection`` / ``collection_id`` back
subcollection listing and collection-group queries.

Revision ID: 001_documents
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_documents"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS documents (
            path VARCHAR(1024) PRIMARY KEY,
            collection VARCHAR(1024) NOT NULL,
            collection_id VARCHAR(255) NOT NULL,
            doc_id VARCHAR(512) NOT NULL,
            data JSONB NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_documents_collection_updated
        ON documents(collection, updated_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_documents_collection_id
        ON documents(collection_id)
    """)
    # Participation lookups by walk (collection group "walks")
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_documents_walk_id
        ON documents((data->>'walkId'))
        WHERE collection_id = 'walks'
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS documents")
