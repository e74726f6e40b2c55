"""add ledger_documents and ledger_clock_probes tables

Revision ID: add_ledger_documents_table
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = 'add_ledger_documents_table'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """ledger tables: versioned documents + server clock probes"""
    op.create_table(
        'ledger_documents',
        sa.Column('path', sa.String(512), primary_key=True, comment='Logical document path'),
        sa.Column('data', sa.JSON, nullable=False),
        sa.Column('version', sa.Integer, nullable=False, server_default='1', comment='Optimistic concurrency version'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Prefix scans per game / user
    op.create_index(
        'ix_ledger_documents_path_prefix',
        'ledger_documents',
        ['path'],
        postgresql_ops={'path': 'varchar_pattern_ops'},
    )

    op.create_table(
        'ledger_clock_probes',
        sa.Column('id', sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    """drop ledger tables"""
    op.drop_table('ledger_clock_probes')
    op.drop_index('ix_ledger_documents_path_prefix')
    op.drop_table('ledger_documents')
