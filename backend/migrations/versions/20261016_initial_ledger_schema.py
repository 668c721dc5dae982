"""Initial ledger schema: entities, documents, sequence counters, movements, projections

Revision ID: 20261016_initial
Revises:
Create Date: 2026-10-16

This migration adds:
1. tracked_entities (stock items, customers, suppliers, bank accounts)
2. documents and document_lines (draft/posted/voided business documents)
3. sequence_counters (per-kind document numbers)
4. ledger_movements (append-only signed deltas)
5. balance_projections (current balance per entity and location)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261016_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. TRACKED ENTITIES
    # ==========================================================================
    op.create_table('tracked_entities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('ref', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('entity_type', 'ref', name='uq_tracked_entities_type_ref'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_tracked_entities_entity_type', 'tracked_entities', ['entity_type'])

    # ==========================================================================
    # 2. DOCUMENTS + LINES
    # ==========================================================================
    op.create_table('documents',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('document_number', sa.String(length=64), nullable=True),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('counterparty_ref', sa.String(length=64), nullable=True),
        sa.Column('location', sa.String(length=64), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('total_amount_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('attributes', sa.JSON(), nullable=False),
        sa.Column('idempotency_key', sa.String(length=128), nullable=True),
        sa.Column('reversal_of_id', sa.String(length=36), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('posted_by', sa.String(length=128), nullable=True),
        sa.Column('posted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_by', sa.String(length=128), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['reversal_of_id'], ['documents.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_number', name='uq_documents_number'),
        sa.UniqueConstraint('idempotency_key', name='uq_documents_idempotency_key'),
    )
    op.create_index('ix_documents_kind', 'documents', ['kind'])
    op.create_index('ix_documents_status', 'documents', ['status'])
    op.create_index('ix_documents_counterparty_ref', 'documents', ['counterparty_ref'])
    op.create_index('ix_documents_occurred_at', 'documents', ['occurred_at'])
    op.create_index('ix_documents_reversal_of_id', 'documents', ['reversal_of_id'])
    op.create_index('ix_documents_kind_status_occurred', 'documents', ['kind', 'status', 'occurred_at'])

    op.create_table('document_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_id', sa.String(length=36), nullable=False),
        sa.Column('line_no', sa.Integer(), nullable=False),
        sa.Column('tracked_entity_ref', sa.String(length=64), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('amount_cents', sa.BigInteger(), nullable=True),
        sa.Column('unit_price_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('net_amount_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['document_id'], ['documents.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_id', 'line_no', name='uq_document_lines_doc_line'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_document_lines_document_id', 'document_lines', ['document_id'])

    # ==========================================================================
    # 3. SEQUENCE COUNTERS
    # ==========================================================================
    op.create_table('sequence_counters',
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('prefix', sa.String(length=16), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('kind'),
    )

    # ==========================================================================
    # 4. LEDGER MOVEMENTS (append-only)
    # ==========================================================================
    op.create_table('ledger_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tracked_entity_id', sa.Integer(), nullable=False),
        sa.Column('location', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('delta', sa.BigInteger(), nullable=False),
        sa.Column('document_id', sa.String(length=36), nullable=False),
        sa.Column('document_kind', sa.String(length=32), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('posted_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['tracked_entity_id'], ['tracked_entities.id']),
        sa.ForeignKeyConstraint(['document_id'], ['documents.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_ledger_movements_entity_location', 'ledger_movements', ['tracked_entity_id', 'location'])
    op.create_index('ix_ledger_movements_posted', 'ledger_movements', ['posted_at', 'id'])
    op.create_index('ix_ledger_movements_document_id', 'ledger_movements', ['document_id'])

    # ==========================================================================
    # 5. BALANCE PROJECTIONS
    # ==========================================================================
    op.create_table('balance_projections',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tracked_entity_id', sa.Integer(), nullable=False),
        sa.Column('location', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('current_balance', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('last_updated', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['tracked_entity_id'], ['tracked_entities.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tracked_entity_id', 'location', name='uq_balance_projections_entity_location'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_balance_projections_tracked_entity_id', 'balance_projections', ['tracked_entity_id'])


def downgrade():
    op.drop_index('ix_balance_projections_tracked_entity_id', table_name='balance_projections')
    op.drop_table('balance_projections')

    op.drop_index('ix_ledger_movements_document_id', table_name='ledger_movements')
    op.drop_index('ix_ledger_movements_posted', table_name='ledger_movements')
    op.drop_index('ix_ledger_movements_entity_location', table_name='ledger_movements')
    op.drop_table('ledger_movements')

    op.drop_table('sequence_counters')

    op.drop_index('ix_document_lines_document_id', table_name='document_lines')
    op.drop_table('document_lines')

    op.drop_index('ix_documents_kind_status_occurred', table_name='documents')
    op.drop_index('ix_documents_reversal_of_id', table_name='documents')
    op.drop_index('ix_documents_occurred_at', table_name='documents')
    op.drop_index('ix_documents_counterparty_ref', table_name='documents')
    op.drop_index('ix_documents_status', table_name='documents')
    op.drop_index('ix_documents_kind', table_name='documents')
    op.drop_table('documents')

    op.drop_index('ix_tracked_entities_entity_type', table_name='tracked_entities')
    op.drop_table('tracked_entities')
