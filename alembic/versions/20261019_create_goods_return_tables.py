"""Create goods return tables.

Revision ID: create_goods_return_tables
Revises:
Create Date: 2026-10-19

Tables:
- companies
- inventory_items (with running goods-return totals and stock_version)
- document_sequences (per company, per document type, per business day)
- goods_returns
- stock_movements
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = 'create_goods_return_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create goods return tables."""

    op.create_table(
        'companies',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(300), nullable=False),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_companies_code', 'companies', ['code'], unique=True)

    op.create_table(
        'inventory_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('company_id', UUID(as_uuid=True), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('item_code', sa.String(50), nullable=False),
        sa.Column('item_name', sa.String(300), nullable=False),
        sa.Column('item_description', sa.Text, nullable=True),
        sa.Column('unit', sa.String(20), nullable=True, server_default='pcs'),
        sa.Column('cost_price', sa.Float, nullable=True),
        sa.Column('current_stock', sa.Integer, nullable=False, server_default='0'),
        sa.Column('available_stock', sa.Integer, nullable=False, server_default='0'),
        sa.Column('reserved_stock', sa.Integer, nullable=False, server_default='0'),
        sa.Column('damaged_stock', sa.Integer, nullable=False, server_default='0'),
        sa.Column('average_cost', sa.Float, nullable=True, server_default='0'),
        sa.Column('total_value', sa.Float, nullable=True, server_default='0'),
        sa.Column('returns_damaged_active', sa.Integer, nullable=False, server_default='0'),
        sa.Column('returns_returned_active', sa.Integer, nullable=False, server_default='0'),
        sa.Column('stock_version', sa.Integer, nullable=False, server_default='0'),
        sa.Column('batch_number', sa.String(50), nullable=True),
        sa.Column('lot_number', sa.String(50), nullable=True),
        sa.Column('manufacturing_date', sa.Date, nullable=True),
        sa.Column('expiry_date', sa.Date, nullable=True),
        sa.Column('last_stock_update', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('company_id', 'item_code', name='uq_inventory_item_company_code'),
        sa.CheckConstraint('current_stock >= 0', name='ck_inventory_item_current_stock_non_negative'),
    )
    op.create_index('ix_inventory_items_company_id', 'inventory_items', ['company_id'])
    op.create_index('ix_inventory_items_item_code', 'inventory_items', ['item_code'])

    op.create_table(
        'document_sequences',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('company_id', UUID(as_uuid=True), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('document_type', sa.String(10), nullable=False),
        sa.Column('company_code', sa.String(20), nullable=False, server_default='COMP'),
        sa.Column('sequence_date', sa.Date, nullable=False),
        sa.Column('current_number', sa.Integer, nullable=False, server_default='0'),
        sa.Column('padding_length', sa.Integer, nullable=False, server_default='4'),
        sa.Column('separator', sa.String(5), nullable=False, server_default='-'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint(
            'company_id', 'document_type', 'sequence_date',
            name='uq_document_sequence_company_type_date'
        ),
    )
    op.create_index('ix_document_sequences_company_id', 'document_sequences', ['company_id'])

    op.create_table(
        'goods_returns',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('company_id', UUID(as_uuid=True), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('return_number', sa.String(50), nullable=False),
        sa.Column('return_date', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('inventory_item_id', UUID(as_uuid=True), sa.ForeignKey('inventory_items.id'), nullable=False),
        sa.Column('item_code', sa.String(50), nullable=False),
        sa.Column('item_name', sa.String(300), nullable=False),
        sa.Column('item_description', sa.Text, nullable=True),
        sa.Column('original_challan_number', sa.String(100), nullable=False),
        sa.Column('original_challan_date', sa.Date, nullable=True),
        sa.Column('damaged_quantity', sa.Integer, nullable=False, server_default='0'),
        sa.Column('returned_quantity', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_quantity', sa.Integer, nullable=False),
        sa.Column('unit', sa.String(20), nullable=False, server_default='pcs'),
        sa.Column('return_reason', sa.String(30), nullable=False,
                  comment='damaged, defective, quality_issue, wrong_item, expired, other'),
        sa.Column('return_reason_details', sa.Text, nullable=True),
        sa.Column('warehouse_id', UUID(as_uuid=True), nullable=True),
        sa.Column('warehouse_name', sa.String(200), nullable=True),
        sa.Column('zone', sa.String(50), nullable=True),
        sa.Column('rack', sa.String(50), nullable=True),
        sa.Column('bin', sa.String(50), nullable=True),
        sa.Column('inventory_stock_before', sa.Integer, nullable=False),
        sa.Column('inventory_stock_after', sa.Integer, nullable=False),
        sa.Column('damaged_stock_before', sa.Integer, nullable=False, server_default='0'),
        sa.Column('damaged_stock_after', sa.Integer, nullable=False),
        sa.Column('returned_stock_before', sa.Integer, nullable=False, server_default='0'),
        sa.Column('returned_stock_after', sa.Integer, nullable=False),
        sa.Column('unit_cost', sa.Float, nullable=True, server_default='0'),
        sa.Column('damaged_value', sa.Float, nullable=True, server_default='0'),
        sa.Column('returned_value', sa.Float, nullable=True, server_default='0'),
        sa.Column('total_value', sa.Float, nullable=True, server_default='0'),
        sa.Column('quality_grade', sa.String(20), nullable=True),
        sa.Column('defect_details', sa.Text, nullable=True),
        sa.Column('batch_number', sa.String(50), nullable=True),
        sa.Column('lot_number', sa.String(50), nullable=True),
        sa.Column('manufacturing_date', sa.Date, nullable=True),
        sa.Column('expiry_date', sa.Date, nullable=True),
        sa.Column('supplier_id', UUID(as_uuid=True), nullable=True),
        sa.Column('supplier_name', sa.String(200), nullable=True),
        sa.Column('supplier_code', sa.String(50), nullable=True),
        sa.Column('return_status', sa.String(20), nullable=False, server_default='approved',
                  comment='pending, approved, processed, rejected, cancelled'),
        sa.Column('approval_required', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('approved_by', UUID(as_uuid=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approval_notes', sa.Text, nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('tags', sa.JSON, nullable=True),
        sa.Column('created_by', UUID(as_uuid=True), nullable=False),
        sa.Column('last_modified_by', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('damaged_quantity >= 0', name='ck_goods_returns_damaged_non_negative'),
        sa.CheckConstraint('returned_quantity >= 0', name='ck_goods_returns_returned_non_negative'),
        sa.CheckConstraint('total_quantity > 0', name='ck_goods_returns_total_positive'),
    )
    op.create_index('ix_goods_returns_return_number', 'goods_returns', ['return_number'], unique=True)
    op.create_index('ix_goods_returns_company_id', 'goods_returns', ['company_id'])
    op.create_index('ix_goods_returns_inventory_item_id', 'goods_returns', ['inventory_item_id'])
    op.create_index('ix_goods_returns_item_code', 'goods_returns', ['item_code'])
    op.create_index('ix_goods_returns_original_challan_number', 'goods_returns', ['original_challan_number'])
    op.create_index('ix_goods_returns_return_reason', 'goods_returns', ['return_reason'])
    op.create_index('ix_goods_returns_return_status', 'goods_returns', ['return_status'])
    op.create_index('ix_goods_returns_warehouse_id', 'goods_returns', ['warehouse_id'])
    op.create_index('ix_goods_returns_batch_number', 'goods_returns', ['batch_number'])
    op.create_index('ix_goods_returns_supplier_id', 'goods_returns', ['supplier_id'])
    op.create_index('ix_goods_returns_company_date', 'goods_returns', ['company_id', 'return_date'])
    op.create_index('ix_goods_returns_company_item', 'goods_returns', ['company_id', 'inventory_item_id'])
    op.create_index('ix_goods_returns_company_status', 'goods_returns', ['company_id', 'return_status'])
    op.create_index('ix_goods_returns_company_challan', 'goods_returns', ['company_id', 'original_challan_number'])
    op.create_index('ix_goods_returns_company_reason', 'goods_returns', ['company_id', 'return_reason'])

    op.create_table(
        'stock_movements',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('company_id', UUID(as_uuid=True), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('movement_number', sa.String(50), nullable=False),
        sa.Column('movement_type', sa.String(20), nullable=False, comment='inward, outward'),
        sa.Column('movement_date', sa.DateTime(timezone=True), nullable=True, server_default=sa.text('NOW()')),
        sa.Column('inventory_item_id', UUID(as_uuid=True), sa.ForeignKey('inventory_items.id'), nullable=False),
        sa.Column('item_code', sa.String(50), nullable=True),
        sa.Column('item_name', sa.String(300), nullable=True),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('unit', sa.String(20), nullable=True, server_default='pcs'),
        sa.Column('rate', sa.Float, nullable=True, server_default='0'),
        sa.Column('total_value', sa.Float, nullable=True, server_default='0'),
        sa.Column('warehouse_id', UUID(as_uuid=True), nullable=True),
        sa.Column('warehouse_name', sa.String(200), nullable=True),
        sa.Column('reference_type', sa.String(50), nullable=True),
        sa.Column('reference_id', UUID(as_uuid=True), nullable=True),
        sa.Column('reference_number', sa.String(100), nullable=True),
        sa.Column('stock_before', sa.Integer, nullable=True, server_default='0'),
        sa.Column('stock_after', sa.Integer, nullable=True, server_default='0'),
        sa.Column('available_before', sa.Integer, nullable=True, server_default='0'),
        sa.Column('available_after', sa.Integer, nullable=True, server_default='0'),
        sa.Column('reason', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('tags', sa.JSON, nullable=True),
        sa.Column('created_by', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_stock_movements_movement_number', 'stock_movements', ['movement_number'], unique=True)
    op.create_index('ix_stock_movements_company_id', 'stock_movements', ['company_id'])
    op.create_index('ix_stock_movements_movement_type', 'stock_movements', ['movement_type'])
    op.create_index('ix_stock_movements_inventory_item_id', 'stock_movements', ['inventory_item_id'])
    op.create_index('ix_stock_movements_reference_type', 'stock_movements', ['reference_type'])
    op.create_index('ix_stock_movements_reference_id', 'stock_movements', ['reference_id'])

    print("Created goods return tables")


def downgrade() -> None:
    """Drop goods return tables."""
    op.drop_table('stock_movements')
    op.drop_table('goods_returns')
    op.drop_table('document_sequences')
    op.drop_table('inventory_items')
    op.drop_table('companies')
