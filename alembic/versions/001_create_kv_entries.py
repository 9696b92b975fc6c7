"""create kv_entries

Revision ID: 001
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        'kv_entries',
        sa.Column('key', sa.String(length=255), primary_key=True),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
    )
    op.create_index('idx_kv_entries_updated_at', 'kv_entries', ['updated_at'])

def downgrade() -> None:
    op.drop_index('idx_kv_entries_updated_at', table_name='kv_entries')
    op.drop_table('kv_entries')
