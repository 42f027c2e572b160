from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0002_link_controls'
down_revision = '0001_initial'
branch_labels = None
depends_on = None


def upgrade():
    op.add_column('links', sa.Column('active_from', sa.DateTime, nullable=True))
    op.add_column('links', sa.Column('active_until', sa.DateTime, nullable=True))
    op.add_column('links', sa.Column('max_clicks', sa.Integer, nullable=True))
    op.add_column('links', sa.Column('current_clicks', sa.Integer, nullable=False, server_default='0'))
    op.add_column('links', sa.Column('utm_source', sa.String(255), nullable=True))
    op.add_column('links', sa.Column('utm_medium', sa.String(255), nullable=True))
    op.add_column('links', sa.Column('utm_campaign', sa.String(255), nullable=True))


def downgrade():
    for column in ('utm_campaign', 'utm_medium', 'utm_source', 'current_clicks', 'max_clicks', 'active_until', 'active_from'):
        op.drop_column('links', column)
