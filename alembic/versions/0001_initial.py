from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'links',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('user_id', sa.String(64), index=True),
        sa.Column('dest_url', sa.Text),
        sa.Column('sanitized_dest_url', sa.Text, nullable=True),
        sa.Column('is_active', sa.Boolean, index=True),
        sa.Column('health_status', sa.String(16), index=True),
        sa.Column('health_checked_at', sa.DateTime, nullable=True),
        sa.Column('avg_redirect_time_ms', sa.Integer, nullable=True),
        sa.Column('redirect_chain_length', sa.Integer, nullable=True),
        sa.Column('created_at', sa.DateTime, index=True),
        sa.Column('updated_at', sa.DateTime),
    )
    op.create_table(
        'redirects',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('link_id', sa.String(64), sa.ForeignKey('links.id'), index=True),
        sa.Column('ts', sa.DateTime, index=True),
        sa.Column('success', sa.Boolean),
        sa.Column('in_app_browser_detected', sa.Boolean),
        sa.Column('load_time_ms', sa.Integer, nullable=True),
        sa.Column('platform', sa.String(32), nullable=True),
        sa.Column('browser', sa.String(64), nullable=True),
        sa.Column('device', sa.String(32), nullable=True),
        sa.Column('country', sa.String(8), nullable=True),
        sa.Column('user_agent', sa.Text, nullable=True),
        sa.Column('referrer', sa.Text, nullable=True),
        sa.Column('recovery_strategy_used', sa.String(32), nullable=True),
        sa.Column('final_url', sa.Text, nullable=True),
        sa.Column('drop_off_stage', sa.String(64), nullable=True),
        sa.Column('redirect_steps', sa.JSON, nullable=True),
    )
    op.create_index('ix_redirects_link_ts', 'redirects', ['link_id', 'ts'])
    op.create_index('ix_redirects_ts_tuple', 'redirects', ['ts', 'platform', 'country', 'device'])
    op.create_table(
        'recovery_attempts',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('link_id', sa.String(64), index=True),
        sa.Column('user_id', sa.String(64), index=True, nullable=True),
        sa.Column('strategy', sa.String(32), index=True),
        sa.Column('success', sa.Boolean),
        sa.Column('platform', sa.String(32), nullable=True),
        sa.Column('device', sa.String(32), nullable=True),
        sa.Column('browser', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime, index=True),
    )
    op.create_table(
        'incidents',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('platform', sa.String(32), index=True),
        sa.Column('country', sa.String(8), index=True),
        sa.Column('device', sa.String(32), index=True),
        sa.Column('error_rate', sa.Float),
        sa.Column('severity', sa.String(16), index=True),
        sa.Column('sample_size', sa.Integer),
        sa.Column('affected_users', sa.Integer),
        sa.Column('detected_at', sa.DateTime, index=True),
        sa.Column('resolved_at', sa.DateTime, nullable=True, index=True),
        sa.Column('metadata', sa.JSON, nullable=True),
    )
    op.create_index('ix_incident_tuple_open', 'incidents', ['platform', 'country', 'device', 'resolved_at'])


def downgrade():
    op.drop_index('ix_incident_tuple_open', table_name='incidents')
    op.drop_table('incidents')
    op.drop_table('recovery_attempts')
    op.drop_index('ix_redirects_ts_tuple', table_name='redirects')
    op.drop_index('ix_redirects_link_ts', table_name='redirects')
    op.drop_table('redirects')
    op.drop_table('links')
