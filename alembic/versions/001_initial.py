"""Initial migration

Revision ID: 001_initial
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Owners (identity lives with the external provider)
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # Watch entries
    op.create_table(
        'watchlist',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('player_name', sa.String(length=128), nullable=False),
        sa.Column('team', sa.String(length=64), nullable=True),
        sa.Column('position', sa.String(length=16), nullable=True),
        sa.Column('prospect_rank', sa.Integer(), nullable=True),
        sa.Column('alert_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'player_name', name='uq_watchlist_user_player'),
    )

    # Deals
    op.create_table(
        'deals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('player_name', sa.String(length=128), nullable=False),
        sa.Column('card_name', sa.Text(), nullable=False),
        sa.Column('asking_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('market_value', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('profit_potential', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('profit_percentage', sa.Float(), nullable=False),
        sa.Column('platform', sa.String(length=32), nullable=False),
        sa.Column('url', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('price_bucket', sa.Integer(), nullable=False),
        sa.Column('discovered_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'user_id', 'platform', 'card_name', 'price_bucket',
            name='uq_deal_owner_platform_card_bucket',
        ),
    )
    op.create_index('ix_deals_user_id', 'deals', ['user_id'])

    # Latest prospect scores
    op.create_table(
        'prospect_scores',
        sa.Column('mlb_id', sa.String(length=32), nullable=False),
        sa.Column('player_name', sa.String(length=128), nullable=False),
        sa.Column('team', sa.String(length=64), nullable=True),
        sa.Column('position', sa.String(length=16), nullable=True),
        sa.Column('level', sa.String(length=8), nullable=True),
        sa.Column('prospect_rank', sa.Integer(), nullable=False),
        sa.Column('ml_score', sa.Float(), nullable=False),
        sa.Column('ceiling_score', sa.Float(), nullable=False),
        sa.Column('floor_score', sa.Float(), nullable=False),
        sa.Column('risk_level', sa.String(length=8), nullable=False),
        sa.Column('composite_rank', sa.Integer(), nullable=False),
        sa.Column('age', sa.Integer(), nullable=True),
        sa.Column('eta', sa.String(length=8), nullable=True),
        sa.Column('ops', sa.Float(), nullable=False),
        sa.Column('k_percent', sa.Float(), nullable=False),
        sa.Column('bb_percent', sa.Float(), nullable=False),
        sa.Column('scored_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('mlb_id'),
    )

    # Pipeline runs
    op.create_table(
        'pipeline_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('pipeline', sa.String(length=32), nullable=False),
        sa.Column('trigger', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('summary', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pipeline_runs_pipeline', 'pipeline_runs', ['pipeline'])


def downgrade() -> None:
    op.drop_index('ix_pipeline_runs_pipeline', table_name='pipeline_runs')
    op.drop_table('pipeline_runs')
    op.drop_table('prospect_scores')
    op.drop_index('ix_deals_user_id', table_name='deals')
    op.drop_table('deals')
    op.drop_table('watchlist')
    op.drop_table('users')
