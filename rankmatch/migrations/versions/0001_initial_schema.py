"""Initial schema: players, matches, transactions, match histories

Revision ID: 0001_initial_schema
Revises:
Create Date: 2025-06-02 09:00:00.000000

"""
from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

from rankmatch.migrations.util import get_uuid_type

# revision identifiers, used by Alembic.
revision = '0001_initial_schema'
down_revision = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    uuid = get_uuid_type()

    op.create_table(
        'players',
        sa.Column('player_id', uuid, nullable=False),
        sa.Column('username', sa.String(80), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('elo', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rank_level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('win_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lose_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_matches', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('win_rate', sa.Float(), nullable=False, server_default='0'),
        sa.Column('gem', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('coin', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('locked_gem', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('locked_coin', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('locked_gem >= 0 AND locked_gem <= gem', name='valid_locked_gem'),
        sa.CheckConstraint('locked_coin >= 0 AND locked_coin <= coin', name='valid_locked_coin'),
        sa.CheckConstraint('elo >= 0', name='valid_elo'),
        sa.PrimaryKeyConstraint('player_id'),
        sa.UniqueConstraint('username'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'matches',
        sa.Column('match_id', uuid, nullable=False),
        sa.Column('white_id', uuid, nullable=False),
        sa.Column('black_id', uuid, nullable=True),
        sa.Column('match_type', sa.String(20), nullable=False, server_default='ranked'),
        sa.Column('status', sa.String(20), nullable=False, server_default='waiting'),
        sa.Column('match_fee', sa.Integer(), nullable=True),
        sa.Column('currency_type', sa.String(20), nullable=True),
        sa.Column('fee_reserved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('fee_committed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('winner_id', uuid, nullable=True),
        sa.Column('white_elo_before', sa.Integer(), nullable=True),
        sa.Column('white_elo_after', sa.Integer(), nullable=True),
        sa.Column('black_elo_before', sa.Integer(), nullable=True),
        sa.Column('black_elo_after', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('waiting', 'ongoing', 'completed', 'win', 'lose', 'draw')",
            name='valid_match_status',
        ),
        sa.CheckConstraint("match_type IN ('ranked', 'casual')", name='valid_match_type'),
        sa.CheckConstraint('match_fee IS NULL OR match_fee > 0', name='valid_match_fee'),
        sa.CheckConstraint('NOT fee_committed OR fee_reserved', name='commit_requires_reserve'),
        sa.ForeignKeyConstraint(['white_id'], ['players.player_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['black_id'], ['players.player_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('match_id'),
    )
    op.create_index('ix_matches_white_id', 'matches', ['white_id'])
    op.create_index('ix_matches_black_id', 'matches', ['black_id'])
    op.create_index('ix_matches_status_created', 'matches', ['status', 'created_at'])

    op.create_table(
        'transactions',
        sa.Column('transaction_id', uuid, nullable=False),
        sa.Column('player_id', uuid, nullable=False),
        sa.Column('match_id', uuid, nullable=True),
        sa.Column('transaction_type', sa.String(50), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency_type', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('description', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'cancelled')",
            name='valid_transaction_status',
        ),
        sa.CheckConstraint('amount >= 0', name='valid_transaction_amount'),
        sa.ForeignKeyConstraint(['player_id'], ['players.player_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['match_id'], ['matches.match_id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('transaction_id'),
    )
    op.create_index('ix_transactions_player_id', 'transactions', ['player_id'])
    op.create_index('ix_transactions_match_id', 'transactions', ['match_id'])
    op.create_index('ix_transactions_transaction_type', 'transactions', ['transaction_type'])
    op.create_index('ix_transactions_created_at', 'transactions', ['created_at'])
    op.create_index('ix_transactions_player_created', 'transactions', ['player_id', 'created_at'])
    op.create_index(
        'ix_transactions_match_player_status',
        'transactions',
        ['match_id', 'player_id', 'status'],
    )

    op.create_table(
        'match_histories',
        sa.Column('history_id', uuid, nullable=False),
        sa.Column('match_id', uuid, nullable=False),
        sa.Column('content', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['match_id'], ['matches.match_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('history_id'),
    )
    op.create_index('ix_match_histories_match_id', 'match_histories', ['match_id'])


def downgrade() -> None:
    op.drop_index('ix_match_histories_match_id', table_name='match_histories')
    op.drop_table('match_histories')

    op.drop_index('ix_transactions_match_player_status', table_name='transactions')
    op.drop_index('ix_transactions_player_created', table_name='transactions')
    op.drop_index('ix_transactions_created_at', table_name='transactions')
    op.drop_index('ix_transactions_transaction_type', table_name='transactions')
    op.drop_index('ix_transactions_match_id', table_name='transactions')
    op.drop_index('ix_transactions_player_id', table_name='transactions')
    op.drop_table('transactions')

    op.drop_index('ix_matches_status_created', table_name='matches')
    op.drop_index('ix_matches_black_id', table_name='matches')
    op.drop_index('ix_matches_white_id', table_name='matches')
    op.drop_table('matches')

    op.drop_table('players')
