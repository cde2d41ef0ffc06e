"""create user, cycle, countdown, vote and winner tables

Revision ID: 5a7c0e1d2b3f
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5a7c0e1d2b3f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)

    if 'cycle' not in existing_tables:
        op.create_table(
            'cycle',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('base_iso', sa.String(length=32), nullable=False),
            sa.Column('cycle_start', sa.Float(), nullable=False),
            sa.Column('period_sec', sa.Integer(), nullable=False),
            sa.Column('paused', sa.Boolean(), nullable=False),
            sa.Column('last_checkpoint', sa.Integer(), nullable=False),
            sa.Column('paused_remaining_sec', sa.Float(), nullable=True),
            sa.Column('updated_at', sa.Float(), nullable=True),
            sa.PrimaryKeyConstraint('id'),
        )

    if 'tournament_state' not in existing_tables:
        op.create_table(
            'tournament_state',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('phase_end_at', sa.Float(), nullable=False),
            sa.Column('period_sec', sa.Integer(), nullable=False),
            sa.Column('paused', sa.Boolean(), nullable=False),
            sa.Column('paused_remaining_sec', sa.Float(), nullable=True),
            sa.Column('updated_at', sa.Float(), nullable=True),
            sa.PrimaryKeyConstraint('id'),
        )

    if 'zero_rollover' not in existing_tables:
        op.create_table(
            'zero_rollover',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('phase_end_at', sa.Float(), nullable=False),
            sa.Column('rollover_at', sa.Float(), nullable=False),
            sa.Column('source', sa.String(length=32), nullable=False),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('phase_end_at'),
        )

    if 'phase_vote' not in existing_tables:
        op.create_table(
            'phase_vote',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('phase_key', sa.String(length=96), nullable=False),
            sa.Column('voter_id', sa.String(length=64), nullable=False),
            sa.Column('vote', sa.String(length=8), nullable=False),
            sa.Column('updated_at', sa.Float(), nullable=True),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('phase_key', 'voter_id', name='uq_phase_vote_voter'),
        )
        op.create_index('ix_phase_vote_phase_key', 'phase_vote', ['phase_key'], unique=False)

    if 'winner' not in existing_tables:
        op.create_table(
            'winner',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('phase_key', sa.String(length=96), nullable=False),
            sa.Column('base_iso', sa.String(length=32), nullable=False),
            sa.Column('round_num', sa.Integer(), nullable=False),
            sa.Column('color', sa.String(length=8), nullable=False),
            sa.Column('decided_at', sa.Float(), nullable=True),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_winner_phase_key', 'winner', ['phase_key'], unique=True)
        op.create_index('ix_winner_base_iso', 'winner', ['base_iso'], unique=False)


def downgrade():
    op.drop_index('ix_winner_base_iso', table_name='winner')
    op.drop_index('ix_winner_phase_key', table_name='winner')
    op.drop_table('winner')
    op.drop_index('ix_phase_vote_phase_key', table_name='phase_vote')
    op.drop_table('phase_vote')
    op.drop_table('zero_rollover')
    op.drop_table('tournament_state')
    op.drop_table('cycle')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
