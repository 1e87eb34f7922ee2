"""create user and match tables

Revision ID: 3c7a9d21e4b0
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c7a9d21e4b0'
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
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
            sa.Column('played', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('won', sa.Integer(), nullable=False, server_default='0'),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)

    if 'matches' not in existing_tables:
        op.create_table(
            'matches',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('kind', sa.String(length=16), nullable=False),
            sa.Column('state', sa.String(length=16), nullable=False),
            sa.Column('player1_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('player2_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('score1', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('score2', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('winner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        )
        op.create_index('ix_matches_state', 'matches', ['state'])
        op.create_index('ix_matches_player1_id', 'matches', ['player1_id'])
        op.create_index('ix_matches_player2_id', 'matches', ['player2_id'])


def downgrade():
    op.drop_index('ix_matches_player2_id', table_name='matches')
    op.drop_index('ix_matches_player1_id', table_name='matches')
    op.drop_index('ix_matches_state', table_name='matches')
    op.drop_table('matches')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
