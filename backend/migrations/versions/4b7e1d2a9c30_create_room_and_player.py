"""create room and player tables

Revision ID: 4b7e1d2a9c30
Revises:
Create Date: 2026-09-28 10:12:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4b7e1d2a9c30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'room',
        sa.Column('code', sa.String(length=8), nullable=False),
        sa.Column('topic_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('order', sa.Text(), nullable=False),
        sa.Column('current_index', sa.Integer(), nullable=False),
        sa.Column('round_ends_at', sa.Float(), nullable=True),
        sa.Column('host_id', sa.String(length=64), nullable=False),
        sa.PrimaryKeyConstraint('code'),
    )
    op.create_table(
        'player',
        sa.Column('room_code', sa.String(length=8), nullable=False),
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('ranking', sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(['room_code'], ['room.code']),
        sa.PrimaryKeyConstraint('room_code', 'id'),
    )


def downgrade():
    op.drop_table('player')
    op.drop_table('room')
