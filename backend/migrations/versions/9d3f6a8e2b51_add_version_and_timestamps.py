"""add version and timestamp columns to room and player

Revision ID: 9d3f6a8e2b51
Revises: 4b7e1d2a9c30
Create Date: 2026-10-02 18:40:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '9d3f6a8e2b51'
down_revision = '4b7e1d2a9c30'
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)

    room_cols = {c['name'] for c in insp.get_columns('room')}
    with op.batch_alter_table('room') as batch_op:
        if 'version' not in room_cols:
            batch_op.add_column(sa.Column('version', sa.Integer(), nullable=False, server_default='1'))
        if 'created_at' not in room_cols:
            batch_op.add_column(sa.Column('created_at', sa.Float(), nullable=False, server_default='0'))

    player_cols = {c['name'] for c in insp.get_columns('player')}
    with op.batch_alter_table('player') as batch_op:
        if 'version' not in player_cols:
            batch_op.add_column(sa.Column('version', sa.Integer(), nullable=False, server_default='1'))
        if 'joined_at' not in player_cols:
            batch_op.add_column(sa.Column('joined_at', sa.Float(), nullable=False, server_default='0'))


def downgrade():
    with op.batch_alter_table('player') as batch_op:
        batch_op.drop_column('joined_at')
        batch_op.drop_column('version')
    with op.batch_alter_table('room') as batch_op:
        batch_op.drop_column('created_at')
        batch_op.drop_column('version')
