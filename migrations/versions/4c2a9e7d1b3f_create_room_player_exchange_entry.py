"""create room, player and exchange_entry tables

Revision ID: 4c2a9e7d1b3f
Revises:
Create Date: 2026-10-17 10:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2a9e7d1b3f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'room',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('host_session_id', sa.String(length=64), nullable=False),
        sa.Column('max_guesses', sa.Integer(), nullable=False),
        sa.Column('max_questions', sa.Integer(), nullable=False),
        sa.Column('max_rounds', sa.Integer(), nullable=False),
        sa.Column('current_round', sa.Integer(), nullable=False),
        sa.Column('current_chooser_index', sa.Integer(), nullable=False),
        sa.Column('current_turn_index', sa.Integer(), nullable=False),
        sa.Column('current_answer', sa.String(length=120), nullable=True),
        sa.Column('revealed_answer', sa.String(length=120), nullable=True),
        sa.Column('game_number', sa.Integer(), nullable=False),
        sa.Column('round_history', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('room') as batch_op:
        batch_op.create_index(batch_op.f('ix_room_code'), ['code'], unique=True)

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('session_id', sa.String(length=64), nullable=False),
        sa.Column('is_host', sa.Boolean(), nullable=False),
        sa.Column('player_order', sa.Integer(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('guesses_left', sa.Integer(), nullable=False),
        sa.Column('questions_left', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['room_id'], ['room.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'session_id', name='uq_player_room_session'),
    )
    with op.batch_alter_table('player') as batch_op:
        batch_op.create_index(batch_op.f('ix_player_room_id'), ['room_id'], unique=False)

    op.create_table(
        'exchange_entry',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('game_number', sa.Integer(), nullable=False),
        sa.Column('round', sa.Integer(), nullable=False),
        sa.Column('author_player_id', sa.Integer(), nullable=False),
        sa.Column('author_name', sa.String(length=50), nullable=False),
        sa.Column('text', sa.String(length=500), nullable=False),
        sa.Column('is_guess', sa.Boolean(), nullable=False),
        sa.Column('answer', sa.String(length=120), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['room_id'], ['room.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('exchange_entry') as batch_op:
        batch_op.create_index(batch_op.f('ix_exchange_entry_room_id'), ['room_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_exchange_entry_author_player_id'), ['author_player_id'], unique=False)


def downgrade():
    with op.batch_alter_table('exchange_entry') as batch_op:
        batch_op.drop_index(batch_op.f('ix_exchange_entry_author_player_id'))
        batch_op.drop_index(batch_op.f('ix_exchange_entry_room_id'))
    op.drop_table('exchange_entry')

    with op.batch_alter_table('player') as batch_op:
        batch_op.drop_index(batch_op.f('ix_player_room_id'))
    op.drop_table('player')

    with op.batch_alter_table('room') as batch_op:
        batch_op.drop_index(batch_op.f('ix_room_code'))
    op.drop_table('room')
