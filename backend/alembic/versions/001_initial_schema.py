"""Initial schema: users, chat sessions, messages, uploads, state cache.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users (created on first OAuth sign-in)
    op.create_table(
        'auth_users',
        sa.Column('id', sa.String(50), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('image', sa.String(1024), nullable=True),
        sa.Column('tier', sa.String(20), server_default='free'),
        sa.Column('approved', sa.Boolean(), server_default='false'),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Chat sessions (id is generated by the builder)
    op.create_table(
        'chat_session',
        sa.Column('id', sa.String(100), primary_key=True),
        sa.Column('user_id', sa.String(50), sa.ForeignKey('auth_users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), server_default='draft'),
        sa.Column('current_stage', sa.Integer(), server_default='1'),
        sa.Column('first_message_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_message_at', sa.DateTime(timezone=True), nullable=True),
        # Presentation artifacts
        sa.Column('strawman_preview_url', sa.Text(), nullable=True),
        sa.Column('strawman_presentation_id', sa.String(100), nullable=True),
        sa.Column('refined_preview_url', sa.Text(), nullable=True),
        sa.Column('refined_presentation_id', sa.String(100), nullable=True),
        sa.Column('final_presentation_url', sa.Text(), nullable=True),
        sa.Column('final_presentation_id', sa.String(100), nullable=True),
        sa.Column('slide_count', sa.Integer(), nullable=True),
        sa.Column('is_favorite', sa.Boolean(), server_default='false'),
        sa.Column('gemini_store_name', sa.String(255), nullable=True),
        sa.Column('gemini_store_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
    )
    op.create_index('idx_chat_session_user_status', 'chat_session', ['user_id', 'status'])
    op.create_index('idx_chat_session_cleanup', 'chat_session', ['status', 'created_at'])

    # Chat messages (id is the client message id)
    op.create_table(
        'chat_message',
        sa.Column('id', sa.String(100), primary_key=True),
        sa.Column('session_id', sa.String(100), sa.ForeignKey('chat_session.id', ondelete='CASCADE'), nullable=False),
        sa.Column('message_type', sa.String(50), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('payload', postgresql.JSONB(), nullable=True),
        sa.Column('user_text', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_chat_message_session_time', 'chat_message', ['session_id', 'timestamp'])

    # Uploaded file metadata
    op.create_table(
        'uploaded_file',
        sa.Column('id', sa.String(50), primary_key=True),
        sa.Column('session_id', sa.String(100), sa.ForeignKey('chat_session.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(50), sa.ForeignKey('auth_users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('file_name', sa.String(512), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('file_type', sa.String(255), nullable=True),
        sa.Column('gemini_file_uri', sa.Text(), server_default=''),
        sa.Column('gemini_file_id', sa.String(255), nullable=True),
        sa.Column('gemini_file_name', sa.String(512), nullable=True),
        sa.Column('gemini_store_name', sa.String(255), nullable=True),
        sa.Column('upload_status', sa.String(20), server_default='uploading'),
        sa.Column('upload_error', sa.Text(), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_uploaded_file_session_id', 'uploaded_file', ['session_id'])

    # Builder state cache (one row per session)
    op.create_table(
        'session_state_cache',
        sa.Column('session_id', sa.String(100), sa.ForeignKey('chat_session.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('active_version', sa.String(20), nullable=True),
        sa.Column('slide_structure', postgresql.JSONB(), nullable=True),
        sa.Column('presentation_status', sa.String(50), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table('session_state_cache')
    op.drop_table('uploaded_file')
    op.drop_table('chat_message')
    op.drop_table('chat_session')
    op.drop_table('auth_users')
