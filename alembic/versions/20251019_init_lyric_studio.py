"""初始化歌词工作室核心表

Revision ID: 20251019_init_lyric_studio
Revises:
Create Date: 2025-10-19 10:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20251019_init_lyric_studio"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("audio_id", sa.String(), nullable=True),
        sa.Column("lyrics_id", sa.String(), nullable=True),
        sa.Column("asset_ids", sa.JSON(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "lyrics_documents",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("project_id", sa.String(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False, server_default=""),
        sa.Column("lines", sa.JSON(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_lyrics_documents_project_id", "lyrics_documents", ["project_id"])

    op.create_table(
        "audio_assets",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("filename", sa.String(), nullable=False),
        sa.Column("content_type", sa.String(), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("file_hash", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.String(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("cover_art", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_audio_assets_file_hash", "audio_assets", ["file_hash"])

    op.create_table(
        "youtube_imports",
        sa.Column("project_id", sa.String(), primary_key=True),
        sa.Column("video_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("channel_title", sa.String(), nullable=False, server_default=""),
        sa.Column("duration", sa.String(), nullable=False, server_default="PT0S"),
        sa.Column("parsed_duration", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("thumbnail", sa.String(), nullable=True),
        sa.Column("url", sa.String(), nullable=True),
        sa.Column("description", sa.String(), nullable=False, server_default=""),
        sa.Column("is_virtual", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("imported_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "render_jobs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("project_id", sa.String(), nullable=True),
        sa.Column("job_status", sa.String(), nullable=False, server_default="queued"),
        sa.Column("input_props", sa.JSON(), nullable=True),
        sa.Column("output_file_name", sa.String(), nullable=False),
        sa.Column("total_frames", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("progress", sa.Float(), nullable=False, server_default="0"),
        sa.Column("output_path", sa.String(), nullable=True),
        sa.Column("error_log", sa.Text(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.Column("metrics", sa.JSON(), nullable=True),
    )
    op.create_index("ix_render_jobs_project_id", "render_jobs", ["project_id"])


def downgrade() -> None:
    op.drop_index("ix_render_jobs_project_id", table_name="render_jobs")
    op.drop_table("render_jobs")
    op.drop_table("youtube_imports")
    op.drop_index("ix_audio_assets_file_hash", table_name="audio_assets")
    op.drop_table("audio_assets")
    op.drop_index("ix_lyrics_documents_project_id", table_name="lyrics_documents")
    op.drop_table("lyrics_documents")
    op.drop_table("projects")
