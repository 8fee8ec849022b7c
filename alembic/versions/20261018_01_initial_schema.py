"""Initial filedock schema."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261018_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "folder",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("path", sa.String(length=1024), nullable=False),
        sa.Column(
            "parent_id",
            sa.String(length=64),
            sa.ForeignKey("folder.id", name="fk_folder_parent_id_folder"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )

    op.create_table(
        "file",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("path", sa.String(length=1024), nullable=False),
        sa.Column(
            "folder_id",
            sa.String(length=64),
            sa.ForeignKey("folder.id", name="fk_file_folder_id_folder"),
        ),
        sa.Column("size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("mime_type", sa.String(length=255), nullable=False),
        sa.Column("sha256", sa.String(length=64)),
        sa.Column("metadata_json", sa.Text()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_file_folder_id", "file", ["folder_id"])

    op.create_table(
        "transcode_job",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column(
            "file_id",
            sa.String(length=64),
            sa.ForeignKey("file.id", name="fk_transcode_job_file_id_file"),
            nullable=False,
        ),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("output_path", sa.String(length=1024)),
        sa.Column("error", sa.Text()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_transcode_job_file_id", "transcode_job", ["file_id"])
    op.create_index("ix_transcode_job_status", "transcode_job", ["status"])

    op.create_table(
        "video_track",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "file_id",
            sa.String(length=64),
            sa.ForeignKey("file.id", name="fk_video_track_file_id_file"),
            nullable=False,
        ),
        sa.Column("track_type", sa.String(length=16), nullable=False),
        sa.Column("codec", sa.String(length=64), nullable=False),
        sa.Column("language", sa.String(length=16)),
        sa.Column("stream_index", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255)),
    )
    op.create_index("ix_video_track_file_id", "video_track", ["file_id"])

    op.create_table(
        "subtitle",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "file_id",
            sa.String(length=64),
            sa.ForeignKey("file.id", name="fk_subtitle_file_id_file"),
            nullable=False,
        ),
        sa.Column("language", sa.String(length=16), nullable=False),
        sa.Column("path", sa.String(length=1024), nullable=False),
        sa.Column("format", sa.String(length=16), nullable=False),
        sa.Column("title", sa.String(length=255)),
    )
    op.create_index("ix_subtitle_file_id", "subtitle", ["file_id"])


def downgrade() -> None:
    op.drop_index("ix_subtitle_file_id", table_name="subtitle")
    op.drop_table("subtitle")
    op.drop_index("ix_video_track_file_id", table_name="video_track")
    op.drop_table("video_track")
    op.drop_index("ix_transcode_job_status", table_name="transcode_job")
    op.drop_index("ix_transcode_job_file_id", table_name="transcode_job")
    op.drop_table("transcode_job")
    op.drop_index("ix_file_folder_id", table_name="file")
    op.drop_table("file")
    op.drop_table("folder")
