"""create stocks, reddit posts, comments and api log tables

Revision ID: 3f2a9c1d7e40
Revises:
Create Date: 2026-10-19 09:00:00.000000

Deleting a post cascades to its content snapshot and comments.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "3f2a9c1d7e40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BIGINT_PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
JSON_DOC = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "stocks",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("symbol", sa.String(32), nullable=False, comment="Upper-case ticker symbol"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("display_symbol", sa.String(32), nullable=True),
        sa.Column("type", sa.String(64), nullable=True, comment="Security type as reported by symbol search"),
        sa.Column("official_subreddit", sa.String(128), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("symbol", name="uq_stocks_symbol"),
    )

    op.create_table(
        "reddit_posts",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("reddit_id", sa.String(32), nullable=False, comment="Reddit fullname, e.g. t3_abc123"),
        sa.Column("stock_id", BIGINT_PK, sa.ForeignKey("stocks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("source", sa.String(16), nullable=False, comment="How the post was found: search or subreddit"),
        sa.Column("post_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("last_scraped_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("reddit_id", name="uq_reddit_posts_reddit_id"),
    )
    op.create_index("ix_reddit_posts_stock_id", "reddit_posts", ["stock_id"])
    op.create_index("ix_reddit_posts_post_time", "reddit_posts", ["post_time"])

    op.create_table(
        "reddit_post_contents",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("post_id", BIGINT_PK, sa.ForeignKey("reddit_posts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", JSON_DOC, nullable=False),
        sa.Column("scraped_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint("post_id", name="uq_reddit_post_contents_post_id"),
    )

    op.create_table(
        "reddit_comments",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("reddit_id", sa.String(32), nullable=False),
        sa.Column("post_id", BIGINT_PK, sa.ForeignKey("reddit_posts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("parent_id", sa.String(32), nullable=True),
        sa.Column("depth", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("author", sa.String(64), nullable=True),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("upvotes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at_utc", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("scraped_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("sentiment", sa.Float(), nullable=True),
        sa.Column("flag_for_delete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("scored_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.UniqueConstraint("reddit_id", name="uq_reddit_comments_reddit_id"),
    )
    op.create_index("ix_reddit_comments_post_id", "reddit_comments", ["post_id"])
    op.create_index(
        "ix_reddit_comments_unscored",
        "reddit_comments",
        ["id"],
        postgresql_where=sa.text("scored_at IS NULL"),
    )

    op.create_table(
        "external_services",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("base_url", sa.String(255), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("name", name="uq_external_services_name"),
    )

    op.create_table(
        "external_api_logs",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("service_id", BIGINT_PK, sa.ForeignKey("external_services.id", ondelete="CASCADE"), nullable=False),
        sa.Column("endpoint", sa.Text(), nullable=False),
        sa.Column("method", sa.String(10), nullable=False),
        sa.Column("requested_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("responded_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("request_summary", sa.Text(), nullable=True),
        sa.Column("response_summary", sa.Text(), nullable=True),
        sa.Column("proxy_used", sa.String(255), nullable=True),
    )
    op.create_index(
        "ix_external_api_logs_service_requested_at", "external_api_logs", ["service_id", "requested_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_external_api_logs_service_requested_at", table_name="external_api_logs")
    op.drop_table("external_api_logs")
    op.drop_table("external_services")
    op.drop_index("ix_reddit_comments_unscored", table_name="reddit_comments")
    op.drop_index("ix_reddit_comments_post_id", table_name="reddit_comments")
    op.drop_table("reddit_comments")
    op.drop_table("reddit_post_contents")
    op.drop_index("ix_reddit_posts_post_time", table_name="reddit_posts")
    op.drop_index("ix_reddit_posts_stock_id", table_name="reddit_posts")
    op.drop_table("reddit_posts")
    op.drop_table("stocks")
