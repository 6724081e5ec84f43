"""game projections, upcoming index and inbound message queue

Revision ID: 20261019000100
Revises:
Create Date: 2026-10-19 00:01:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019000100"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "game_projections",
        sa.Column("game_key", sa.String(), nullable=False),
        sa.Column("home_team", sa.String(), nullable=False),
        sa.Column("away_team", sa.String(), nullable=False),
        sa.Column("game_date", sa.String(), nullable=False),
        sa.Column(
            "created_at_utc",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.Column(
            "updated_at_utc",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("game_key"),
    )

    op.create_table(
        "game_fields",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("game_key", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("value_json", sa.Text(), nullable=False),
        sa.Column(
            "updated_at_utc",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(["game_key"], ["game_projections.game_key"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("game_key", "name", name="uq_game_fields_game_key_name"),
    )
    op.create_index(op.f("ix_game_fields_id"), "game_fields", ["id"], unique=False)
    op.create_index(op.f("ix_game_fields_game_key"), "game_fields", ["game_key"], unique=False)

    op.create_table(
        "upcoming_games",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("team_code", sa.String(), nullable=False),
        sa.Column("game_key", sa.String(), nullable=False),
        sa.Column("start_epoch", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("team_code", "game_key", name="uq_upcoming_games_team_game"),
    )
    op.create_index(op.f("ix_upcoming_games_id"), "upcoming_games", ["id"], unique=False)
    op.create_index(
        "ix_upcoming_games_team_start",
        "upcoming_games",
        ["team_code", "start_epoch"],
        unique=False,
    )

    op.create_table(
        "inbound_messages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("topic", sa.String(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("locked_at_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lock_owner", sa.String(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "created_at_utc",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.Column(
            "updated_at_utc",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_inbound_messages_id"), "inbound_messages", ["id"], unique=False)
    op.create_index(
        "ix_inbound_messages_topic_status",
        "inbound_messages",
        ["topic", "status", "id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_inbound_messages_topic_status", table_name="inbound_messages")
    op.drop_index(op.f("ix_inbound_messages_id"), table_name="inbound_messages")
    op.drop_table("inbound_messages")
    op.drop_index("ix_upcoming_games_team_start", table_name="upcoming_games")
    op.drop_index(op.f("ix_upcoming_games_id"), table_name="upcoming_games")
    op.drop_table("upcoming_games")
    op.drop_index(op.f("ix_game_fields_game_key"), table_name="game_fields")
    op.drop_index(op.f("ix_game_fields_id"), table_name="game_fields")
    op.drop_table("game_fields")
    op.drop_table("game_projections")
