"""Create race, participant and profile tables"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "20241016_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "races",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("distance_meters", sa.Float(), nullable=False),
        sa.Column("use_miles", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("mode", sa.String(length=16), nullable=False, server_default="race"),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "race_participants",
        sa.Column(
            "race_id",
            sa.String(length=64),
            sa.ForeignKey("races.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("distance_meters", sa.Float(), nullable=False, server_default="0"),
        sa.Column("finish_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("average_pace", sa.Float(), nullable=True),
        sa.Column("place", sa.Integer(), nullable=True),
        sa.Column("disconnected", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_race_participants_user_id", "race_participants", ["user_id"])

    op.create_table(
        "runner_profiles",
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("sprite_url", sa.String(length=512), nullable=True),
        sa.Column("country_code", sa.String(length=8), nullable=True),
    )

    op.create_table(
        "ranked_profiles",
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("tier", sa.String(length=16), nullable=False),
        sa.Column("division", sa.Integer(), nullable=True),
        sa.Column("league_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("hidden_mmr", sa.Integer(), nullable=True),
        sa.Column("top_three_finishes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_races", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("ranked_profiles")
    op.drop_table("runner_profiles")
    op.drop_index("ix_race_participants_user_id", table_name="race_participants")
    op.drop_table("race_participants")
    op.drop_table("races")
