"""Initial migration: create match and bracketconfig tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create bracket config table (one row per tournament category)
    op.create_table(
        "bracketconfig",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.String(), nullable=False),
        sa.Column("category_id", sa.String(), nullable=False),
        sa.Column("format", sa.String(), nullable=False),
        sa.Column("num_groups", sa.Integer(), nullable=True),
        sa.Column("qualifiers_per_group", sa.Integer(), nullable=False),
        sa.Column("best_of_sets", sa.Integer(), nullable=False),
        sa.Column("participant_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tournament_id", "category_id", name="uq_bracket_config_category"),
    )
    op.create_index("ix_bracketconfig_tournament_id", "bracketconfig", ["tournament_id"])
    op.create_index("ix_bracketconfig_category_id", "bracketconfig", ["category_id"])

    # Create match table
    op.create_table(
        "match",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tournament_id", sa.String(), nullable=False),
        sa.Column("category_id", sa.String(), nullable=False),
        sa.Column("phase", sa.String(), nullable=False),
        sa.Column("round", sa.Integer(), nullable=False),
        sa.Column("group_name", sa.String(), nullable=True),
        sa.Column("match_number", sa.Integer(), nullable=False),
        sa.Column("player1_id", sa.String(), nullable=True),
        sa.Column("player2_id", sa.String(), nullable=True),
        sa.Column("player1_source", sa.JSON(), nullable=True),
        sa.Column("player2_source", sa.JSON(), nullable=True),
        sa.Column("winner_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("sets", sa.JSON(), nullable=True),
        sa.Column("best_of_sets", sa.Integer(), nullable=False),
        sa.Column("next_match_id", sa.String(), nullable=True),
        sa.Column("next_match_slot", sa.Integer(), nullable=True),
        sa.Column("table_number", sa.Integer(), nullable=True),
        sa.Column("needs_attention", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["next_match_id"],
            ["match.id"],
        ),
        sa.UniqueConstraint(
            "tournament_id",
            "category_id",
            "phase",
            "round",
            "match_number",
            name="uq_match_category_phase_number",
        ),
    )
    op.create_index("ix_match_tournament_id", "match", ["tournament_id"])
    op.create_index("ix_match_category_id", "match", ["category_id"])


def downgrade() -> None:
    op.drop_index("ix_match_category_id", table_name="match")
    op.drop_index("ix_match_tournament_id", table_name="match")
    op.drop_table("match")
    op.drop_index("ix_bracketconfig_category_id", table_name="bracketconfig")
    op.drop_index("ix_bracketconfig_tournament_id", table_name="bracketconfig")
    op.drop_table("bracketconfig")
