"""Initial schema creation

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 10:00:00

Creates the reconciled alliance model, aligned with allyhub/models/database.py:
- alliances, players, planets (one row per coordinates+type)
- player_scores (append-only total history)
- spy/battle/expedition/recycle reports and hostile_spying, keyed by the game's report id
- messages (seen mail ids), stat_views, config, users
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _coordinate_columns() -> list:
    return [
        sa.Column("coordinates", sa.String(length=20), nullable=False),
        sa.Column("galaxy", sa.Integer(), nullable=False),
        sa.Column("system", sa.Integer(), nullable=False),
        sa.Column("planet", sa.Integer(), nullable=False),
    ]


def upgrade() -> None:
    # alliances
    op.create_table(
        "alliances",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("tag", sa.String(length=50), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    # players
    op.create_table(
        "players",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("alliance_id", sa.BigInteger(), sa.ForeignKey("alliances.id", ondelete="SET NULL"), nullable=True),
        sa.Column("main_coordinates", sa.String(length=20), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.sql.expression.false()),
        sa.Column("inactive_since", sa.DateTime(timezone=True), nullable=True),
        sa.Column("vacation_since", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notice", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("research", sa.JSON(), nullable=True),
        sa.Column("scores", sa.JSON(), nullable=True),
        sa.Column("combats_total", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("combats_won", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("combats_draw", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("combats_lost", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("units_shot", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("units_lost", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        *[
            col
            for name in ("buildings", "research", "fleet", "defense", "total")
            for col in (
                sa.Column(f"score_{name}", sa.BigInteger(), nullable=True),
                sa.Column(f"score_{name}_rank", sa.Integer(), nullable=True),
            )
        ],
        sa.Column("honorpoints", sa.BigInteger(), nullable=True),
        sa.Column("honorpoints_rank", sa.Integer(), nullable=True),
        sa.Column("fights_honorable", sa.Integer(), nullable=True),
        sa.Column("fights_dishonorable", sa.Integer(), nullable=True),
        sa.Column("fights_neutral", sa.Integer(), nullable=True),
        *[
            sa.Column(f"{prefix}destruction_{name}", sa.BigInteger(), nullable=True)
            for prefix in ("", "real_")
            for name in ("units_killed", "units_lost", "recycled_metal", "recycled_crystal")
        ],
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_players_alliance_id", "players", ["alliance_id"], unique=False)
    op.create_index("ix_players_name", "players", ["name"], unique=False)
    op.create_index("ix_players_updated_at", "players", ["updated_at"], unique=False)

    # planets (planet == 0 rows are per-system scan markers)
    op.create_table(
        "planets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("player_id", sa.BigInteger(), sa.ForeignKey("players.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=True),
        *_coordinate_columns(),
        sa.Column("type", sa.String(length=10), nullable=False, server_default="PLANET"),
        sa.Column("planet_id", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="new"),
        sa.Column("buildings", sa.JSON(), nullable=True),
        sa.Column("fleet", sa.JSON(), nullable=True),
        sa.Column("defense", sa.JSON(), nullable=True),
        sa.Column("resources", sa.JSON(), nullable=True),
        sa.Column("prod_h", sa.BigInteger(), nullable=True),
        sa.Column("metal_prod_h", sa.BigInteger(), nullable=True),
        sa.Column("crystal_prod_h", sa.BigInteger(), nullable=True),
        sa.Column("deut_prod_h", sa.BigInteger(), nullable=True),
        sa.Column("energy_used", sa.Integer(), nullable=True),
        sa.Column("energy_max", sa.Integer(), nullable=True),
        sa.Column("fields_used", sa.Integer(), nullable=True),
        sa.Column("fields_max", sa.Integer(), nullable=True),
        sa.Column("temperature", sa.Integer(), nullable=True),
        sa.Column("points", sa.BigInteger(), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("coordinates", "type", name="uq_planets_coordinates_type"),
    )
    op.create_index("ix_planets_coords", "planets", ["galaxy", "system", "planet"], unique=False)
    op.create_index("ix_planets_player_id", "planets", ["player_id"], unique=False)
    op.create_index("ix_planets_status", "planets", ["status"], unique=False)

    # player_scores
    op.create_table(
        "player_scores",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("player_id", sa.BigInteger(), sa.ForeignKey("players.id", ondelete="CASCADE"), nullable=False),
        *[
            sa.Column(f"score_{name}", sa.BigInteger(), nullable=False, server_default=sa.text("0"))
            for name in ("total", "economy", "research", "military", "defense")
        ],
        *[
            sa.Column(f"rank_{name}", sa.Integer(), nullable=True)
            for name in ("total", "economy", "research", "military", "defense")
        ],
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_player_scores_player_recorded", "player_scores", ["player_id", "recorded_at"], unique=False)

    # reports
    op.create_table(
        "spy_reports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.BigInteger(), nullable=False),
        *_coordinate_columns(),
        sa.Column("type", sa.String(length=10), nullable=False, server_default="PLANET"),
        sa.Column("resources", sa.JSON(), nullable=True),
        sa.Column("buildings", sa.JSON(), nullable=True),
        sa.Column("research", sa.JSON(), nullable=True),
        sa.Column("fleet", sa.JSON(), nullable=True),
        sa.Column("defense", sa.JSON(), nullable=True),
        sa.Column("reported_by", sa.BigInteger(), nullable=True),
        sa.Column("report_time", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("external_id", name="uq_spy_reports_external_id"),
    )
    op.create_index("ix_spy_reports_coords", "spy_reports", ["galaxy", "system", "planet", "type"], unique=False)
    op.create_index("ix_spy_reports_created_at", "spy_reports", ["created_at"], unique=False)
    op.create_index("ix_spy_reports_reported_by", "spy_reports", ["reported_by"], unique=False)

    op.create_table(
        "battle_reports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.BigInteger(), nullable=False),
        *_coordinate_columns(),
        sa.Column("type", sa.String(length=10), nullable=False, server_default="PLANET"),
        *[
            sa.Column(name, sa.BigInteger(), nullable=False, server_default=sa.text("0"))
            for name in (
                "attacker_lost", "defender_lost", "metal", "crystal", "deuterium", "debris_metal", "debris_crystal",
            )
        ],
        sa.Column("reported_by", sa.BigInteger(), nullable=True),
        sa.Column("report_time", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("external_id", name="uq_battle_reports_external_id"),
    )
    op.create_index("ix_battle_reports_coords", "battle_reports", ["galaxy", "system", "planet"], unique=False)
    op.create_index("ix_battle_reports_created_at", "battle_reports", ["created_at"], unique=False)
    op.create_index("ix_battle_reports_reported_by", "battle_reports", ["reported_by"], unique=False)

    op.create_table(
        "expedition_reports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.BigInteger(), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("type", sa.String(length=50), nullable=True),
        sa.Column("resources", sa.JSON(), nullable=True),
        sa.Column("fleet", sa.JSON(), nullable=True),
        sa.Column("reported_by", sa.BigInteger(), nullable=True),
        sa.Column("report_time", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("external_id", name="uq_expedition_reports_external_id"),
    )
    op.create_index("ix_expedition_reports_created_at", "expedition_reports", ["created_at"], unique=False)
    op.create_index("ix_expedition_reports_reported_by", "expedition_reports", ["reported_by"], unique=False)

    op.create_table(
        "recycle_reports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.BigInteger(), nullable=False),
        *_coordinate_columns(),
        *[
            sa.Column(name, sa.BigInteger(), nullable=False, server_default=sa.text("0"))
            for name in ("metal", "crystal", "metal_tf", "crystal_tf")
        ],
        sa.Column("reported_by", sa.BigInteger(), nullable=True),
        sa.Column("report_time", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("external_id", name="uq_recycle_reports_external_id"),
    )
    op.create_index("ix_recycle_reports_created_at", "recycle_reports", ["created_at"], unique=False)
    op.create_index("ix_recycle_reports_reported_by", "recycle_reports", ["reported_by"], unique=False)

    op.create_table(
        "hostile_spying",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.BigInteger(), nullable=False),
        sa.Column("attacker_coordinates", sa.String(length=20), nullable=True),
        sa.Column("target_coordinates", sa.String(length=20), nullable=True),
        sa.Column("report_time", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("external_id", name="uq_hostile_spying_external_id"),
    )
    op.create_index("ix_hostile_spying_attacker", "hostile_spying", ["attacker_coordinates"], unique=False)
    op.create_index("ix_hostile_spying_report_time", "hostile_spying", ["report_time"], unique=False)

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.BigInteger(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("external_id", name="uq_messages_external_id"),
    )

    op.create_table(
        "stat_views",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("stat_type", sa.String(length=20), nullable=False),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("synced_by", sa.Integer(), nullable=True),
        sa.UniqueConstraint("stat_type", name="uq_stat_views_stat_type"),
    )

    op.create_table(
        "config",
        sa.Column("key", sa.String(length=50), primary_key=True),
        sa.Column("value", sa.String(length=255), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    # users (player/alliance are plain references: a user may predate its first scrape)
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("api_key", sa.String(length=64), nullable=False),
        sa.Column("player_id", sa.BigInteger(), nullable=True),
        sa.Column("alliance_id", sa.BigInteger(), nullable=True),
        sa.Column("language", sa.String(length=5), nullable=False, server_default="de"),
        sa.Column("role", sa.String(length=10), nullable=False, server_default="user"),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_api_key", "users", ["api_key"], unique=True)
    op.create_index("ix_users_player_id", "users", ["player_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_users_player_id", table_name="users")
    op.drop_index("ix_users_api_key", table_name="users")
    op.drop_table("users")
    op.drop_table("config")
    op.drop_table("stat_views")
    op.drop_table("messages")
    op.drop_index("ix_hostile_spying_report_time", table_name="hostile_spying")
    op.drop_index("ix_hostile_spying_attacker", table_name="hostile_spying")
    op.drop_table("hostile_spying")
    for table in ("recycle_reports", "expedition_reports"):
        op.drop_index(f"ix_{table}_reported_by", table_name=table)
        op.drop_index(f"ix_{table}_created_at", table_name=table)
        op.drop_table(table)
    for table in ("battle_reports", "spy_reports"):
        op.drop_index(f"ix_{table}_reported_by", table_name=table)
        op.drop_index(f"ix_{table}_created_at", table_name=table)
        op.drop_index(f"ix_{table}_coords", table_name=table)
        op.drop_table(table)
    op.drop_index("ix_player_scores_player_recorded", table_name="player_scores")
    op.drop_table("player_scores")
    op.drop_index("ix_planets_status", table_name="planets")
    op.drop_index("ix_planets_player_id", table_name="planets")
    op.drop_index("ix_planets_coords", table_name="planets")
    op.drop_table("planets")
    op.drop_index("ix_players_updated_at", table_name="players")
    op.drop_index("ix_players_name", table_name="players")
    op.drop_index("ix_players_alliance_id", table_name="players")
    op.drop_table("players")
    op.drop_table("alliances")
