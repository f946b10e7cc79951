"""SQLAlchemy ORM models for the reconciled alliance data.

Game entities (players, alliances, planets) are keyed by the identifiers the
game itself uses, so the same player seen by two scrapers lands on one row.
Reports are keyed by the game's message/report id (external_id). Score history
is append-only.

Game maps (research, buildings, fleet, defense, resources) are JSON objects of
"<id>": <int>; read and write them through allyhub.models.codec.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship, Mapped, mapped_column

from allyhub.core.time_utils import utc_now

Base = declarative_base()

PLANET = "PLANET"
MOON = "MOON"
PLANET_KINDS = (PLANET, MOON)

STATUS_NEW = "new"
STATUS_SEEN = "seen"
STATUS_DELETED = "deleted"

ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLES = (ROLE_ADMIN, ROLE_USER)

# Game ids can exceed 32 bits; SQLite only autoincrements INTEGER primary keys
GameId = BigInteger().with_variant(Integer(), "sqlite")


class Alliance(Base):
    __tablename__ = "alliances"

    id: Mapped[int] = mapped_column(GameId, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    tag: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    players: Mapped[List["Player"]] = relationship("Player", back_populates="alliance")


class Player(Base):
    __tablename__ = "players"
    __table_args__ = (
        Index("ix_players_alliance_id", "alliance_id"),
        Index("ix_players_name", "name"),
    )

    id: Mapped[int] = mapped_column(GameId, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    alliance_id: Mapped[Optional[int]] = mapped_column(ForeignKey("alliances.id", ondelete="SET NULL"), nullable=True)
    main_coordinates: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    inactive_since: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    vacation_since: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notice: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)
    research: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    # Five named totals as last reported by /players/stats
    scores: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    # Combat totals
    combats_total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    combats_won: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    combats_draw: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    combats_lost: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    units_shot: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    units_lost: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    # Leaderboard score/rank pairs
    score_buildings: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    score_buildings_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    score_research: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    score_research_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    score_fleet: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    score_fleet_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    score_defense: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    score_defense_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    score_total: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    score_total_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Honor
    honorpoints: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    honorpoints_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    fights_honorable: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    fights_dishonorable: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    fights_neutral: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Destruction stats: involved in
    destruction_units_killed: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    destruction_units_lost: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    destruction_recycled_metal: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    destruction_recycled_crystal: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    # Destruction stats: actually destroyed
    real_destruction_units_killed: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    real_destruction_units_lost: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    real_destruction_recycled_metal: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    real_destruction_recycled_crystal: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)

    alliance: Mapped[Optional["Alliance"]] = relationship("Alliance", back_populates="players")
    planets: Mapped[List["Planet"]] = relationship("Planet", back_populates="owner")


class Planet(Base):
    __tablename__ = "planets"
    __table_args__ = (
        UniqueConstraint("coordinates", "type", name="uq_planets_coordinates_type"),
        Index("ix_planets_coords", "galaxy", "system", "planet"),
        Index("ix_planets_player_id", "player_id"),
        Index("ix_planets_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Coordinates; planet == 0 is the per-system scan marker
    coordinates: Mapped[str] = mapped_column(String(20), nullable=False)
    galaxy: Mapped[int] = mapped_column(Integer, nullable=False)
    system: Mapped[int] = mapped_column(Integer, nullable=False)
    planet: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(10), default=PLANET, nullable=False)

    # Game-internal planet id, from galaxy scans and the empire planet selector
    planet_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=STATUS_NEW, nullable=False)

    buildings: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    fleet: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    defense: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    resources: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    # Empire page figures (per hour)
    prod_h: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    metal_prod_h: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    crystal_prod_h: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    deut_prod_h: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    energy_used: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    energy_max: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    fields_used: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    fields_max: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    temperature: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    points: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    owner: Mapped["Player"] = relationship("Player", back_populates="planets")


class PlayerScore(Base):
    __tablename__ = "player_scores"
    __table_args__ = (
        Index("ix_player_scores_player_recorded", "player_id", "recorded_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    score_total: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    score_economy: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    score_research: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    score_military: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    score_defense: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    rank_total: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rank_economy: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rank_research: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rank_military: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rank_defense: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)


class SpyReport(Base):
    __tablename__ = "spy_reports"
    __table_args__ = (
        Index("ix_spy_reports_coords", "galaxy", "system", "planet", "type"),
        Index("ix_spy_reports_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    coordinates: Mapped[str] = mapped_column(String(20), nullable=False)
    galaxy: Mapped[int] = mapped_column(Integer, nullable=False)
    system: Mapped[int] = mapped_column(Integer, nullable=False)
    planet: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(10), default=PLANET, nullable=False)
    resources: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    buildings: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    research: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    fleet: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    defense: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    reported_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, index=True)
    report_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)


class BattleReport(Base):
    __tablename__ = "battle_reports"
    __table_args__ = (
        Index("ix_battle_reports_coords", "galaxy", "system", "planet"),
        Index("ix_battle_reports_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    coordinates: Mapped[str] = mapped_column(String(20), nullable=False)
    galaxy: Mapped[int] = mapped_column(Integer, nullable=False)
    system: Mapped[int] = mapped_column(Integer, nullable=False)
    planet: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(10), default=PLANET, nullable=False)
    attacker_lost: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    defender_lost: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    metal: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    crystal: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    deuterium: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    debris_metal: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    debris_crystal: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    reported_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, index=True)
    report_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)


class ExpeditionReport(Base):
    __tablename__ = "expedition_reports"
    __table_args__ = (
        Index("ix_expedition_reports_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    resources: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    fleet: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    reported_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, index=True)
    report_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)


class RecycleReport(Base):
    __tablename__ = "recycle_reports"
    __table_args__ = (
        Index("ix_recycle_reports_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    coordinates: Mapped[str] = mapped_column(String(20), nullable=False)
    galaxy: Mapped[int] = mapped_column(Integer, nullable=False)
    system: Mapped[int] = mapped_column(Integer, nullable=False)
    planet: Mapped[int] = mapped_column(Integer, nullable=False)
    metal: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    crystal: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    metal_tf: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    crystal_tf: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    reported_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, index=True)
    report_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)


class HostileSpying(Base):
    __tablename__ = "hostile_spying"
    __table_args__ = (
        Index("ix_hostile_spying_attacker", "attacker_coordinates"),
        Index("ix_hostile_spying_report_time", "report_time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    attacker_coordinates: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    target_coordinates: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    report_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)


class StatView(Base):
    __tablename__ = "stat_views"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stat_type: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    synced_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class ConfigEntry(Base):
    __tablename__ = "config"

    key: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[str] = mapped_column(String(255), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    api_key: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    # Plain references: a user may be created before its player is ever scraped
    player_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, index=True)
    alliance_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    language: Mapped[str] = mapped_column(String(5), default="de", nullable=False)
    role: Mapped[str] = mapped_column(String(10), default=ROLE_USER, nullable=False)
    last_activity_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
