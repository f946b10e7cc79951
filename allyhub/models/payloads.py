"""Request payloads accepted by the ingestion and hub routes.

Scraped payloads are untrusted but already structured; these models validate
shape and ranges at the boundary. Per-item problems that the services can
recover from (a malformed empire coordinate string, an unknown stat type) are
left to the services so one bad entry never rejects the whole batch.
"""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from allyhub.core.config import POSITIONS_PER_SYSTEM


GameMapIn = Dict[str, int]


# --- Galaxy scan ---

class ScannedPosition(BaseModel):
    position: int = Field(ge=1, le=POSITIONS_PER_SYSTEM)
    player_id: Optional[int] = None
    player_name: Optional[str] = None
    planet_name: Optional[str] = None
    moon_name: Optional[str] = None
    has_moon: bool = False
    planet_id: Optional[int] = None
    moon_id: Optional[int] = None
    alliance_id: Optional[int] = None
    alliance_tag: Optional[str] = None


class DestroyedPosition(BaseModel):
    position: int = Field(ge=1, le=POSITIONS_PER_SYSTEM)
    type: str = Field(default="PLANET", pattern="^(PLANET|MOON)$")


class GalaxyScan(BaseModel):
    galaxy: int = Field(ge=1)
    system: int = Field(ge=1)
    planets: List[ScannedPosition] = Field(default_factory=list)
    destroyed: List[DestroyedPosition] = Field(default_factory=list)


# --- Empire page ---

class Production(BaseModel):
    metal: int = 0
    crystal: int = 0
    deuterium: int = 0
    energy_used: int = 0
    energy_max: int = 0


class EmpirePlanet(BaseModel):
    external_id: Optional[int] = None
    name: str = ""
    coordinates: str
    fields_used: Optional[int] = None
    fields_max: Optional[int] = None
    temperature: Optional[int] = None
    points: Optional[int] = None
    resources: GameMapIn = Field(default_factory=dict)
    production: Production = Field(default_factory=Production)
    buildings: GameMapIn = Field(default_factory=dict)
    fleet: GameMapIn = Field(default_factory=dict)
    defense: GameMapIn = Field(default_factory=dict)


class EmpireSnapshot(BaseModel):
    player_id: int = 0
    player_name: str = ""
    research: GameMapIn = Field(default_factory=dict)
    planets: List[EmpirePlanet] = Field(default_factory=list)


# --- Reports ---

class SpyReportIn(BaseModel):
    id: int
    galaxy: int = Field(ge=1)
    system: int = Field(ge=1)
    planet: int = Field(ge=1, le=POSITIONS_PER_SYSTEM)
    type: str = Field(default="PLANET", pattern="^(PLANET|MOON)$")
    report_time: Optional[str] = None
    resources: Optional[GameMapIn] = None
    buildings: Optional[GameMapIn] = None
    research: Optional[GameMapIn] = None
    fleet: Optional[GameMapIn] = None
    defense: Optional[GameMapIn] = None


class BattleReportIn(BaseModel):
    id: int
    galaxy: int = Field(ge=1)
    system: int = Field(ge=1)
    planet: int = Field(ge=1, le=POSITIONS_PER_SYSTEM)
    type: str = Field(default="PLANET", pattern="^(PLANET|MOON)$")
    report_time: Optional[str] = None
    attacker_lost: int = 0
    defender_lost: int = 0
    metal: int = 0
    crystal: int = 0
    deuterium: int = 0
    debris_metal: int = 0
    debris_crystal: int = 0


class ExpeditionReportIn(BaseModel):
    id: int
    message: Optional[str] = None
    type: Optional[str] = None
    report_time: Optional[str] = None
    resources: Optional[GameMapIn] = None
    fleet: Optional[GameMapIn] = None


class RecycleReportIn(BaseModel):
    id: int
    galaxy: int = Field(ge=1)
    system: int = Field(ge=1)
    planet: int = Field(ge=1, le=POSITIONS_PER_SYSTEM)
    report_time: Optional[str] = None
    metal: int = 0
    crystal: int = 0
    metal_tf: int = 0
    crystal_tf: int = 0


class HostileSpyingIn(BaseModel):
    id: int
    attacker_coordinates: Optional[str] = None
    target_coordinates: Optional[str] = None
    report_time: Optional[str] = None


class MessageBatch(BaseModel):
    message_ids: List[int] = Field(default_factory=list)


# --- Statistics ---

class StatRow(BaseModel):
    player_id: int
    player_name: str
    alliance_tag: Optional[str] = None
    rank: Optional[int] = None
    score: int = 0
    is_inactive: bool = False
    is_long_inactive: bool = False


class StatisticsSync(BaseModel):
    stat_type: str
    players: List[StatRow] = Field(default_factory=list)


class PlayerStatIn(BaseModel):
    id: int
    name: str
    alliance_id: Optional[int] = None
    score: int = 0
    rank: Optional[int] = None


class PlayerStatsBatch(BaseModel):
    players: List[PlayerStatIn] = Field(default_factory=list)
    type: str = "total"
    inactive_ids: Optional[List[int]] = None
    vacation_ids: Optional[List[int]] = None


# --- Players ---

class PlayerUpsert(BaseModel):
    id: int
    name: str
    alliance_id: Optional[int] = None
    alliance_tag: Optional[str] = None
    main_coordinates: Optional[str] = None
    notice: Optional[str] = None
    score_buildings: Optional[int] = None
    score_buildings_rank: Optional[int] = None
    score_research: Optional[int] = None
    score_research_rank: Optional[int] = None
    score_fleet: Optional[int] = None
    score_fleet_rank: Optional[int] = None
    score_defense: Optional[int] = None
    score_defense_rank: Optional[int] = None
    score_total: Optional[int] = None
    score_total_rank: Optional[int] = None
    combats_won: Optional[int] = None
    combats_draw: Optional[int] = None
    combats_lost: Optional[int] = None
    combats_total: Optional[int] = None
    honorpoints: Optional[int] = None
    honorpoints_rank: Optional[int] = None
    fights_honorable: Optional[int] = None
    fights_dishonorable: Optional[int] = None
    fights_neutral: Optional[int] = None
    destruction_units_killed: Optional[int] = None
    destruction_units_lost: Optional[int] = None
    destruction_recycled_metal: Optional[int] = None
    destruction_recycled_crystal: Optional[int] = None
    real_destruction_units_killed: Optional[int] = None
    real_destruction_units_lost: Optional[int] = None
    real_destruction_recycled_metal: Optional[int] = None
    real_destruction_recycled_crystal: Optional[int] = None


class ResearchLevel(BaseModel):
    id: int
    level: int


class ResearchUpdate(BaseModel):
    research: List[ResearchLevel] = Field(default_factory=list)


class PlayerIds(BaseModel):
    ids: List[int] = Field(default_factory=list)


class TargetOverviewRequest(BaseModel):
    galaxy: int
    system: int
    planet: int
    own_planets: List[str] = Field(default_factory=list)


# --- Planets ---

class PlanetCreate(BaseModel):
    coordinates: str
    player_id: int
    planet_name: Optional[str] = None
    moon_name: Optional[str] = None


class PlanetMapUpdate(BaseModel):
    coordinates: str
    type: str = Field(default="PLANET", pattern="^(PLANET|MOON)$")
    map: GameMapIn = Field(default_factory=dict)


class PlanetIds(BaseModel):
    ids: List[int] = Field(default_factory=list)


# --- Users & admin ---

class CreateUserRequest(BaseModel):
    player_id: Optional[int] = None
    player_name: Optional[str] = None
    alliance_id: Optional[int] = None


class RoleUpdate(BaseModel):
    role: str


class LanguageUpdate(BaseModel):
    language: str


class UniverseConfigUpdate(BaseModel):
    galaxies: Optional[int] = None
    systems: Optional[int] = None
    galaxy_wrapped: Optional[bool] = None
