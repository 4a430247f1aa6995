"""
Canonical data model shared by every pipeline stage.

Provider payloads are parsed into these models exactly once, inside the
provider adapters. Everything downstream reads canonical field names only.

- Identity: one provider's id/name/team for a player
- Game: one box-score line; stat fields default to 0 and are never negative
- GameLog: immutable ordered games for one identity
- NextGame: upcoming fixture for a team
- Forecast: point estimate + confidence + error margin
- PropLine: one bookmaker's over/under line for a player prop
- LedgerEntry: a recorded forecast awaiting (or holding) its outcome
"""
from datetime import date as DateType, datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Identity(BaseModel):
    """A player as known to one provider."""
    model_config = ConfigDict(frozen=True)

    provider: str
    provider_id: str
    canonical_name: str  # normalized: diacritic-free, lower-case, single-spaced
    display_name: str = ""
    team_abbrev: Optional[str] = None


class Game(BaseModel):
    """One game line in canonical form."""
    model_config = ConfigDict(frozen=True)

    sequence: int = 0
    date: DateType
    opponent_abbrev: str = ""
    is_home: bool = False
    minutes: float = 0.0
    points: int = 0
    rebounds: int = 0
    assists: int = 0
    steals: int = 0
    blocks: int = 0
    threes_made: int = 0
    threes_attempted: int = 0
    fg_made: int = 0
    fg_attempted: int = 0
    ft_made: int = 0
    ft_attempted: int = 0
    turnovers: int = 0
    season: str = ""
    game_id: Optional[str] = None

    @field_validator(
        "points", "rebounds", "assists", "steals", "blocks", "threes_made",
        "threes_attempted", "fg_made", "fg_attempted", "ft_made", "ft_attempted",
        "turnovers", mode="before",
    )
    @classmethod
    def _non_negative_count(cls, v: Any) -> int:
        if v is None or v == "":
            return 0
        try:
            return max(0, int(round(float(v))))
        except (TypeError, ValueError):
            return 0

    @field_validator("minutes", mode="before")
    @classmethod
    def _non_negative_minutes(cls, v: Any) -> float:
        if v is None or v == "":
            return 0.0
        try:
            return max(0.0, float(v))
        except (TypeError, ValueError):
            return 0.0


class GameLog(BaseModel):
    """
    Games for one player, most recent first.

    Never mutated after construction: ordering and filtering helpers
    return new GameLog instances.
    """
    model_config = ConfigDict(frozen=True)

    identity: Identity
    games: Tuple[Game, ...] = ()

    def __len__(self) -> int:
        return len(self.games)

    def chronological(self) -> List[Game]:
        """Games oldest to newest."""
        return sorted(self.games, key=lambda g: (g.date, -g.sequence))

    def with_games(self, games) -> "GameLog":
        return GameLog(identity=self.identity, games=tuple(games))


class GameLogOptions(BaseModel):
    """How much history a provider should return."""
    model_config = ConfigDict(frozen=True)

    include_previous_season: bool = True
    current_season_games: Optional[int] = None  # None = all
    previous_season_games: Optional[int] = None


class NextGame(BaseModel):
    model_config = ConfigDict(frozen=True)

    team_abbrev: str
    opponent_abbrev: str
    date: DateType
    is_home: bool
    event_id: Optional[str] = None
    tip_off: Optional[str] = None


class InjuryReport(BaseModel):
    """One listed injury, as supplied by the caller's injury feed."""
    model_config = ConfigDict(frozen=True)

    player_name: str
    status: str = "out"
    description: str = ""
    impact_score: float = 50.0
    position: str = ""


class ForecastContext(BaseModel):
    """Extra inputs that switch the forecast to the numeric-model method."""
    model_config = ConfigDict(frozen=True)

    injury_status: str = "active"
    injury_description: str = ""
    teammate_injuries: List[InjuryReport] = Field(default_factory=list)
    opponent_injuries: List[InjuryReport] = Field(default_factory=list)
    vegas_line: Optional[float] = None
    usage_rate: Optional[float] = None
    minutes: Optional[float] = None


class Forecast(BaseModel):
    model_config = ConfigDict(frozen=True)

    predicted_value: float = Field(ge=0)
    confidence: float = Field(ge=0, le=100)
    error_margin: float = Field(ge=0)
    prop_type: str
    method: str
    games_used: int
    confidence_level: Optional[str] = None  # High / Medium / Low (numeric model)
    recommendation: Optional[str] = None  # OVER / UNDER vs vegas line
    diagnostics: Dict[str, Any] = Field(default_factory=dict)


class PropLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    prop_type: str
    line: float
    over_odds: Optional[float] = None
    under_odds: Optional[float] = None
    bookmaker: str
    bookmaker_title: str = ""
    priority_rank: Optional[int] = None  # None = not on the preference list
    substituted: bool = False
    original_line: Optional[float] = None


class OutcomeMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    absolute_error: float
    percentage_error: Optional[float] = None
    within_margin: bool
    within_2x_margin: bool
    accuracy: int


class LedgerEntry(BaseModel):
    id: str
    player_name: str
    forecast: Forecast
    game_log_fingerprint: str
    next_game: Optional[NextGame] = None
    created_at: datetime
    actual_value: Optional[float] = None
    evaluated_at: Optional[datetime] = None
    metrics: Optional[OutcomeMetrics] = None

    @property
    def evaluated(self) -> bool:
        return self.evaluated_at is not None


class CompareResult(BaseModel):
    """Combined stats/forecast/market view for one player and prop."""

    player_name: str
    prop_type: str
    identity: Optional[Identity] = None
    games: Optional[List[Game]] = None
    forecast: Optional[Forecast] = None
    best_line: Optional[PropLine] = None
    next_game: Optional[NextGame] = None
    recommendation: Optional[str] = None  # OVER / UNDER / PUSH
    edge: Optional[float] = None
    ledger_id: Optional[str] = None
    errors: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
