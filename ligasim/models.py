from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import ClassVar, Dict, List, Optional, Tuple

from ligasim.errors import UnsupportedBracketSize

LEAGUE = "LEAGUE"
GROUP_STAGE = "GROUP_STAGE"
R32 = "R32"
R16 = "R16"
QUARTER_FINAL = "QUARTER_FINAL"
SEMI_FINAL = "SEMI_FINAL"
FINAL = "FINAL"

TABLE_STAGES = (LEAGUE, GROUP_STAGE)
KNOCKOUT_STAGES = (R32, R16, QUARTER_FINAL, SEMI_FINAL, FINAL)
TWO_LEG_STAGES = (R32, R16, QUARTER_FINAL, SEMI_FINAL)

STAGE_BY_SIZE = {
    32: R32,
    16: R16,
    8: QUARTER_FINAL,
    4: SEMI_FINAL,
    2: FINAL,
}


def stage_for_size(size: int) -> str:
    """Knockout stage played by `size` surviving competitors."""
    try:
        return STAGE_BY_SIZE[size]
    except KeyError:
        raise UnsupportedBracketSize(size) from None


def is_knockout_stage(stage: str) -> bool:
    return stage in KNOCKOUT_STAGES


@dataclass(frozen=True)
class Competitor:
    id: str
    name: str
    strength: int = 70
    group: Optional[str] = None
    color: Optional[str] = None

    def with_group(self, group: str) -> "Competitor":
        return replace(self, group=group)

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "Competitor":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            strength=int(data.get("strength", 70)),
            group=data.get("group"),
            color=data.get("color"),
        )


@dataclass
class Match:
    """A league or group fixture.

    Knockout fixtures use the subclasses below, so the class of a match tells
    which outcome fields it can carry: only knockout ties have a penalty
    winner, and only non-final knockout ties can be split into legs.
    """

    _stages: ClassVar[Tuple[str, ...]] = TABLE_STAGES

    id: str
    round: int
    home_id: str
    away_id: str
    stage: str = LEAGUE
    group: Optional[str] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    played: bool = False
    commentary: Optional[str] = None

    def __post_init__(self):
        if self.stage not in self._stages:
            raise ValueError(
                f"{type(self).__name__} {self.id} cannot carry stage {self.stage}"
            )
        if self.home_id == self.away_id:
            raise ValueError(f"Match {self.id} pairs {self.home_id} with itself")
        if self.played and (self.home_score is None or self.away_score is None):
            raise ValueError(f"Match {self.id} is played but has no score")

    @property
    def is_knockout(self) -> bool:
        return is_knockout_stage(self.stage)

    @property
    def is_level(self) -> bool:
        return self.played and self.home_score == self.away_score

    def involves(self, competitor_id: str) -> bool:
        return competitor_id in (self.home_id, self.away_id)

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class KnockoutMatch(Match):
    _stages: ClassVar[Tuple[str, ...]] = KNOCKOUT_STAGES

    stage: str = FINAL
    penalty_winner_id: Optional[str] = None


@dataclass
class TwoLegMatch(KnockoutMatch):
    _stages: ClassVar[Tuple[str, ...]] = TWO_LEG_STAGES

    stage: str = SEMI_FINAL
    leg: int = 1
    related_match_id: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        if self.leg not in (1, 2):
            raise ValueError(f"Match {self.id} has invalid leg {self.leg}")


def match_from_dict(data: Dict) -> Match:
    data = dict(data)
    if data.get("leg") is not None:
        cls = TwoLegMatch
    elif is_knockout_stage(data.get("stage", LEAGUE)):
        cls = KnockoutMatch
        data.pop("leg", None)
        data.pop("related_match_id", None)
    else:
        cls = Match
        for key in ("leg", "related_match_id", "penalty_winner_id"):
            data.pop(key, None)
    return cls(**data)


@dataclass
class TableRow:
    competitor_id: str
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    points: int = 0
    form: List[str] = field(default_factory=list)

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against


@dataclass
class NewsItem:
    id: str
    round: int
    headline: str
    content: str
    timestamp: str

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "NewsItem":
        return cls(**data)
