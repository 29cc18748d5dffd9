from __future__ import annotations

import math
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ligasim.errors import ConfigurationError
from ligasim.models import STAGE_BY_SIZE, Competitor

ROOT_DIR = Path(__file__).resolve().parents[1]
SAVES_PATH = Path(os.environ.get("LIGASIM_SAVES_PATH") or ROOT_DIR / "saves.json")

POINTS_FOR_WIN = 3
POINTS_FOR_DRAW = 1
FORM_LENGTH = 5
MAX_GROUPS = 26

LEAGUE_FORMAT = "LEAGUE"
CUP_FORMAT = "CUP"
KNOCKOUT = "KNOCKOUT"
GROUP_KNOCKOUT = "GROUP_KNOCKOUT"

GEMINI_MODEL = os.environ.get("LIGASIM_GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_TIMEOUT_SECONDS = 30.0
GEMINI_RETRIES = int(os.environ.get("LIGASIM_GEMINI_RETRIES", "2"))

# Strength is on a 1-100 scale; these shape the offline scoring model.
BASE_GOAL_RATE = 1.3
HOME_GOAL_BONUS = 0.15
STRENGTH_GOAL_SCALE = 0.03
PENALTY_STRENGTH_COEF = 0.02


def gemini_api_key() -> Optional[str]:
    return os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY") or None


@dataclass
class CompetitionConfig:
    id: str = ""
    name: str = "LigaSim 2000"
    type: str = LEAGUE_FORMAT
    team_count: int = 16
    double_round: bool = True
    qualification_spots: int = 4
    relegation_spots: int = 3
    cup_format: str = GROUP_KNOCKOUT
    group_count: int = 4
    advancing_per_group: int = 2
    double_leg_playoffs: bool = False

    @property
    def is_league(self) -> bool:
        return self.type == LEAGUE_FORMAT

    @property
    def has_groups(self) -> bool:
        return self.type == CUP_FORMAT and self.cup_format == GROUP_KNOCKOUT

    @property
    def group_size(self) -> int:
        return math.ceil(self.team_count / self.group_count)

    def validate(self, competitors: Optional[Sequence[Competitor]] = None) -> None:
        if self.type not in (LEAGUE_FORMAT, CUP_FORMAT):
            raise ConfigurationError(f"Unknown competition type: {self.type}")
        if self.type == CUP_FORMAT and self.cup_format not in (KNOCKOUT, GROUP_KNOCKOUT):
            raise ConfigurationError(f"Unknown cup format: {self.cup_format}")
        if competitors is not None:
            ids = [c.id for c in competitors]
            if len(ids) != self.team_count:
                raise ConfigurationError(
                    f"Roster has {len(ids)} competitors, config expects {self.team_count}"
                )
            if len(set(ids)) != len(ids):
                raise ConfigurationError("Competitor ids must be unique")

        if self.is_league:
            self._validate_league()
        elif self.has_groups:
            self._validate_groups()
        elif self.team_count not in STAGE_BY_SIZE:
            raise ConfigurationError(
                f"Knockout cup needs {sorted(STAGE_BY_SIZE)} competitors, got {self.team_count}"
            )

    def _validate_league(self) -> None:
        if self.team_count < 2 or self.team_count % 2:
            raise ConfigurationError(
                f"League needs an even number of competitors, got {self.team_count}"
            )
        if self.qualification_spots < 0 or self.relegation_spots < 0:
            raise ConfigurationError("Qualification and relegation spots cannot be negative")
        if self.qualification_spots + self.relegation_spots > self.team_count:
            raise ConfigurationError(
                "Qualification and relegation spots exceed the number of competitors"
            )

    def _validate_groups(self) -> None:
        if not 1 <= self.group_count <= MAX_GROUPS:
            raise ConfigurationError(f"group_count must be between 1 and {MAX_GROUPS}")
        if self.team_count % self.group_count:
            raise ConfigurationError(
                f"{self.group_count} groups do not evenly divide {self.team_count} competitors"
            )
        size = self.team_count // self.group_count
        if size < 2 or size % 2:
            raise ConfigurationError(f"Groups of {size} cannot play a round-robin")
        if not 1 <= self.advancing_per_group < size:
            raise ConfigurationError(
                f"advancing_per_group must be between 1 and {size - 1}, "
                f"got {self.advancing_per_group}"
            )
        qualifiers = self.group_count * self.advancing_per_group
        if qualifiers not in STAGE_BY_SIZE:
            raise ConfigurationError(
                f"{qualifiers} qualifiers do not form a knockout bracket"
            )

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "CompetitionConfig":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


def default_competitors(count: int, strengths: Optional[List[int]] = None) -> List[Competitor]:
    strengths = strengths or []
    return [
        Competitor(
            id=f"t{i + 1}",
            name=DEFAULT_NAMES[i] if i < len(DEFAULT_NAMES) else f"Team {i + 1}",
            strength=strengths[i] if i < len(strengths) else 70,
        )
        for i in range(count)
    ]


DEFAULT_NAMES = [
    "Rio de Janeiro FC",
    "Sao Paulo United",
    "Minas Gerais Athletic",
    "Porto Alegre City",
    "Salvador Solar",
    "Curitiba Coxa",
    "Fortaleza Lions",
    "Recife Sharks",
    "Brasilia Capital",
    "Santos Beach",
    "Manaus Jungle",
    "Belem Harbour",
    "Goiania Green",
    "Natal Dunes",
    "Florianopolis Island",
    "Campinas Rovers",
]
