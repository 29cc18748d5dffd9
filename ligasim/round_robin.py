from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ligasim.errors import ConfigurationError
from ligasim.models import LEAGUE, Competitor, Match

logger = logging.getLogger(__name__)


def generate_fixtures(
    competitors: Sequence[Competitor],
    double_round: bool = False,
    stage: str = LEAGUE,
    group: Optional[str] = None,
    id_prefix: str = "",
) -> List[Match]:
    """
    Circle-method round-robin over exactly `competitors`.

    Position 0 stays fixed while the others rotate one place per round, so
    N competitors play N-1 rounds of N/2 matches and meet each other once.
    With `double_round` the mirrored fixtures (home/away swapped) follow as
    rounds N..2(N-1).
    """
    n = len(competitors)
    if n < 2:
        raise ConfigurationError(f"Round-robin needs at least 2 competitors, got {n}")
    if n % 2:
        raise ConfigurationError(f"Round-robin needs an even number of competitors, got {n}")

    rotation = list(competitors)
    rounds_per_leg = n - 1
    matches: List[Match] = []
    for rnd in range(1, rounds_per_leg + 1):
        for k in range(n // 2):
            home = rotation[k]
            away = rotation[n - 1 - k]
            matches.append(
                Match(
                    id=f"{id_prefix}r{rnd}-m{k + 1}",
                    round=rnd,
                    home_id=home.id,
                    away_id=away.id,
                    stage=stage,
                    group=group,
                )
            )
        rotation.insert(1, rotation.pop())

    if double_round:
        for m in list(matches):
            rnd = m.round + rounds_per_leg
            matches.append(
                Match(
                    id=f"{id_prefix}r{rnd}-{m.id.rsplit('-', 1)[-1]}",
                    round=rnd,
                    home_id=m.away_id,
                    away_id=m.home_id,
                    stage=stage,
                    group=group,
                )
            )

    logger.debug(
        "Generated %d fixtures over %d rounds for %d competitors%s",
        len(matches),
        rounds_per_leg * (2 if double_round else 1),
        n,
        f" (group {group})" if group else "",
    )
    return sorted(matches, key=lambda m: m.round)
