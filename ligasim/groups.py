from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ligasim.config import MAX_GROUPS
from ligasim.errors import ConfigurationError
from ligasim.models import GROUP_STAGE, Competitor, Match
from ligasim.round_robin import generate_fixtures

logger = logging.getLogger(__name__)


def group_labels(group_count: int) -> List[str]:
    if not 1 <= group_count <= MAX_GROUPS:
        raise ConfigurationError(f"group_count must be between 1 and {MAX_GROUPS}")
    return [chr(ord("A") + i) for i in range(group_count)]


def generate_group_stage(
    competitors: Sequence[Competitor],
    group_count: int,
    double_round: bool = False,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[List[Match], List[Competitor]]:
    """
    Draw competitors into labelled groups and schedule each group's round-robin.

    Groups are contiguous slices of ceil(total / group_count) competitors
    from a shuffled roster, so the last groups can be smaller. Returns the
    group fixtures ordered by round and the roster with group labels set.
    """
    labels = group_labels(group_count)
    rng = rng if rng is not None else np.random.default_rng()
    shuffled = list(competitors)
    rng.shuffle(shuffled)
    size = math.ceil(len(shuffled) / group_count)

    matches: List[Match] = []
    labelled: List[Competitor] = []
    for i, label in enumerate(labels):
        members = [c.with_group(label) for c in shuffled[i * size:(i + 1) * size]]
        if not members:
            raise ConfigurationError(
                f"Group {label} is empty: {len(shuffled)} competitors for {group_count} groups"
            )
        labelled.extend(members)
        matches.extend(
            generate_fixtures(
                members,
                double_round=double_round,
                stage=GROUP_STAGE,
                group=label,
                id_prefix=f"g{label}-",
            )
        )
        logger.debug("Group %s: %s", label, ", ".join(c.id for c in members))

    return sorted(matches, key=lambda m: m.round), labelled
