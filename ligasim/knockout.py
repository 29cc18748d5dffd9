from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, TypeVar

import numpy as np

from ligasim.errors import UnresolvedTieError
from ligasim.models import (
    FINAL,
    GROUP_STAGE,
    Competitor,
    KnockoutMatch,
    Match,
    TwoLegMatch,
    stage_for_size,
)
from ligasim.standings import group_tables

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Qualifier:
    competitor_id: str
    group: str
    rank: int


@dataclass
class BracketTie:
    stage: str
    home_id: str
    away_id: str
    legs: List[Match] = field(default_factory=list)
    aggregate: Optional[Tuple[int, int]] = None
    penalty_winner_id: Optional[str] = None
    winner_id: Optional[str] = None


def pair_top_bottom(entries: Sequence[T]) -> List[Tuple[T, T]]:
    count = len(entries)
    return [(entries[i], entries[count - 1 - i]) for i in range(count // 2)]


def pair_adjacent(entries: Sequence[T]) -> List[Tuple[T, T]]:
    return [(entries[i], entries[i + 1]) for i in range(0, len(entries) - 1, 2)]


def build_ties(
    pairs: Sequence[Tuple[str, str]], round_number: int, double_leg: bool
) -> List[Match]:
    """
    Fixtures for one knockout stage, named after the number of entrants.

    Two-legged ties put leg 2 one round later with home/away reversed and
    both legs pointing at each other. The final is always a single match.
    """
    stage = stage_for_size(2 * len(pairs))
    two_legs = double_leg and stage != FINAL
    matches: List[Match] = []
    for k, (home, away) in enumerate(pairs, start=1):
        base = f"ko-{stage}-m{k}"
        if not two_legs:
            matches.append(
                KnockoutMatch(id=base, round=round_number, home_id=home, away_id=away, stage=stage)
            )
            continue
        first = TwoLegMatch(
            id=f"{base}-L1",
            round=round_number,
            home_id=home,
            away_id=away,
            stage=stage,
            leg=1,
            related_match_id=f"{base}-L2",
        )
        second = TwoLegMatch(
            id=f"{base}-L2",
            round=round_number + 1,
            home_id=away,
            away_id=home,
            stage=stage,
            leg=2,
            related_match_id=first.id,
        )
        matches.extend([first, second])
    return matches


def generate_knockout_round(
    competitors: Sequence[Competitor],
    round_number: int = 1,
    double_leg: bool = False,
    rng: Optional[np.random.Generator] = None,
) -> List[Match]:
    """Random draw: shuffle the roster and pair neighbours."""
    stage_for_size(len(competitors))
    rng = rng if rng is not None else np.random.default_rng()
    ids = [c.id for c in competitors]
    rng.shuffle(ids)
    return build_ties(pair_adjacent(ids), round_number, double_leg)


def select_qualifiers(
    competitors: Sequence[Competitor],
    matches: Sequence[Match],
    advancing_per_group: int,
) -> List[Qualifier]:
    group_matches = [m for m in matches if m.stage == GROUP_STAGE]
    qualifiers: List[Qualifier] = []
    for group, rows in group_tables(competitors, group_matches).items():
        for rank, row in enumerate(rows[:advancing_per_group], start=1):
            qualifiers.append(Qualifier(competitor_id=row.competitor_id, group=group, rank=rank))
    return qualifiers


def generate_bracket_from_groups(
    competitors: Sequence[Competitor],
    matches: Sequence[Match],
    advancing_per_group: int,
    round_number: int,
    double_leg: bool = False,
) -> List[Match]:
    """
    First knockout stage seeded from the final group tables.

    Qualifiers ordered by group then rank are paired first against last,
    second against second to last, and so on. Group-mates are kept apart
    only as far as that ordering manages it.
    """
    qualifiers = select_qualifiers(competitors, matches, advancing_per_group)
    stage_for_size(len(qualifiers))
    logger.info(
        "Qualified from groups: %s",
        ", ".join(f"{q.group}{q.rank}={q.competitor_id}" for q in qualifiers),
    )
    pairs = [(a.competitor_id, b.competitor_id) for a, b in pair_top_bottom(qualifiers)]
    return build_ties(pairs, round_number, double_leg)


def find_other_leg(match: Match, matches: Sequence[Match]) -> Optional[TwoLegMatch]:
    if not isinstance(match, TwoLegMatch):
        return None
    for other in matches:
        if other.id == match.id or not isinstance(other, TwoLegMatch):
            continue
        if other.id == match.related_match_id or other.related_match_id == match.id:
            return other
    return None


def aggregate_score(leg1: Match, leg2: Match) -> Tuple[int, int]:
    """Goals for (leg-1 home side, leg-1 away side) over both legs."""
    return (
        leg1.home_score + leg2.away_score,
        leg1.away_score + leg2.home_score,
    )


def resolve_tie_winner(match: Match, stage_matches: Sequence[Match] = ()) -> str:
    if not isinstance(match, KnockoutMatch):
        raise ValueError(f"Match {match.id} is not a knockout match")
    if not match.played:
        raise UnresolvedTieError(match.id, "not played")

    if isinstance(match, TwoLegMatch):
        other = find_other_leg(match, stage_matches)
        if other is None:
            raise UnresolvedTieError(match.id, "other leg is missing")
        leg1, leg2 = (match, other) if match.leg == 1 else (other, match)
        if not leg2.played:
            raise UnresolvedTieError(leg2.id, "second leg not played")
        team_a, team_b = aggregate_score(leg1, leg2)
        if team_a > team_b:
            return leg1.home_id
        if team_b > team_a:
            return leg1.away_id
        decider = leg2
    else:
        if match.home_score > match.away_score:
            return match.home_id
        if match.away_score > match.home_score:
            return match.away_id
        decider = match

    if decider.penalty_winner_id is None:
        raise UnresolvedTieError(decider.id, "level with no penalty winner recorded")
    if not decider.involves(decider.penalty_winner_id):
        raise UnresolvedTieError(
            decider.id, f"penalty winner {decider.penalty_winner_id} is not in the tie"
        )
    return decider.penalty_winner_id


def stage_winners(stage_matches: Sequence[Match]) -> List[str]:
    """Tie winners in plain match-id string order, so "ko-R32-m10" comes before "ko-R32-m2"."""
    consumed = set()
    winners: List[str] = []
    for m in sorted(stage_matches, key=lambda m: m.id):
        if m.id in consumed:
            continue
        other = find_other_leg(m, stage_matches)
        if other is not None:
            consumed.add(other.id)
        winners.append(resolve_tie_winner(m, stage_matches))
    return winners


def generate_next_knockout_matches(
    stage_matches: Sequence[Match], round_number: int, double_leg: bool = False
) -> List[Match]:
    """Next stage from a completed one; the winners meet first against last."""
    winners = stage_winners(stage_matches)
    if len(winners) < 2:
        return []
    stage_for_size(len(winners))
    return build_ties(pair_top_bottom(winners), round_number, double_leg)


def _tie_decided(legs: Sequence[Match]) -> bool:
    if not all(m.played for m in legs):
        return False
    decider = legs[-1]
    if len(legs) == 2:
        team_a, team_b = aggregate_score(legs[0], legs[1])
        level = team_a == team_b
    else:
        level = decider.is_level
    return not level or decider.penalty_winner_id is not None


def bracket_ties(matches: Sequence[Match]) -> List[BracketTie]:
    """One entry per knockout tie, in stage then draw order."""
    knockout = [m for m in matches if isinstance(m, KnockoutMatch)]
    ties: List[BracketTie] = []
    for m in sorted(knockout, key=lambda m: (m.round, m.id)):
        if isinstance(m, TwoLegMatch) and m.leg == 2:
            continue
        other = find_other_leg(m, knockout)
        legs: List[Match] = [m] if other is None else [m, other]
        tie = BracketTie(stage=m.stage, home_id=m.home_id, away_id=m.away_id, legs=legs)
        if len(legs) == 2 and all(leg.played for leg in legs):
            tie.aggregate = aggregate_score(legs[0], legs[1])
        elif len(legs) == 1 and m.played:
            tie.aggregate = (m.home_score, m.away_score)
        if tie.aggregate is not None and tie.aggregate[0] == tie.aggregate[1]:
            tie.penalty_winner_id = legs[-1].penalty_winner_id
        if _tie_decided(legs):
            tie.winner_id = resolve_tie_winner(m, knockout)
        ties.append(tie)
    return ties


def champion(matches: Sequence[Match]) -> Optional[str]:
    for tie in bracket_ties(matches):
        if tie.stage == FINAL and tie.winner_id is not None:
            return tie.winner_id
    return None
