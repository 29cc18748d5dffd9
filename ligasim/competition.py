from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple, Union
from uuid import uuid4

import numpy as np
import pandas as pd

from ligasim.config import CompetitionConfig
from ligasim.errors import InvalidResultError, UnknownMatchError
from ligasim.groups import generate_group_stage
from ligasim.knockout import (
    aggregate_score,
    champion,
    find_other_leg,
    generate_bracket_from_groups,
    generate_knockout_round,
    generate_next_knockout_matches,
)
from ligasim.models import (
    FINAL,
    GROUP_STAGE,
    Competitor,
    KnockoutMatch,
    Match,
    NewsItem,
    TwoLegMatch,
)
from ligasim.round_robin import generate_fixtures
from ligasim.score_source import (
    ScoreSource,
    SimulatedResult,
    draw_penalty_winner,
    fallback_result,
)
from ligasim.standings import calculate_table

logger = logging.getLogger(__name__)


@dataclass
class CompetitionState:
    config: CompetitionConfig
    competitors: List[Competitor]
    matches: List[Match] = field(default_factory=list)
    news: List[NewsItem] = field(default_factory=list)
    current_round: int = 1

    def competitor(self, competitor_id: str) -> Optional[Competitor]:
        for c in self.competitors:
            if c.id == competitor_id:
                return c
        return None

    def match(self, match_id: str) -> Match:
        return self.matches[self._match_index(match_id)]

    def _match_index(self, match_id: str) -> int:
        for idx, m in enumerate(self.matches):
            if m.id == match_id:
                return idx
        raise UnknownMatchError(match_id)

    def copy(self) -> "CompetitionState":
        return replace(
            self,
            competitors=list(self.competitors),
            matches=[replace(m) for m in self.matches],
            news=list(self.news),
        )


@dataclass(frozen=True)
class ScoreSubmitted:
    match_id: str
    home_score: int
    away_score: int
    penalty_winner_id: Optional[str] = None
    commentary: Optional[str] = None


@dataclass(frozen=True)
class StageAdvanceRequested:
    round_number: Optional[int] = None


Event = Union[ScoreSubmitted, StageAdvanceRequested]


def _now() -> str:
    return pd.Timestamp.now(tz="UTC").isoformat()


def _news(round_number: int, headline: str, content: str) -> NewsItem:
    return NewsItem(
        id=uuid4().hex,
        round=round_number,
        headline=headline,
        content=content,
        timestamp=_now(),
    )


def round_is_complete(matches: Sequence[Match], round_number: int) -> bool:
    round_matches = [m for m in matches if m.round == round_number]
    return bool(round_matches) and all(m.played for m in round_matches)


def check_stage_transition(
    config: CompetitionConfig,
    competitors: Sequence[Competitor],
    matches: Sequence[Match],
    round_number: int,
) -> List[Match]:
    """
    Fixtures to append after `round_number` completes, usually none.

    Group play hands over to the knockout draw once its last round is done;
    a finished knockout stage produces the next one. Nothing is generated
    when the target round already has fixtures, so calling this again on
    the same matches is harmless.
    """
    if not round_is_complete(matches, round_number):
        return []
    round_matches = [m for m in matches if m.round == round_number]

    if any(m.stage == GROUP_STAGE for m in round_matches):
        if not config.has_groups:
            return []
        group_matches = [m for m in matches if m.stage == GROUP_STAGE]
        # an earlier group round edited last still completes the stage
        if not all(m.played for m in group_matches):
            return []
        last_round = max(m.round for m in group_matches)
        if any(m.round == last_round + 1 for m in matches):
            return []
        generated = generate_bracket_from_groups(
            competitors,
            matches,
            config.advancing_per_group,
            last_round + 1,
            config.double_leg_playoffs,
        )
        logger.info(
            "Group stage complete, drew %d knockout fixtures from round %d",
            len(generated),
            last_round + 1,
        )
        return generated

    knockout = [m for m in round_matches if m.is_knockout]
    if not knockout:
        return []
    stage = knockout[0].stage
    if stage == FINAL:
        return []
    stage_matches = [m for m in matches if m.stage == stage]
    if not all(m.played for m in stage_matches):
        return []
    last_round = max(m.round for m in stage_matches)
    if any(m.round == last_round + 1 for m in matches):
        return []
    generated = generate_next_knockout_matches(
        stage_matches, last_round + 1, config.double_leg_playoffs
    )
    if generated:
        logger.info(
            "%s complete, scheduled %s from round %d",
            stage,
            generated[0].stage,
            last_round + 1,
        )
    return generated


def _open_second_leg(match: Match, matches: Sequence[Match]) -> bool:
    if not isinstance(match, TwoLegMatch) or match.leg != 2:
        return False
    leg1 = find_other_leg(match, matches)
    return leg1 is not None and not leg1.played


def tie_is_level(match: Match, matches: Sequence[Match]) -> bool:
    """Whether a played knockout match leaves its tie level, on aggregate for a second leg."""
    if not isinstance(match, KnockoutMatch) or not match.played:
        return False
    if not isinstance(match, TwoLegMatch):
        return match.is_level
    if match.leg != 2:
        return False
    leg1 = find_other_leg(match, matches)
    if leg1 is None or not leg1.played:
        return False
    team_a, team_b = aggregate_score(leg1, match)
    return team_a == team_b


def needs_penalty_winner(match: Match, matches: Sequence[Match]) -> bool:
    """
    Whether a submitted shootout winner should be kept on this match.

    True for a level tie, and also for a second leg entered before its first
    leg: the aggregate is still open, so the winner is kept and only
    consulted if the tie ends level.
    """
    if not isinstance(match, KnockoutMatch) or not match.played:
        return False
    return tie_is_level(match, matches) or _open_second_leg(match, matches)


def _apply_score(state: CompetitionState, event: ScoreSubmitted) -> CompetitionState:
    new_state = state.copy()
    idx = new_state._match_index(event.match_id)
    match = new_state.matches[idx]
    if event.home_score < 0 or event.away_score < 0:
        raise InvalidResultError(f"Negative score for {match.id}", match.id)
    penalty_winner = event.penalty_winner_id
    if penalty_winner is not None and not match.involves(penalty_winner):
        raise InvalidResultError(
            f"{penalty_winner} is not playing in {match.id}", match.id
        )

    updated = replace(
        match,
        home_score=int(event.home_score),
        away_score=int(event.away_score),
        played=True,
        commentary=event.commentary or "Result adjusted manually.",
    )
    if isinstance(updated, KnockoutMatch):
        if not needs_penalty_winner(updated, new_state.matches):
            penalty_winner = None
        updated.penalty_winner_id = penalty_winner
        if penalty_winner is not None and tie_is_level(updated, new_state.matches):
            winner = new_state.competitor(penalty_winner)
            name = winner.name if winner is not None else penalty_winner
            updated.commentary += f" ({name} wins on penalties)"
    elif penalty_winner is not None:
        logger.debug("Ignoring penalty winner on %s match %s", match.stage, match.id)

    new_state.matches[idx] = updated
    return new_state


def reduce(state: CompetitionState, event: Event) -> Tuple[CompetitionState, List[Match]]:
    """
    Apply one event and run the stage transition check.

    Returns the new state and the fixtures the transition appended. The
    given state is left untouched, also when the transition raises.
    """
    if isinstance(event, ScoreSubmitted):
        new_state = _apply_score(state, event)
        round_number = new_state.match(event.match_id).round
    elif isinstance(event, StageAdvanceRequested):
        new_state = state.copy()
        round_number = (
            event.round_number if event.round_number is not None else state.current_round
        )
    else:
        raise TypeError(f"Unknown event: {event!r}")

    generated = check_stage_transition(
        new_state.config, new_state.competitors, new_state.matches, round_number
    )
    if generated:
        new_state.matches.extend(generated)
        if any(m.round == round_number and m.stage == GROUP_STAGE for m in new_state.matches):
            new_state.news.insert(
                0,
                _news(
                    round_number,
                    "Knockout Stage Set!",
                    "The group stages have concluded. "
                    "The draw for the knockout phase has been made.",
                ),
            )
    return new_state, generated


def start_competition(
    config: CompetitionConfig,
    competitors: Sequence[Competitor],
    rng: Optional[np.random.Generator] = None,
) -> CompetitionState:
    config.validate(competitors)
    rng = rng if rng is not None else np.random.default_rng()
    if not config.id:
        config = replace(config, id=f"game-{uuid4().hex[:12]}")

    roster = list(competitors)
    if config.is_league:
        matches = generate_fixtures(roster, config.double_round)
    elif config.has_groups:
        matches, roster = generate_group_stage(
            roster, config.group_count, config.double_round, rng
        )
    else:
        matches = generate_knockout_round(roster, 1, config.double_leg_playoffs, rng)

    logger.info(
        "Started %s (%s) with %d competitors and %d fixtures",
        config.name,
        config.id,
        len(roster),
        len(matches),
    )
    kickoff = NewsItem(
        id="init",
        round=0,
        headline=f"{config.name} Begins!",
        content=(
            f"Welcome to {config.name}. The {config.type.lower()} format is set. "
            "Let the games begin!"
        ),
        timestamp=_now(),
    )
    return CompetitionState(
        config=config, competitors=roster, matches=matches, news=[kickoff], current_round=1
    )


def simulate_round(
    state: CompetitionState,
    score_source: Optional[ScoreSource] = None,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[CompetitionState, List[Match]]:
    """
    Play every unplayed match of the current round.

    Scores come from `score_source`; without one, or when it returns None,
    strength-weighted simulated scores stand in. Level knockout ties get a
    penalty winner drawn here, since score sources do not decide shootouts.
    """
    rng = rng if rng is not None else np.random.default_rng()
    pending = [m for m in state.matches if m.round == state.current_round and not m.played]
    if not pending:
        return state, []
    by_id = {c.id: c for c in state.competitors}

    simulation = score_source.simulate_round(pending, state.competitors) if score_source else None
    results: Dict[str, SimulatedResult] = {}
    if simulation is None:
        logger.warning(
            "No score source result for round %d, using simulated scores", state.current_round
        )
    else:
        results = {r.match_id: r for r in simulation.results}
    for m in pending:
        if m.id not in results:
            if simulation is not None:
                logger.warning("Score source skipped %s, using a simulated score", m.id)
            results[m.id] = fallback_result(m, by_id, rng)

    if simulation is not None and simulation.headline:
        state = replace(
            state,
            news=[
                _news(state.current_round, simulation.headline, simulation.content or "")
            ]
            + list(state.news),
        )

    generated: List[Match] = []
    for m in pending:
        result = results[m.id]
        scored = replace(m, home_score=result.home_score, away_score=result.away_score, played=True)
        penalty_winner = None
        if tie_is_level(scored, state.matches):
            penalty_winner = draw_penalty_winner(m, by_id, rng)
        state, new_matches = reduce(
            state,
            ScoreSubmitted(
                match_id=m.id,
                home_score=result.home_score,
                away_score=result.away_score,
                penalty_winner_id=penalty_winner,
                commentary=result.commentary or "Simulated result.",
            ),
        )
        generated.extend(new_matches)
    return state, generated


def next_round(state: CompetitionState) -> CompetitionState:
    if any(m.round == state.current_round + 1 for m in state.matches):
        return replace(state, current_round=state.current_round + 1)
    return state


def previous_round(state: CompetitionState) -> CompetitionState:
    if state.current_round > 1:
        return replace(state, current_round=state.current_round - 1)
    return state


def fixtures_for_round(matches: Sequence[Match], round_number: int) -> List[Match]:
    return [m for m in matches if m.round == round_number]


def total_rounds(matches: Sequence[Match]) -> int:
    return max((m.round for m in matches), default=0)


def is_finished(state: CompetitionState) -> bool:
    if state.config.is_league:
        return bool(state.matches) and all(m.played for m in state.matches)
    return champion(state.matches) is not None


def leader(state: CompetitionState) -> Optional[Competitor]:
    table = calculate_table(state.competitors, state.matches)
    return state.competitor(table[0].competitor_id) if table else None


def results_frame(matches: Sequence[Match]) -> pd.DataFrame:
    return pd.DataFrame([m.to_dict() for m in matches])
