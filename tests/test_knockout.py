from collections import Counter

import numpy as np
import pytest

from ligasim.config import default_competitors
from ligasim.errors import UnresolvedTieError, UnsupportedBracketSize
from ligasim.knockout import (
    aggregate_score,
    bracket_ties,
    build_ties,
    champion,
    find_other_leg,
    generate_bracket_from_groups,
    generate_knockout_round,
    generate_next_knockout_matches,
    pair_top_bottom,
    resolve_tie_winner,
    select_qualifiers,
    stage_winners,
)
from ligasim.models import (
    FINAL,
    GROUP_STAGE,
    QUARTER_FINAL,
    R16,
    SEMI_FINAL,
    Competitor,
    KnockoutMatch,
    Match,
    TwoLegMatch,
)


def _score(match, hs, as_, penalty_winner_id=None):
    match.home_score = hs
    match.away_score = as_
    match.played = True
    if penalty_winner_id is not None:
        match.penalty_winner_id = penalty_winner_id
    return match


def _legs(hs1, as1, hs2, as2, penalty_winner_id=None):
    first, second = build_ties([("a", "b"), ("c", "d")], round_number=1, double_leg=True)[:2]
    _score(first, hs1, as1)
    _score(second, hs2, as2, penalty_winner_id)
    return first, second


def test_stage_winners_follow_plain_id_order():
    pairs = [(f"h{k}", f"a{k}") for k in range(1, 17)]
    matches = [_score(m, 1, 0) for m in build_ties(pairs, round_number=1, double_leg=False)]

    winners = stage_winners(matches)

    assert winners[:3] == ["h1", "h10", "h11"]
    assert winners[8] == "h2"
    assert sorted(winners) == sorted(h for h, _ in pairs)


def test_pair_top_bottom():
    assert pair_top_bottom(["a", "b", "c", "d"]) == [("a", "d"), ("b", "c")]


@pytest.mark.parametrize("size, stage", [(16, R16), (8, QUARTER_FINAL), (4, SEMI_FINAL), (2, FINAL)])
def test_random_draw_names_the_stage_after_entrants(size, stage):
    matches = generate_knockout_round(default_competitors(size), rng=np.random.default_rng(2))

    assert len(matches) == size // 2
    assert {m.stage for m in matches} == {stage}
    assert all(isinstance(m, KnockoutMatch) for m in matches)
    entrants = Counter(cid for m in matches for cid in (m.home_id, m.away_id))
    assert set(entrants.values()) == {1}
    assert len(entrants) == size


@pytest.mark.parametrize("size", [3, 6, 12, 64])
def test_random_draw_rejects_non_bracket_sizes(size):
    with pytest.raises(UnsupportedBracketSize):
        generate_knockout_round(default_competitors(size))


def test_two_leg_ties_link_and_reverse():
    first, second = build_ties([("a", "b"), ("c", "d")], round_number=3, double_leg=True)[:2]

    assert isinstance(first, TwoLegMatch) and isinstance(second, TwoLegMatch)
    assert first.stage == second.stage == SEMI_FINAL
    assert (first.leg, second.leg) == (1, 2)
    assert (second.home_id, second.away_id) == ("b", "a")
    assert second.round == first.round + 1
    assert first.related_match_id == second.id
    assert second.related_match_id == first.id


def test_two_leg_semi_final_ids():
    matches = build_ties([("a", "d"), ("b", "c")], round_number=4, double_leg=True)

    assert [m.id for m in matches] == [
        "ko-SEMI_FINAL-m1-L1",
        "ko-SEMI_FINAL-m1-L2",
        "ko-SEMI_FINAL-m2-L1",
        "ko-SEMI_FINAL-m2-L2",
    ]
    assert [m.round for m in matches] == [4, 5, 4, 5]
    assert find_other_leg(matches[0], matches) is matches[1]
    assert find_other_leg(matches[3], matches) is matches[2]


def test_final_is_never_two_legged():
    (final,) = build_ties([("a", "b")], round_number=6, double_leg=True)

    assert final.stage == FINAL
    assert type(final) is KnockoutMatch
    assert final.id == "ko-FINAL-m1"


def test_aggregate_counts_each_side_across_legs():
    first, second = _legs(2, 1, 0, 1)

    assert aggregate_score(first, second) == (3, 1)
    assert resolve_tie_winner(first, [first, second]) == "a"
    assert resolve_tie_winner(second, [first, second]) == "a"


def test_aggregate_win_for_leg_one_away_side():
    first, second = _legs(1, 0, 3, 0)

    assert aggregate_score(first, second) == (1, 3)
    assert resolve_tie_winner(first, [first, second]) == "b"


def test_level_aggregate_uses_second_leg_penalties():
    first, second = _legs(1, 0, 1, 0, penalty_winner_id="a")

    assert aggregate_score(first, second) == (1, 1)
    assert resolve_tie_winner(first, [first, second]) == "a"


def test_single_match_decided_on_penalties():
    match = _score(KnockoutMatch(id="f", round=1, home_id="a", away_id="b"), 2, 2, "b")

    assert resolve_tie_winner(match) == "b"


def test_unresolved_ties_raise():
    level = _score(KnockoutMatch(id="f", round=1, home_id="a", away_id="b"), 0, 0)
    with pytest.raises(UnresolvedTieError):
        resolve_tie_winner(level)

    stranger = _score(KnockoutMatch(id="g", round=1, home_id="a", away_id="b"), 1, 1, "z")
    with pytest.raises(UnresolvedTieError):
        resolve_tie_winner(stranger)

    unplayed = KnockoutMatch(id="h", round=1, home_id="a", away_id="b")
    with pytest.raises(UnresolvedTieError):
        resolve_tie_winner(unplayed)


def test_two_leg_tie_needs_both_legs():
    first, second = build_ties([("a", "b"), ("c", "d")], round_number=1, double_leg=True)[:2]
    _score(first, 3, 0)

    with pytest.raises(UnresolvedTieError):
        resolve_tie_winner(first, [first, second])
    with pytest.raises(UnresolvedTieError):
        resolve_tie_winner(first, [first])


def test_table_match_has_no_tie_winner():
    match = _score(Match(id="m", round=1, home_id="a", away_id="b"), 1, 0)

    with pytest.raises(ValueError):
        resolve_tie_winner(match)


def test_next_stage_pairs_first_winner_against_last():
    quarters = build_ties([("a", "b"), ("c", "d"), ("e", "f"), ("g", "h")], 1, False)
    for m in quarters:
        _score(m, 1, 0)

    assert stage_winners(quarters) == ["a", "c", "e", "g"]
    semis = generate_next_knockout_matches(quarters, round_number=2)
    assert [(m.stage, m.home_id, m.away_id, m.round) for m in semis] == [
        (SEMI_FINAL, "a", "g", 2),
        (SEMI_FINAL, "c", "e", 2),
    ]


def test_stage_winners_count_two_leg_ties_once():
    matches = build_ties([("a", "d"), ("b", "c")], round_number=1, double_leg=True)
    _score(matches[0], 0, 1)
    _score(matches[1], 0, 0)
    _score(matches[2], 2, 0)
    _score(matches[3], 1, 0)

    assert stage_winners(matches) == ["d", "b"]


def test_final_stage_generates_nothing():
    (final,) = build_ties([("a", "b")], round_number=5, double_leg=False)
    _score(final, 2, 1)

    assert generate_next_knockout_matches([final], round_number=6) == []


def _group_roster_and_results():
    roster = [
        Competitor("a1", "A1", group="A"),
        Competitor("a2", "A2", group="A"),
        Competitor("b1", "B1", group="B"),
        Competitor("b2", "B2", group="B"),
    ]
    matches = [
        _score(Match("gA", 1, "a2", "a1", stage=GROUP_STAGE, group="A"), 0, 2),
        _score(Match("gB", 1, "b1", "b2", stage=GROUP_STAGE, group="B"), 3, 1),
    ]
    return roster, matches


def test_select_qualifiers_by_group_then_rank():
    roster, matches = _group_roster_and_results()

    qualifiers = select_qualifiers(roster, matches, 2)

    assert [(q.group, q.rank, q.competitor_id) for q in qualifiers] == [
        ("A", 1, "a1"),
        ("A", 2, "a2"),
        ("B", 1, "b1"),
        ("B", 2, "b2"),
    ]


def test_bracket_from_groups_pairs_first_with_last():
    roster, matches = _group_roster_and_results()

    bracket = generate_bracket_from_groups(roster, matches, 2, round_number=2)

    assert [(m.stage, m.home_id, m.away_id, m.round) for m in bracket] == [
        (SEMI_FINAL, "a1", "b2", 2),
        (SEMI_FINAL, "a2", "b1", 2),
    ]


def test_bracket_from_groups_rejects_odd_qualifier_count():
    roster, matches = _group_roster_and_results()
    roster.extend([Competitor("c1", "C1", group="C"), Competitor("c2", "C2", group="C")])

    with pytest.raises(UnsupportedBracketSize):
        generate_bracket_from_groups(roster, matches, 1, round_number=2)


def test_bracket_ties_and_champion():
    semis = build_ties([("a", "d"), ("b", "c")], round_number=1, double_leg=True)
    _score(semis[0], 1, 0)
    _score(semis[1], 0, 0)
    _score(semis[2], 1, 1)
    _score(semis[3], 1, 1, penalty_winner_id="c")
    (final,) = generate_next_knockout_matches(semis, round_number=3)

    assert champion(semis + [final]) is None
    _score(final, 2, 0)

    ties = bracket_ties(semis + [final])
    assert [(t.stage, t.home_id, t.away_id) for t in ties] == [
        (SEMI_FINAL, "a", "d"),
        (SEMI_FINAL, "b", "c"),
        (FINAL, "a", "c"),
    ]
    assert ties[0].aggregate == (1, 0) and ties[0].winner_id == "a"
    assert ties[1].aggregate == (2, 2) and ties[1].penalty_winner_id == "c"
    assert ties[1].winner_id == "c"
    assert champion(semis + [final]) == "a"


def test_bracket_tie_without_result_has_no_winner():
    (final,) = build_ties([("a", "b")], round_number=1, double_leg=False)

    (tie,) = bracket_ties([final])

    assert tie.aggregate is None and tie.winner_id is None
