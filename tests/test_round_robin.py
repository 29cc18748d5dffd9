from collections import Counter

import pytest

from ligasim.config import default_competitors
from ligasim.errors import ConfigurationError
from ligasim.models import GROUP_STAGE, LEAGUE
from ligasim.round_robin import generate_fixtures


@pytest.mark.parametrize("n", [2, 4, 6, 10, 16])
def test_single_round_has_n_minus_one_rounds_of_half_n(n):
    matches = generate_fixtures(default_competitors(n))

    per_round = Counter(m.round for m in matches)
    assert sorted(per_round) == list(range(1, n))
    assert all(count == n // 2 for count in per_round.values())


@pytest.mark.parametrize("n", [4, 8, 12])
def test_every_pair_meets_exactly_once(n):
    matches = generate_fixtures(default_competitors(n))

    pairs = Counter(frozenset((m.home_id, m.away_id)) for m in matches)
    assert len(pairs) == n * (n - 1) // 2
    assert set(pairs.values()) == {1}


@pytest.mark.parametrize("double_round", [False, True])
def test_nobody_plays_twice_in_a_round(double_round):
    matches = generate_fixtures(default_competitors(8), double_round=double_round)

    for rnd in {m.round for m in matches}:
        ids = [cid for m in matches if m.round == rnd for cid in (m.home_id, m.away_id)]
        assert len(ids) == len(set(ids))


def test_circle_method_rotation():
    matches = generate_fixtures(default_competitors(4))

    by_round = {}
    for m in matches:
        by_round.setdefault(m.round, []).append((m.home_id, m.away_id))
    assert by_round == {
        1: [("t1", "t4"), ("t2", "t3")],
        2: [("t1", "t3"), ("t4", "t2")],
        3: [("t1", "t2"), ("t3", "t4")],
    }


def test_double_round_mirrors_first_half():
    n = 6
    matches = generate_fixtures(default_competitors(n), double_round=True)

    assert max(m.round for m in matches) == 2 * (n - 1)
    first_half = [m for m in matches if m.round <= n - 1]
    second_half = [m for m in matches if m.round > n - 1]
    assert len(first_half) == len(second_half)
    for m in first_half:
        mirrored = [
            r
            for r in second_half
            if r.home_id == m.away_id and r.away_id == m.home_id and r.round == m.round + n - 1
        ]
        assert len(mirrored) == 1

    ordered_pairs = Counter((m.home_id, m.away_id) for m in matches)
    assert len(ordered_pairs) == n * (n - 1)
    assert set(ordered_pairs.values()) == {1}


def test_match_ids_are_unique_and_sorted_by_round():
    matches = generate_fixtures(default_competitors(6), double_round=True)

    assert len({m.id for m in matches}) == len(matches)
    rounds = [m.round for m in matches]
    assert rounds == sorted(rounds)
    assert matches[0].id == "r1-m1"


def test_stage_group_and_prefix_are_applied():
    matches = generate_fixtures(
        default_competitors(4), stage=GROUP_STAGE, group="B", id_prefix="gB-"
    )

    assert all(m.stage == GROUP_STAGE and m.group == "B" for m in matches)
    assert all(m.id.startswith("gB-r") for m in matches)
    assert all(not m.played and m.home_score is None for m in matches)


def test_default_stage_is_league():
    matches = generate_fixtures(default_competitors(2))

    assert [(m.stage, m.home_id, m.away_id) for m in matches] == [(LEAGUE, "t1", "t2")]


@pytest.mark.parametrize("n", [0, 1, 3, 5, 9])
def test_odd_or_tiny_pools_are_rejected(n):
    with pytest.raises(ConfigurationError):
        generate_fixtures(default_competitors(n))
