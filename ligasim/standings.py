from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from ligasim.config import (
    FORM_LENGTH,
    POINTS_FOR_DRAW,
    POINTS_FOR_WIN,
    CompetitionConfig,
)
from ligasim.models import TABLE_STAGES, Competitor, Match, TableRow

QUALIFICATION = "QUALIFICATION"
RELEGATION = "RELEGATION"

TABLE_COLUMNS = ["played", "w", "d", "l", "gf", "ga", "points"]


def rank_key(row: TableRow):
    return (-row.points, -row.goal_difference, -row.goals_for)


def rank_rows(rows: Iterable[TableRow]) -> List[TableRow]:
    """Points, then goal difference, then goals for. Further ties keep input order."""
    return sorted(rows, key=rank_key)


def calculate_table(
    competitors: Sequence[Competitor], matches: Iterable[Match]
) -> List[TableRow]:
    """
    Standings over every played league/group match between two listed competitors.

    Knockout matches never count. Rows come back ranked; competitors that are
    still level after goals for stay in roster order.
    """
    ids = [c.id for c in competitors]
    table = pd.DataFrame(index=ids, columns=TABLE_COLUMNS, data=0)
    form: Dict[str, List[str]] = {cid: [] for cid in ids}

    for m in matches:
        if m.stage not in TABLE_STAGES or not m.played:
            continue
        home = m.home_id
        away = m.away_id
        if home not in form or away not in form:
            continue
        hs = m.home_score
        as_ = m.away_score
        table.loc[home, "played"] += 1
        table.loc[away, "played"] += 1
        table.loc[home, "gf"] += hs
        table.loc[home, "ga"] += as_
        table.loc[away, "gf"] += as_
        table.loc[away, "ga"] += hs
        if hs > as_:
            table.loc[home, "points"] += POINTS_FOR_WIN
            table.loc[home, "w"] += 1
            table.loc[away, "l"] += 1
            form[home].append("W")
            form[away].append("L")
        elif hs < as_:
            table.loc[away, "points"] += POINTS_FOR_WIN
            table.loc[away, "w"] += 1
            table.loc[home, "l"] += 1
            form[away].append("W")
            form[home].append("L")
        else:
            table.loc[home, "points"] += POINTS_FOR_DRAW
            table.loc[away, "points"] += POINTS_FOR_DRAW
            table.loc[home, "d"] += 1
            table.loc[away, "d"] += 1
            form[home].append("D")
            form[away].append("D")

    rows = [
        TableRow(
            competitor_id=cid,
            played=int(table.loc[cid, "played"]),
            won=int(table.loc[cid, "w"]),
            drawn=int(table.loc[cid, "d"]),
            lost=int(table.loc[cid, "l"]),
            goals_for=int(table.loc[cid, "gf"]),
            goals_against=int(table.loc[cid, "ga"]),
            points=int(table.loc[cid, "points"]),
            form=form[cid][-FORM_LENGTH:],
        )
        for cid in ids
    ]
    return rank_rows(rows)


def group_tables(
    competitors: Sequence[Competitor], matches: Sequence[Match]
) -> Dict[str, List[TableRow]]:
    groups: Dict[str, List[Competitor]] = {}
    for c in competitors:
        if c.group:
            groups.setdefault(c.group, []).append(c)
    return {
        label: calculate_table(groups[label], matches) for label in sorted(groups)
    }


def table_zones(config: CompetitionConfig, rows: Sequence[TableRow]) -> List[Optional[str]]:
    """Zone of each ranked row: promotion-style qualification, relegation, or None."""
    zones: List[Optional[str]] = []
    n = len(rows)
    for idx in range(n):
        zone = None
        if config.is_league:
            if idx < config.qualification_spots:
                zone = QUALIFICATION
            elif idx >= n - config.relegation_spots:
                zone = RELEGATION
        elif config.has_groups and idx < config.advancing_per_group:
            zone = QUALIFICATION
        zones.append(zone)
    return zones


def table_frame(
    rows: Sequence[TableRow], competitors: Sequence[Competitor]
) -> pd.DataFrame:
    names = {c.id: c.name for c in competitors}
    frame = pd.DataFrame(
        [
            {
                "team": names.get(r.competitor_id, r.competitor_id),
                "p": r.played,
                "w": r.won,
                "d": r.drawn,
                "l": r.lost,
                "gf": r.goals_for,
                "ga": r.goals_against,
                "gd": r.goal_difference,
                "pts": r.points,
                "form": "".join(r.form),
            }
            for r in rows
        ],
        columns=["team", "p", "w", "d", "l", "gf", "ga", "gd", "pts", "form"],
    )
    frame.index = pd.RangeIndex(1, len(frame) + 1, name="pos")
    return frame
