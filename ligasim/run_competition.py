import argparse
import logging
from pathlib import Path
from typing import List, Optional

import numpy as np
import pandas as pd

from ligasim.competition import (
    is_finished,
    next_round,
    simulate_round,
    start_competition,
)
from ligasim.config import (
    CUP_FORMAT,
    GROUP_KNOCKOUT,
    KNOCKOUT,
    LEAGUE_FORMAT,
    CompetitionConfig,
    default_competitors,
)
from ligasim.knockout import bracket_ties, champion
from ligasim.score_source import GeminiScoreSource, PoissonScoreSource
from ligasim.standings import calculate_table, group_tables, table_frame
from ligasim.storage import SaveStore

MAX_ROUNDS = 200


def build_config(args: argparse.Namespace) -> CompetitionConfig:
    if args.format == "league":
        return CompetitionConfig(
            name=args.name,
            type=LEAGUE_FORMAT,
            team_count=args.teams,
            double_round=args.double_round,
            qualification_spots=min(4, args.teams // 4),
            relegation_spots=min(3, args.teams // 5),
        )
    return CompetitionConfig(
        name=args.name,
        type=CUP_FORMAT,
        cup_format=GROUP_KNOCKOUT if args.format == "groups" else KNOCKOUT,
        team_count=args.teams,
        double_round=args.double_round,
        group_count=args.groups,
        advancing_per_group=args.advancing,
        double_leg_playoffs=args.double_leg,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run a LigaSim competition to the end")
    parser.add_argument("--format", choices=["league", "knockout", "groups"], default="league")
    parser.add_argument("--name", default="LigaSim 2000")
    parser.add_argument("--teams", type=int, default=16)
    parser.add_argument("--groups", type=int, default=4)
    parser.add_argument("--advancing", type=int, default=2)
    parser.add_argument("--double-round", action="store_true")
    parser.add_argument("--double-leg", action="store_true")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--offline", action="store_true", help="do not call Gemini")
    parser.add_argument("--save", type=Path, default=None)
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    rng = np.random.default_rng(args.seed)
    strengths = [int(s) for s in rng.integers(55, 95, size=args.teams)]
    config = build_config(args)
    state = start_competition(config, default_competitors(args.teams, strengths), rng)
    source = (
        PoissonScoreSource(rng)
        if args.offline
        else GeminiScoreSource(competition_name=config.name)
    )

    for _ in range(MAX_ROUNDS):
        state, _generated = simulate_round(state, source, rng)
        if is_finished(state):
            break
        moved = next_round(state)
        if moved.current_round == state.current_round:
            break
        state = moved

    pd.set_option("display.width", 120)
    if state.config.has_groups:
        for label, rows in group_tables(state.competitors, state.matches).items():
            print(f"\nGroup {label}")
            print(table_frame(rows, state.competitors))
    elif state.config.is_league:
        print(table_frame(calculate_table(state.competitors, state.matches), state.competitors))

    names = {c.id: c.name for c in state.competitors}
    for tie in bracket_ties(state.matches):
        agg = f"{tie.aggregate[0]}-{tie.aggregate[1]}" if tie.aggregate else "vs"
        pens = " (pens)" if tie.penalty_winner_id else ""
        print(f"{tie.stage:>14}  {names[tie.home_id]} {agg} {names[tie.away_id]}{pens}")

    winner = champion(state.matches)
    if winner is not None:
        print(f"\nChampion: {names[winner]}")
    elif state.config.is_league:
        top = calculate_table(state.competitors, state.matches)[0]
        print(f"\nChampion: {names[top.competitor_id]}")

    if args.save is not None:
        SaveStore(args.save).save(state)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
