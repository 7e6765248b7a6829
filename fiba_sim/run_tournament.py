"""
Simulate the basketball tournament from the JSON draw and exhibition data.

Usage:
    python -m fiba_sim.run_tournament
    python -m fiba_sim.run_tournament --seed 7 --plot-form form.png
    python -m fiba_sim.run_tournament --sims 5000 --seed 1
"""

import argparse
from pathlib import Path

import pandas as pd

from fiba_sim.data import EXHIBITIONS_PATH, GROUPS_PATH, load_exhibitions, load_groups, team_index
from fiba_sim.model import FormModel
from fiba_sim.report import format_tournament, plot_form_history
from fiba_sim.tournament import OlympicBasketball, simulate_many


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Simulate a group stage + knockout basketball tournament."
    )
    parser.add_argument(
        "--groups",
        type=Path, default=GROUPS_PATH,
        help=f"Group draw JSON (default: {GROUPS_PATH})",
    )
    parser.add_argument(
        "--exhibitions",
        type=Path, default=EXHIBITIONS_PATH,
        help=f"Exhibition results JSON (default: {EXHIBITIONS_PATH})",
    )
    parser.add_argument(
        "--seed",
        type=int, default=None,
        help="Random seed; omit for a different tournament every run",
    )
    parser.add_argument(
        "--sims",
        type=int, default=0,
        help="Run this many tournaments and print stage probabilities instead of one bracket",
    )
    parser.add_argument(
        "--plot-form",
        type=Path, default=None,
        help="Save a chart of every team's form over the single run to this path",
    )
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)

    groups = load_groups(args.groups)
    exhibitions = load_exhibitions(args.exhibitions)
    teams = team_index(groups)

    if args.sims > 0:
        print(f"Simulating {args.sims:,} tournaments ...")
        odds = simulate_many(groups, exhibitions, n_sims=args.sims, seed=args.seed, verbose=True)
        names = pd.Series({code: t.name for code, t in teams.items()})
        odds.index = odds.index.map(names)
        with pd.option_context("display.float_format", "{:.3f}".format):
            print(odds.to_string())
        return

    model = FormModel(maintain_form_history=args.plot_form is not None)
    model.fit(teams, exhibitions)
    tournament = OlympicBasketball(groups).simulate(model, random_state=args.seed)
    print(format_tournament(tournament))

    state = model.export_state_df()
    state["team"] = state["team"].map({code: t.name for code, t in teams.items()})
    print("\nForm after the tournament:")
    print(state.to_string(index=False, float_format="{:.2f}".format))

    if args.plot_form is not None:
        path = plot_form_history(model, args.plot_form)
        print(f"\nForm chart written to {path}")


if __name__ == "__main__":
    main()
