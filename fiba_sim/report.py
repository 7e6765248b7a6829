"""
Plain-text rendering of a finished OlympicBasketball run, plus an optional
form chart.

Every format_* function takes the tournament's result structures and returns
a string; nothing here mutates them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

from fiba_sim.model import FormModel
from fiba_sim.tournament import (
    EliminationMatch,
    EliminationResults,
    MatchResult,
    OlympicBasketball,
    StandingEntry,
)

POT_LABELS = ["D", "E", "F", "G"]
ROMAN = {1: "I", 2: "II", 3: "III"}
INDENT = " " * 4


def format_match(m: MatchResult) -> str:
    return f"{INDENT * 2}{m.team1} - {m.team2} ({m.score1}:{m.score2})"


def format_group_stage(group_results: Dict[str, Sequence[MatchResult]]) -> str:
    rounds = sorted({m.round for ms in group_results.values() for m in ms if m.round})
    lines: List[str] = []
    for round_no in rounds:
        lines.append(f"Group stage - round {ROMAN.get(round_no, round_no)}:")
        for group, matches in group_results.items():
            lines.append(f"{INDENT}Group {group}:")
            lines.extend(format_match(m) for m in matches if m.round == round_no)
    return "\n".join(lines)


def format_standings(standings: Dict[str, Sequence[StandingEntry]]) -> str:
    lines = ["Final group standings:"]
    header = f"{'Team':<24} |  W |  L | Pts | Scored | Allowed |  +/-"
    for group, entries in standings.items():
        lines.append("")
        lines.append(f"Group {group}")
        lines.append(header)
        lines.append("-" * len(header))
        for e in entries:
            lines.append(
                f"{e.position:>2}. {e.team.name:<20} | {e.wins:>2} | {e.losses:>2} "
                f"| {e.points:>3} | {e.scored:>6} | {e.allowed:>7} | {e.point_diff:>+4}"
            )
    return "\n".join(lines)


def format_pots(pots: Sequence[Sequence]) -> str:
    lines = ["Pots:"]
    for label, pot in zip(POT_LABELS, pots):
        lines.append(f"{INDENT}Pot {label}")
        lines.extend(f"{INDENT * 2}{team.name}" for team in pot)
    return "\n".join(lines)


def _format_elimination_match(m: EliminationMatch) -> str:
    return f"{INDENT * 2}{m.team1.name} - {m.team2.name} ({m.score1}:{m.score2})"


def format_elimination(results: EliminationResults) -> str:
    lines = ["Elimination stage:"]
    stages = [
        ("Quarterfinals", results.quarterfinals),
        ("Semifinals", results.semifinals),
        ("Bronze medal game", results.bronze),
        ("Final", results.finals),
    ]
    for title, matches in stages:
        lines.append(f"{INDENT}{title}:")
        lines.extend(_format_elimination_match(m) for m in matches)
    return "\n".join(lines)


def format_medals(results: EliminationResults) -> str:
    gold, silver, bronze = results.medals()
    return "\n".join(
        [
            "Medals:",
            f"  1. {gold.name}",
            f"  2. {silver.name}",
            f"  3. {bronze.name}",
        ]
    )


def format_tournament(t: OlympicBasketball) -> str:
    if not t.finished or t.elimination is None:
        raise ValueError("Tournament has not been simulated yet")
    sections = [
        format_group_stage(t.group_results),
        format_standings(t.standings),
        format_pots(t.pots),
        format_elimination(t.elimination),
        format_medals(t.elimination),
    ]
    return "\n\n".join(sections)


def plot_form_history(model: FormModel, path: Path) -> Path:
    """Save a line chart of every team's form after each simulated match."""
    df = model.export_history_df()
    if df.empty:
        raise ValueError("No form history to plot")
    sns.set_theme(style="whitegrid")
    fig, ax = plt.subplots(figsize=(10, 6))
    sns.lineplot(data=df, x="match", y="form", hue="team", ax=ax)
    ax.set_xlabel("Matches simulated")
    ax.set_ylabel("Form")
    ax.legend(loc="upper left", bbox_to_anchor=(1.0, 1.0), ncol=1)
    fig.tight_layout()
    path = Path(path)
    fig.savefig(path)
    plt.close(fig)
    return path
