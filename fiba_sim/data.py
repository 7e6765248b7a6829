from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import json
import re
from pathlib import Path

import pandas as pd

ROOT_DIR = Path(__file__).resolve().parents[1]
DATA_DIR = ROOT_DIR / "data"
GROUPS_PATH = DATA_DIR / "groups.json"
EXHIBITIONS_PATH = DATA_DIR / "exhibitions.json"

GROUP_TEAM_KEYS = ("Team", "ISOCode", "FIBARanking")
EXHIBITION_KEYS = ("Opponent", "Result")
EXHIBITION_COLUMNS = ["team", "opponent", "date", "score_for", "score_against"]

_RESULT_RE = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")


@dataclass(frozen=True)
class Team:
    name: str
    code: str
    ranking: int
    group: Optional[str] = None


def parse_result(result: str) -> Tuple[int, int]:
    """
    Parse a final score written as "<int>-<int>", e.g. "92-80" -> (92, 80).
    """
    match = _RESULT_RE.match(str(result))
    if match is None:
        raise ValueError(f"Malformed score {result!r}; expected '<int>-<int>'")
    return int(match.group(1)), int(match.group(2))


def _read_json(path: Path) -> dict:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing data file: {path}")
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"{path} must contain a JSON object at the top level")
    return payload


def load_groups(path: Path = GROUPS_PATH, group_size: int = 4) -> Dict[str, List[Team]]:
    """
    Read the group draw.

    Expected layout:
        {"A": [{"Team": "Canada", "ISOCode": "CAN", "FIBARanking": 7}, ...], ...}

    Group order and team order inside a group are preserved; the round-robin
    schedule depends on the latter.
    """
    payload = _read_json(path)
    groups: Dict[str, List[Team]] = {}
    for group, rows in payload.items():
        group = str(group).strip()
        if not isinstance(rows, list):
            raise ValueError(f"Group {group} must be a list of teams")
        teams: List[Team] = []
        for row in rows:
            missing = [k for k in GROUP_TEAM_KEYS if k not in row]
            if missing:
                raise ValueError(f"Team entry in group {group} missing keys: {missing}")
            try:
                ranking = int(row["FIBARanking"])
            except (TypeError, ValueError):
                raise ValueError(
                    f"Invalid ranking for {row['ISOCode']}: {row['FIBARanking']!r}"
                ) from None
            teams.append(
                Team(
                    name=str(row["Team"]).strip(),
                    code=str(row["ISOCode"]).strip(),
                    ranking=ranking,
                    group=group,
                )
            )
        if len(teams) != group_size:
            raise ValueError(f"Group {group} must have {group_size} teams")
        groups[group] = teams
    team_index(groups)
    return groups


def load_exhibitions(path: Path = EXHIBITIONS_PATH) -> pd.DataFrame:
    """
    Read pre-tournament exhibition results into a flat frame.

    Expected layout:
        {"CAN": [{"Date": "06/07/24", "Opponent": "GER", "Result": "92-80"}, ...], ...}

    Each row is seen from the listing team: score_for is the first number of
    the result, score_against the second.
    """
    payload = _read_json(path)
    rows = []
    for team, matches in payload.items():
        if not isinstance(matches, list):
            raise ValueError(f"Exhibitions for {team} must be a list of matches")
        for match in matches:
            missing = [k for k in EXHIBITION_KEYS if k not in match]
            if missing:
                raise ValueError(f"Exhibition for {team} missing keys: {missing}")
            score_for, score_against = parse_result(match["Result"])
            rows.append(
                {
                    "team": str(team).strip(),
                    "opponent": str(match["Opponent"]).strip(),
                    "date": match.get("Date"),
                    "score_for": score_for,
                    "score_against": score_against,
                }
            )
    return pd.DataFrame(rows, columns=EXHIBITION_COLUMNS)


def team_index(groups: Dict[str, List[Team]]) -> Dict[str, Team]:
    """Build the code -> Team lookup used everywhere downstream."""
    index: Dict[str, Team] = {}
    for group, teams in groups.items():
        for team in teams:
            if team.code in index:
                raise ValueError(
                    f"Team code {team.code} appears more than once (group {group})"
                )
            index[team.code] = team
    return index


def validate_exhibitions(exhibitions: pd.DataFrame, teams: Dict[str, Team]) -> None:
    missing_cols = set(EXHIBITION_COLUMNS).difference(exhibitions.columns)
    missing_cols.discard("date")
    if missing_cols:
        raise ValueError(f"exhibitions is missing required columns: {sorted(missing_cols)}")
    referenced = set(exhibitions["team"]).union(exhibitions["opponent"])
    unknown = sorted(str(code) for code in referenced.difference(teams))
    if unknown:
        raise ValueError(f"Exhibition data references teams not in any group: {unknown}")
