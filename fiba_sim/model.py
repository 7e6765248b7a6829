import math
from typing import Dict, Mapping, Optional

import numpy as np
import pandas as pd

from fiba_sim.data import Team, validate_exhibitions


FORM_FACTOR = 0.07

BASE_POINT_GAP = 4.0
MAX_POINT_GAP = 30.0
RANK_GAP_SCALE = 30.0
GAP_SCALING_EXPONENT = 1.5

LARGE_RANK_GAP = 10
# Favourite must win by more than this in a mismatch to earn form credit.
LARGE_GAP_MARGIN_THRESHOLD = 0
MARGIN_DIVISOR = 3.0

DEFENSIVE_ADJUSTMENT = 6


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def expected_point_gap(rank_gap: float) -> float:
    """
    Point margin a favourite is expected to win by, given the ranking gap.

    Grows from BASE_POINT_GAP at equal rankings to MAX_POINT_GAP at a gap of
    RANK_GAP_SCALE; larger gaps keep extrapolating along the same curve.
    """
    return BASE_POINT_GAP + (MAX_POINT_GAP - BASE_POINT_GAP) * (
        rank_gap / RANK_GAP_SCALE
    ) ** GAP_SCALING_EXPONENT


def expected_margin(rank_home: int, rank_away: int, score_home: int, score_away: int) -> int:
    """
    How much better (positive) or worse (negative) than expected the favourite
    did, scaled down by MARGIN_DIVISOR. This is the unit added to form.

    The favourite is the side with the numerically smaller ranking. For ranking
    gaps above LARGE_RANK_GAP a narrow favourite win neither rewards nor
    penalises: only a margin above LARGE_GAP_MARGIN_THRESHOLD counts, and then
    in full.

        expected_margin(5, 7, 100, 98)   # close rankings, compared to the curve
        expected_margin(10, 30, 80, 70)  # mismatch, rewarded: 3
        expected_margin(10, 30, 70, 80)  # mismatch, favourite lost: 0
    """
    if rank_home < rank_away:
        actual_diff = score_home - score_away
    else:
        actual_diff = score_away - score_home
    rank_gap = abs(rank_home - rank_away)

    if rank_gap > LARGE_RANK_GAP:
        if actual_diff > LARGE_GAP_MARGIN_THRESHOLD:
            return round_half_up(actual_diff / MARGIN_DIVISOR)
        return 0
    return round_half_up((actual_diff - expected_point_gap(rank_gap)) / MARGIN_DIVISOR)


class TeamState:

    def __init__(self, form, ranking, maintain_form_history=False):
        self.form = float(form)
        self.ranking = int(ranking)
        self._do_maintain_form_history = maintain_form_history
        if maintain_form_history:
            self.history = {}

    def update(self, form, match_index):
        self.form = float(form)
        if self._do_maintain_form_history:
            self.history[match_index] = {"form": float(form)}


class FormModel:

    def __init__(
        self,
        form_factor: float = FORM_FACTOR,
        defensive_adjustment: int = DEFENSIVE_ADJUSTMENT,
        maintain_form_history: bool = False,
    ):
        """
        form_factor: Smoothing weight given to the latest point differential.
        defensive_adjustment: Points removed from the exhibition scoring level,
            since defences are tougher in the main event.
        maintain_form_history: Keep per-team form after every match.
        """
        self.form_factor = float(form_factor)
        if not 0.0 < self.form_factor <= 1.0:
            raise ValueError("form_factor must be in (0, 1]")
        self.defensive_adjustment = int(defensive_adjustment)
        self.maintain_form_history = maintain_form_history
        self.teams: Dict[str, TeamState] = {}
        self.scoring_levels: Dict[str, float] = {}
        self.is_fit = False
        self._match_index = 0

    def fit(self, teams: Mapping[str, Team], exhibitions: pd.DataFrame) -> pd.DataFrame:
        """
        Seed every team's form from its exhibition results.

        teams: code -> Team lookup covering every team in the tournament.
        exhibitions: frame with columns team, opponent, score_for, score_against,
            one row per exhibition seen from `team`.

        Each exhibition's expected margin is credited to (or blamed on) the
        better ranked of the two sides. Returns the exhibitions with the
        computed margin and credited team attached.
        """
        if self.is_fit:
            raise ValueError("Model is already fit")
        if not isinstance(exhibitions, pd.DataFrame):
            raise TypeError("exhibitions must be a pandas DataFrame")
        validate_exhibitions(exhibitions, teams)

        for code, team in teams.items():
            st = TeamState(
                form=0.0,
                ranking=team.ranking,
                maintain_form_history=self.maintain_form_history,
            )
            st.update(0.0, self._match_index)
            self.teams[code] = st

        extra_rows = []
        for row in exhibitions.itertuples(index=False):
            rank_team = self.teams[row.team].ranking
            rank_opp = self.teams[row.opponent].ranking
            margin = expected_margin(
                rank_team, rank_opp, int(row.score_for), int(row.score_against)
            )
            credited = row.team if rank_team < rank_opp else row.opponent
            st = self.teams[credited]
            st.update(st.form + margin, self._match_index)
            extra_rows.append(
                {
                    "rank_team": rank_team,
                    "rank_opponent": rank_opp,
                    "margin": margin,
                    "credited_team": credited,
                }
            )

        df = exhibitions.reset_index(drop=True)
        if not df.empty:
            per_game = (df["score_for"] + df["score_against"]) // 2
            levels = per_game.groupby(df["team"]).mean()
        else:
            levels = pd.Series(dtype=float)
        self.scoring_levels = {
            code: float(levels.get(code, np.nan)) for code in self.teams
        }

        self.is_fit = True
        extra_df = pd.DataFrame(
            extra_rows, columns=["rank_team", "rank_opponent", "margin", "credited_team"]
        )
        return pd.concat([df, extra_df], axis=1)

    def _state(self, code: str) -> TeamState:
        st = self.teams.get(code)
        if st is None:
            raise ValueError(f"Team not in model: {code}")
        return st

    def form(self, code: str) -> float:
        return self._state(code).form

    def ranking(self, code: str) -> int:
        return self._state(code).ranking

    def forms(self) -> Dict[str, float]:
        return {code: st.form for code, st in self.teams.items()}

    def scoring_level(self, code: str) -> float:
        """Mean per-team points per exhibition game (each game's total halved, floored)."""
        self._state(code)
        level = self.scoring_levels.get(code, np.nan)
        if not np.isfinite(level):
            raise ValueError(
                f"No exhibition history for {code}; cannot derive a base score"
            )
        return level

    def base_score(self, code1: str, code2: str) -> int:
        level = (self.scoring_level(code1) + self.scoring_level(code2)) / 2.0
        return int(math.floor(level)) - self.defensive_adjustment

    def update(self, code1: str, code2: str, score1: int, score2: int) -> None:
        st1 = self._state(code1)
        st2 = self._state(code2)
        alpha = self.form_factor
        diff = score1 - score2
        self._match_index += 1
        st1.update(st1.form * (1.0 - alpha) + diff * alpha, self._match_index)
        st2.update(st2.form * (1.0 - alpha) - diff * alpha, self._match_index)

    @property
    def matches_played(self) -> int:
        return self._match_index

    def export_state_df(self) -> pd.DataFrame:
        rows = []
        for code, st in self.teams.items():
            rows.append(
                {
                    "team": code,
                    "ranking": st.ranking,
                    "form": st.form,
                    "scoring_level": self.scoring_levels.get(code, np.nan),
                }
            )
        if not rows:
            return pd.DataFrame(columns=["team", "ranking", "form", "scoring_level"])
        return pd.DataFrame(rows).sort_values("form", ascending=False).reset_index(drop=True)

    def export_history_df(self) -> pd.DataFrame:
        if not self.maintain_form_history:
            raise ValueError("maintain_form_history must be True to export form history")
        if not self.teams:
            return pd.DataFrame(columns=["match", "team", "form"])
        indices = sorted({i for st in self.teams.values() for i in st.history.keys()})
        rows = []
        for i in indices:
            for code, st in self.teams.items():
                hist = st.history.get(i)
                if hist is None:
                    continue
                rows.append({"match": i, "team": code, "form": float(hist["form"])})
        return pd.DataFrame(rows)


def seed_form(
    teams: Mapping[str, Team],
    exhibitions: pd.DataFrame,
    form_factor: Optional[float] = None,
) -> Dict[str, float]:
    """Convenience wrapper: the seeded code -> form mapping."""
    model = FormModel() if form_factor is None else FormModel(form_factor=form_factor)
    model.fit(teams, exhibitions)
    return model.forms()
