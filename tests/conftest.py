import pandas as pd
import pytest

from fiba_sim.data import Team, load_exhibitions, load_groups, team_index
from fiba_sim.model import FormModel


class ScriptedRng:
    """Stand-in for a numpy Generator that replays fixed uniform draws."""

    def __init__(self, draws):
        self._draws = list(draws)
        self.calls = 0

    def random(self) -> float:
        if self.calls >= len(self._draws):
            raise AssertionError(f"ScriptedRng exhausted after {self.calls} draws")
        value = self._draws[self.calls]
        self.calls += 1
        return value


def _exhibition_frame(rows) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"team": t, "opponent": o, "date": None, "score_for": a, "score_against": b}
            for t, o, a, b in rows
        ],
        columns=["team", "opponent", "date", "score_for", "score_against"],
    )


@pytest.fixture
def scripted_rng():
    return ScriptedRng


@pytest.fixture
def exhibition_frame():
    """Build an exhibitions frame from (team, opponent, score_for, score_against) rows."""
    return _exhibition_frame


@pytest.fixture
def golden_group() -> list[Team]:
    # Rankings [2, 5, 14, 7] in draw order.
    return [
        Team(name="Spain", code="ESP", ranking=2, group="A"),
        Team(name="Australia", code="AUS", ranking=5, group="A"),
        Team(name="Greece", code="GRE", ranking=14, group="A"),
        Team(name="Canada", code="CAN", ranking=7, group="A"),
    ]


@pytest.fixture
def golden_exhibitions() -> pd.DataFrame:
    # Every result lands close enough to the expected margin that seeded form is 0.
    return _exhibition_frame(
        [
            ("ESP", "GRE", 80, 84),
            ("ESP", "CAN", 86, 80),
            ("AUS", "CAN", 84, 80),
            ("AUS", "GRE", 88, 80),
            ("CAN", "ESP", 80, 86),
            ("CAN", "GRE", 87, 80),
            ("GRE", "AUS", 80, 88),
            ("GRE", "ESP", 84, 80),
        ]
    )


@pytest.fixture
def golden_model(golden_group, golden_exhibitions) -> FormModel:
    model = FormModel()
    model.fit({t.code: t for t in golden_group}, golden_exhibitions)
    return model


@pytest.fixture
def sample_groups():
    return load_groups()


@pytest.fixture
def sample_exhibitions():
    return load_exhibitions()


@pytest.fixture
def sample_model(sample_groups, sample_exhibitions) -> FormModel:
    model = FormModel()
    model.fit(team_index(sample_groups), sample_exhibitions)
    return model
