import pytest

from fiba_sim.data import Team, team_index
from fiba_sim.model import FormModel
from fiba_sim.tournament import ELIMINATION_STAGES, OlympicBasketball, simulate_many


def test_full_tournament_structure(sample_groups, sample_model) -> None:
    t = OlympicBasketball(sample_groups).simulate(sample_model, random_state=11)

    assert t.finished
    assert sum(len(r) for r in t.group_results.values()) == 18
    assert {m.round for r in t.group_results.values() for m in r} == {1, 2, 3}
    assert len(t.matches) == 26
    assert sample_model.matches_played == 26

    placements = [e.group + str(e.position) for e in t.top_eight]
    assert sorted(placements[:3]) == ["A1", "B1", "C1"]
    assert sorted(placements[3:6]) == ["A2", "B2", "C2"]
    assert all(p.endswith("3") for p in placements[6:])

    seeded = [e.team for e in t.top_eight]
    assert t.pots == [seeded[0:2], seeded[2:4], seeded[4:6], seeded[6:8]]
    assert t.quarterfinals[0] == (seeded[0], seeded[7])

    gold, silver, bronze = t.elimination.medals()
    assert t.champion == gold
    assert len({gold.code, silver.code, bronze.code}) == 3


def test_same_seed_reproduces_the_tournament(sample_groups, sample_exhibitions) -> None:
    frames = []
    for _ in range(2):
        model = FormModel()
        model.fit(team_index(sample_groups), sample_exhibitions)
        frames.append(OlympicBasketball(sample_groups).simulate(model, random_state=5).results_frame())
    assert frames[0].equals(frames[1])
    assert list(frames[0]["stage"].unique()) == ["Group", "Quarterfinal", "Semifinal", "Final", "Bronze"]


def test_stage_of_elimination_counts(sample_groups, sample_model) -> None:
    t = OlympicBasketball(sample_groups).simulate(sample_model, random_state=3)
    stages = t.stage_of_elimination()

    assert set(stages) == set(team_index(sample_groups))
    counts = {label: list(stages.values()).count(label) for label in ELIMINATION_STAGES.values()}
    assert counts == {
        "1. Group": 4,
        "2. Quarterfinal": 4,
        "3. Fourth place": 1,
        "4. Third place": 1,
        "5. Final": 1,
        "6. Champion": 1,
    }
    assert stages[t.champion.code] == "6. Champion"


def test_simulating_twice_raises(sample_groups, sample_model) -> None:
    t = OlympicBasketball(sample_groups).simulate(sample_model, random_state=0)
    with pytest.raises(ValueError, match="already been simulated"):
        t.simulate(sample_model, random_state=0)


def test_unfit_model_is_rejected(sample_groups) -> None:
    with pytest.raises(ValueError, match="must be fit"):
        OlympicBasketball(sample_groups).simulate(FormModel(), random_state=0)


def test_model_missing_teams_is_rejected(sample_groups, golden_model) -> None:
    with pytest.raises(ValueError, match="Teams not in model"):
        OlympicBasketball(sample_groups).simulate(golden_model, random_state=0)


def test_group_layout_is_validated(sample_groups) -> None:
    two_groups = {g: sample_groups[g] for g in ("A", "B")}
    with pytest.raises(ValueError, match="requires 3 groups"):
        OlympicBasketball(two_groups)

    short = dict(sample_groups)
    short["C"] = short["C"][:3]
    with pytest.raises(ValueError, match="Group C must have 4 teams"):
        OlympicBasketball(short)

    clash = dict(sample_groups)
    clash["C"] = clash["C"][:3] + [Team(name="Spain", code="ESP", ranking=2, group="C")]
    with pytest.raises(ValueError, match="more than once"):
        OlympicBasketball(clash)


def test_simulate_many_shares(sample_groups, sample_exhibitions) -> None:
    odds = simulate_many(sample_groups, sample_exhibitions, n_sims=25, seed=1)

    assert len(odds) == 12
    assert list(odds.columns) == sorted(ELIMINATION_STAGES.values())
    assert odds.sum(axis=1).tolist() == pytest.approx([1.0] * 12)
    assert odds["6. Champion"].sum() == pytest.approx(1.0)
    assert odds["1. Group"].sum() == pytest.approx(4.0)

    again = simulate_many(sample_groups, sample_exhibitions, n_sims=25, seed=1)
    assert odds.equals(again)


def test_simulate_many_needs_a_positive_count(sample_groups, sample_exhibitions) -> None:
    with pytest.raises(ValueError, match="n_sims must be positive"):
        simulate_many(sample_groups, sample_exhibitions, n_sims=0)


def test_missing_exhibition_history_aborts_before_any_game(sample_groups, sample_exhibitions) -> None:
    without_pri = sample_exhibitions[sample_exhibitions["team"] != "PRI"]
    model = FormModel()
    model.fit(team_index(sample_groups), without_pri)
    t = OlympicBasketball(sample_groups)

    for _ in range(2):
        with pytest.raises(ValueError, match="No exhibition history for PRI"):
            t.simulate(model, random_state=0)
        assert model.matches_played == 0
        assert t.matches == []
        assert t.group_results == {}
        assert not t.finished
