import pytest

from fiba_sim.data import team_index
from fiba_sim.model import FormModel
from fiba_sim.report import (
    format_group_stage,
    format_medals,
    format_pots,
    format_standings,
    format_tournament,
    plot_form_history,
)
from fiba_sim.run_tournament import main
from fiba_sim.tournament import OlympicBasketball


@pytest.fixture
def finished(sample_groups, sample_model):
    return OlympicBasketball(sample_groups).simulate(sample_model, random_state=2)


def test_group_stage_lists_rounds_in_order(finished) -> None:
    text = format_group_stage(finished.group_results)
    headers = [line for line in text.splitlines() if line.startswith("Group stage")]
    assert headers == [
        "Group stage - round I:",
        "Group stage - round II:",
        "Group stage - round III:",
    ]
    first = finished.group_results["A"][0]
    assert f"{first.team1} - {first.team2} ({first.score1}:{first.score2})" in text


def test_standings_show_every_team(finished) -> None:
    text = format_standings(finished.standings)
    assert text.startswith("Final group standings:")
    for entries in finished.standings.values():
        for e in entries:
            assert e.team.name in text
    leader = finished.standings["A"][0]
    assert f" 1. {leader.team.name}" in text


def test_pots_are_labelled_d_to_g(finished) -> None:
    text = format_pots(finished.pots)
    for label in "DEFG":
        assert f"Pot {label}" in text
    assert finished.pots[0][0].name in text


def test_medals(finished) -> None:
    gold, silver, bronze = finished.elimination.medals()
    assert format_medals(finished.elimination).splitlines() == [
        "Medals:",
        f"  1. {gold.name}",
        f"  2. {silver.name}",
        f"  3. {bronze.name}",
    ]


def test_full_report_sections(finished) -> None:
    text = format_tournament(finished)
    order = [
        "Group stage - round I:",
        "Final group standings:",
        "Pots:",
        "Elimination stage:",
        "Quarterfinals:",
        "Semifinals:",
        "Bronze medal game:",
        "Final:",
        "Medals:",
    ]
    positions = [text.index(marker) for marker in order]
    assert positions == sorted(positions)


def test_report_needs_a_finished_tournament(sample_groups) -> None:
    with pytest.raises(ValueError, match="not been simulated"):
        format_tournament(OlympicBasketball(sample_groups))


def test_plot_form_history(tmp_path, sample_groups, sample_exhibitions) -> None:
    model = FormModel(maintain_form_history=True)
    model.fit(team_index(sample_groups), sample_exhibitions)
    OlympicBasketball(sample_groups).simulate(model, random_state=4)

    path = plot_form_history(model, tmp_path / "form.png")
    assert path.exists()
    assert path.stat().st_size > 0


def test_cli_single_run(capsys) -> None:
    main(["--seed", "9"])
    out = capsys.readouterr().out
    assert "Group stage - round I:" in out
    assert "Medals:" in out
    assert "Form after the tournament:" in out
    assert "Spain" in out


def test_cli_many_runs(capsys) -> None:
    main(["--seed", "9", "--sims", "10"])
    out = capsys.readouterr().out
    assert "Simulating 10 tournaments" in out
    assert "6. Champion" in out
    assert "United States" in out
