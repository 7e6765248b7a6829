from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
import math

import numpy as np
import pandas as pd

from fiba_sim.data import Team, team_index
from fiba_sim.model import FormModel, round_half_up

RANK_WEIGHT = 0.65
FORM_WEIGHT = 0.35
VARIANCE_RANGE = 15
RANDOM_FACTOR_LOW = -4.0
RANDOM_FACTOR_SPAN = 10.0

POINTS_PER_WIN = 2
GROUP_SIZE = 4
GROUP_COUNT = 3
KNOCKOUT_TEAMS = 8
POT_SIZE = 2

STAGE_GROUP = "Group"
STAGE_QUARTERFINAL = "Quarterfinal"
STAGE_SEMIFINAL = "Semifinal"
STAGE_FINAL = "Final"
STAGE_BRONZE = "Bronze"

PLACE_FOURTH = "Fourth place"
PLACE_THIRD = "Third place"
PLACE_CHAMPION = "Champion"

ELIMINATION_STAGES = {
    STAGE_GROUP: "1. Group",
    STAGE_QUARTERFINAL: "2. Quarterfinal",
    PLACE_FOURTH: "3. Fourth place",
    PLACE_THIRD: "4. Third place",
    STAGE_FINAL: "5. Final",
    PLACE_CHAMPION: "6. Champion",
}

TABLE_COLUMNS = ["points", "scored", "allowed", "wins", "losses", "ranking"]


@dataclass(frozen=True)
class MatchResult:
    stage: str
    team1: str
    team2: str
    team1_code: str
    team2_code: str
    score1: int
    score2: int
    group: Optional[str] = None
    round: Optional[int] = None

    @property
    def winner_code(self) -> str:
        return self.team1_code if self.score1 > self.score2 else self.team2_code


@dataclass(frozen=True)
class StandingEntry:
    team: Team
    group: str
    position: int
    points: int
    scored: int
    allowed: int
    wins: int
    losses: int

    @property
    def point_diff(self) -> int:
        return self.scored - self.allowed


@dataclass(frozen=True)
class EliminationMatch:
    stage: str
    team1: Team
    team2: Team
    score1: int
    score2: int

    @property
    def winner(self) -> Team:
        # An exact tie goes to the second team.
        return self.team1 if self.score1 > self.score2 else self.team2

    @property
    def loser(self) -> Team:
        return self.team2 if self.score1 > self.score2 else self.team1

    def to_result(self) -> MatchResult:
        return MatchResult(
            stage=self.stage,
            team1=self.team1.name,
            team2=self.team2.name,
            team1_code=self.team1.code,
            team2_code=self.team2.code,
            score1=self.score1,
            score2=self.score2,
        )


@dataclass(frozen=True)
class EliminationResults:
    quarterfinals: Tuple[EliminationMatch, ...]
    semifinals: Tuple[EliminationMatch, ...]
    finals: Tuple[EliminationMatch, ...]
    bronze: Tuple[EliminationMatch, ...]

    def all_matches(self) -> Tuple[EliminationMatch, ...]:
        return self.quarterfinals + self.semifinals + self.finals + self.bronze

    def medals(self) -> Tuple[Team, Team, Team]:
        final = self.finals[0]
        return final.winner, final.loser, self.bronze[0].winner


def simulate_match(model: FormModel, rng, team1: Team, team2: Team) -> Tuple[int, int]:
    """
    Simulate one game and feed the result back into the form model.

    rng: anything exposing random() -> float in [0, 1), normally a
        numpy Generator. Three draws are taken per game, in this order: the
        shared random factor, team1's variance, team2's variance.

    Scores are not clamped; ties are resolved by the callers' own rules.
    """
    code1, code2 = team1.code, team2.code
    rank_diff = (model.ranking(code2) - model.ranking(code1)) * RANK_WEIGHT
    form_diff = (model.form(code1) - model.form(code2)) * FORM_WEIGHT
    base_score = model.base_score(code1, code2)
    random_factor = rng.random() * RANDOM_FACTOR_SPAN + RANDOM_FACTOR_LOW
    variance1 = math.floor(rng.random() * VARIANCE_RANGE)
    variance2 = math.floor(rng.random() * VARIANCE_RANGE)

    score1 = round_half_up(variance1 + base_score + rank_diff + form_diff + random_factor)
    score2 = round_half_up(variance2 + base_score - rank_diff - form_diff - random_factor)

    model.update(code1, code2, score1, score2)
    return score1, score2


def round_robin_rounds(teams: Sequence[Team]) -> List[List[Tuple[Team, Team]]]:
    """
    Fixed three-round schedule for a group [A, B, C, D]:
    (A-B, C-D), (A-C, B-D), (A-D, B-C).
    """
    if len(teams) != GROUP_SIZE:
        raise ValueError(f"Round robin requires {GROUP_SIZE} teams, got {len(teams)}")
    a, b, c, d = teams
    return [
        [(a, b), (c, d)],
        [(a, c), (b, d)],
        [(a, d), (b, c)],
    ]


def simulate_group(
    model: FormModel,
    rng,
    group: str,
    teams: Sequence[Team],
) -> Tuple[MatchResult, ...]:
    results: List[MatchResult] = []
    for round_no, pairings in enumerate(round_robin_rounds(teams), start=1):
        for team1, team2 in pairings:
            score1, score2 = simulate_match(model, rng, team1, team2)
            results.append(
                MatchResult(
                    stage=STAGE_GROUP,
                    team1=team1.name,
                    team2=team2.name,
                    team1_code=team1.code,
                    team2_code=team2.code,
                    score1=score1,
                    score2=score2,
                    group=group,
                    round=round_no,
                )
            )
    return tuple(results)


def group_table(teams: Sequence[Team], matches: Sequence[MatchResult]) -> pd.DataFrame:
    """
    Build a group table from scratch out of the group's results.

    Matches are applied in schedule order. When the two sides' accumulated
    scored totals come out equal, the better ranked side gets one extra
    scored point; this only nudges the sort. Wins are decided on the raw
    match score.
    """
    codes = [t.code for t in teams]
    table = pd.DataFrame(index=codes, columns=TABLE_COLUMNS, data=0)
    for t in teams:
        table.loc[t.code, "ranking"] = t.ranking

    for m in matches:
        c1 = m.team1_code
        c2 = m.team2_code
        if c1 not in table.index or c2 not in table.index:
            raise ValueError(f"Match {c1} vs {c2} involves a team outside the group")
        table.loc[c1, "scored"] += m.score1
        table.loc[c1, "allowed"] += m.score2
        table.loc[c2, "scored"] += m.score2
        table.loc[c2, "allowed"] += m.score1

        if table.loc[c1, "scored"] == table.loc[c2, "scored"]:
            if table.loc[c1, "ranking"] < table.loc[c2, "ranking"]:
                table.loc[c1, "scored"] += 1
            else:
                table.loc[c2, "scored"] += 1

        winner = m.winner_code
        loser = c2 if winner == c1 else c1
        table.loc[winner, "points"] += POINTS_PER_WIN
        table.loc[winner, "wins"] += 1
        table.loc[loser, "losses"] += 1

    table["diff"] = table["scored"] - table["allowed"]
    return table


def rank_group(
    group: str,
    teams: Sequence[Team],
    table: pd.DataFrame,
) -> Tuple[StandingEntry, ...]:
    by_code = {t.code: t for t in teams}
    ranked = table.sort_values(
        by=["points", "diff"], ascending=[False, False], kind="mergesort"
    )
    standings: List[StandingEntry] = []
    for position, (code, row) in enumerate(ranked.iterrows(), start=1):
        standings.append(
            StandingEntry(
                team=by_code[code],
                group=group,
                position=position,
                points=int(row["points"]),
                scored=int(row["scored"]),
                allowed=int(row["allowed"]),
                wins=int(row["wins"]),
                losses=int(row["losses"]),
            )
        )
    return tuple(standings)


def compute_standings(
    groups: Dict[str, Sequence[Team]],
    group_results: Dict[str, Sequence[MatchResult]],
) -> Tuple[Dict[str, pd.DataFrame], Dict[str, Tuple[StandingEntry, ...]]]:
    tables: Dict[str, pd.DataFrame] = {}
    standings: Dict[str, Tuple[StandingEntry, ...]] = {}
    for group, teams in groups.items():
        table = group_table(teams, group_results.get(group, ()))
        tables[group] = table
        standings[group] = rank_group(group, teams, table)
    return tables, standings


def _seed_key(entry: StandingEntry) -> Tuple[int, int]:
    return (-entry.points, -entry.point_diff)


def select_top_eight(
    standings: Dict[str, Sequence[StandingEntry]],
) -> Tuple[StandingEntry, ...]:
    """
    Group winners, then runners-up, then third-placed teams, each pool ordered
    by points and point differential; the weakest third-placed team drops out.
    """
    if len(standings) != GROUP_COUNT:
        raise ValueError(f"Seeding requires {GROUP_COUNT} groups, got {len(standings)}")
    for group, entries in standings.items():
        if len(entries) < 3:
            raise ValueError(f"Group {group} standings must include at least 3 teams")

    pools = []
    for place in range(3):
        pool = [entries[place] for entries in standings.values()]
        pools.append(sorted(pool, key=_seed_key))
    candidates = [entry for pool in pools for entry in pool]
    return tuple(candidates[:KNOCKOUT_TEAMS])


def draw_pots(seeded: Sequence) -> List[List]:
    if len(seeded) != KNOCKOUT_TEAMS:
        raise ValueError(f"Pot draw requires {KNOCKOUT_TEAMS} teams, got {len(seeded)}")
    return [list(seeded[i : i + POT_SIZE]) for i in range(0, KNOCKOUT_TEAMS, POT_SIZE)]


def quarterfinal_pairs(seeded: Sequence) -> List[Tuple]:
    """Pot i meets pot 3 - i: pots[i][0] against pots[3 - i][1]."""
    pots = draw_pots(seeded)
    last = len(pots) - 1
    return [(pots[i][0], pots[last - i][1]) for i in range(len(pots))]


def simulate_knockout(
    model: FormModel,
    rng,
    quarterfinals: Sequence[Tuple[Team, Team]],
) -> EliminationResults:
    if len(quarterfinals) != KNOCKOUT_TEAMS // 2:
        raise ValueError(
            f"Knockout requires {KNOCKOUT_TEAMS // 2} quarterfinals, got {len(quarterfinals)}"
        )

    def play(stage: str, team1: Team, team2: Team) -> EliminationMatch:
        score1, score2 = simulate_match(model, rng, team1, team2)
        return EliminationMatch(stage=stage, team1=team1, team2=team2, score1=score1, score2=score2)

    qf = [play(STAGE_QUARTERFINAL, a, b) for a, b in quarterfinals]
    semifinalists = [m.winner for m in qf]

    sf = [
        play(STAGE_SEMIFINAL, semifinalists[i], semifinalists[i + 1])
        for i in range(0, len(semifinalists), 2)
    ]
    finalists = [m.winner for m in sf]
    bronze_teams = [m.loser for m in sf]

    final = play(STAGE_FINAL, finalists[0], finalists[1])
    bronze = play(STAGE_BRONZE, bronze_teams[0], bronze_teams[1])

    return EliminationResults(
        quarterfinals=tuple(qf),
        semifinals=tuple(sf),
        finals=(final,),
        bronze=(bronze,),
    )


class Tournament:
    def __init__(self, name: str, teams: Optional[List[Team]] = None):
        self.name = name
        self.teams = list(teams or [])
        self.matches: List[MatchResult] = []
        self.finished = False
        self.champion: Optional[Team] = None

    def simulate(
        self,
        model: FormModel,
        random_state: Optional[int] = None,
        rng=None,
    ) -> "Tournament":
        if self.finished:
            raise ValueError(f"{self.name} has already been simulated")
        if rng is None:
            rng = np.random.default_rng(random_state)
        self._simulate(model, rng)
        self.finished = True
        return self

    def _simulate(self, model: FormModel, rng) -> None:
        raise NotImplementedError

    def results_frame(self) -> pd.DataFrame:
        return pd.DataFrame([vars(m) for m in self.matches])

    def stage_of_elimination(self) -> Dict[str, str]:
        raise NotImplementedError


class OlympicBasketball(Tournament):
    """
    Twelve teams in three groups of four.

      - single round robin inside each group (2 points per win, no draws)
      - group winners, runners-up and the two best third-placed teams advance
      - the eight are split into four pots of two by that order; pot i plays
        pot 3 - i in the quarterfinals
      - semifinal losers meet in the bronze match
    """

    def __init__(self, groups: Dict[str, List[Team]]):
        if len(groups) != GROUP_COUNT:
            raise ValueError(f"OlympicBasketball requires {GROUP_COUNT} groups, got {len(groups)}")
        for g, ts in groups.items():
            if len(ts) != GROUP_SIZE:
                raise ValueError(f"Group {g} must have {GROUP_SIZE} teams")
        self.groups: Dict[str, List[Team]] = {g: list(ts) for g, ts in groups.items()}
        self.team_index = team_index(self.groups)
        super().__init__(
            name="OlympicBasketball",
            teams=[t for ts in self.groups.values() for t in ts],
        )
        self.group_results: Dict[str, Tuple[MatchResult, ...]] = {}
        self.group_tables: Dict[str, pd.DataFrame] = {}
        self.standings: Dict[str, Tuple[StandingEntry, ...]] = {}
        self.top_eight: Tuple[StandingEntry, ...] = ()
        self.pots: List[List[Team]] = []
        self.quarterfinals: List[Tuple[Team, Team]] = []
        self.elimination: Optional[EliminationResults] = None

    def _check_model(self, model: FormModel) -> None:
        if not model.is_fit:
            raise ValueError("Form model must be fit on exhibition data before simulating")
        missing = [t.code for t in self.teams if t.code not in model.teams]
        if missing:
            raise ValueError(f"Teams not in model: {missing}")
        # Every base score must be derivable before the first game mutates form.
        for t in self.teams:
            model.scoring_level(t.code)

    def _simulate(self, model: FormModel, rng) -> None:
        self._check_model(model)

        for group, teams in self.groups.items():
            results = simulate_group(model, rng, group, teams)
            self.group_results[group] = results
            self.matches.extend(results)

        self.group_tables, self.standings = compute_standings(self.groups, self.group_results)

        self.top_eight = select_top_eight(self.standings)
        seeded = [entry.team for entry in self.top_eight]
        self.pots = draw_pots(seeded)
        self.quarterfinals = quarterfinal_pairs(seeded)

        self.elimination = simulate_knockout(model, rng, self.quarterfinals)
        self.matches.extend(m.to_result() for m in self.elimination.all_matches())
        self.champion = self.elimination.finals[0].winner

    def stage_of_elimination(self) -> Dict[str, str]:
        if self.elimination is None:
            return {}
        stages = {t.code: STAGE_GROUP for t in self.teams}
        for m in self.elimination.quarterfinals:
            stages[m.loser.code] = STAGE_QUARTERFINAL
        bronze = self.elimination.bronze[0]
        stages[bronze.winner.code] = PLACE_THIRD
        stages[bronze.loser.code] = PLACE_FOURTH
        final = self.elimination.finals[0]
        stages[final.winner.code] = PLACE_CHAMPION
        stages[final.loser.code] = STAGE_FINAL
        return {code: ELIMINATION_STAGES[stage] for code, stage in stages.items()}


def simulate_many(
    groups: Dict[str, List[Team]],
    exhibitions: pd.DataFrame,
    n_sims: int = 1000,
    seed: Optional[int] = None,
    verbose: bool = False,
) -> pd.DataFrame:
    """
    Run n_sims independent tournaments (fresh form each time, one shared
    generator) and return, per team, the share of runs ending at each stage.
    """
    if n_sims < 1:
        raise ValueError("n_sims must be positive")
    rng = np.random.default_rng(seed)
    teams = team_index(groups)
    records = []
    for i in range(n_sims):
        model = FormModel()
        model.fit(teams, exhibitions)
        t = OlympicBasketball(groups).simulate(model, rng=rng)
        for code, stage in t.stage_of_elimination().items():
            records.append({"team": code, "stage": stage})
        done = i + 1
        if verbose and (done % max(1, n_sims // 10) == 0 or done == n_sims):
            print(f"  simulated {done}/{n_sims} tournaments ({done / n_sims * 100:.0f}%)", flush=True)

    df = pd.DataFrame(records)
    table = pd.crosstab(df["team"], df["stage"]) / n_sims
    table = table.reindex(columns=sorted(ELIMINATION_STAGES.values()), fill_value=0.0)
    return table.sort_values(sorted(ELIMINATION_STAGES.values())[::-1], ascending=False)
