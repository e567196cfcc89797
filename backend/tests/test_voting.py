from workshop import models, repositories

TAG = "spring-24"


def _ballot(*team_ids):
    return {"votes": [{"voted_for_team_id": tid, "rank": rank} for rank, tid in enumerate(team_ids, start=1)]}


def test_showcase_lists_only_teams_with_websites(make_cohort, client):
    teams = make_cohort(TAG, ["Alpha", "Bravo", "Charlie"], without_website=("Charlie",))
    r = client.get(f"/api/showcase/{TAG}")
    assert r.status_code == 200
    names = [t["name"] for t in r.json()]
    assert names == ["Alpha", "Bravo"]
    assert r.json()[0]["submitted_website_url"] == "https://alpha.example"
    assert "access_token" not in r.json()[0]
    assert client.get("/api/showcase/nope").status_code == 404


def test_ballot_is_stored_in_rank_order(make_cohort):
    teams = make_cohort(TAG, ["Alpha", "Bravo", "Charlie", "Delta"])
    alpha, ac = teams["Alpha"]
    b, c, d = (teams[n][0]["id"] for n in ("Bravo", "Charlie", "Delta"))
    body = {"votes": [
        {"voted_for_team_id": d, "rank": 3},
        {"voted_for_team_id": b, "rank": 1},
        {"voted_for_team_id": c, "rank": 2},
    ]}
    r = ac.post(f"/api/showcase/{TAG}/vote", json=body)
    assert r.status_code == 201, r.text
    assert r.json()["message"] == "Vote recorded"

    r = ac.get(f"/api/showcase/{TAG}/vote")
    assert r.status_code == 200
    data = r.json()
    assert data["has_voted"] is True
    assert [(v["rank"], v["voted_for_team_id"]) for v in data["votes"]] == [(1, b), (2, c), (3, d)]
    assert data["votes"][0]["voted_for_team_name"] == "Bravo"


def test_ballot_accepts_team_id_aliases(make_cohort):
    teams = make_cohort(TAG, ["Alpha", "Bravo", "Charlie"])
    _, ac = teams["Alpha"]
    body = {"votes": [
        {"teamId": teams["Bravo"][0]["id"], "rank": 1},
        {"team_id": teams["Charlie"][0]["id"], "rank": 2},
    ]}
    r = ac.post(f"/api/showcase/{TAG}/vote", json=body)
    assert r.status_code == 201, r.text


def test_second_ballot_is_rejected(make_cohort):
    teams = make_cohort(TAG, ["Alpha", "Bravo", "Charlie"])
    _, ac = teams["Alpha"]
    body = _ballot(teams["Bravo"][0]["id"], teams["Charlie"][0]["id"])
    assert ac.post(f"/api/showcase/{TAG}/vote", json=body).status_code == 201
    r = ac.post(f"/api/showcase/{TAG}/vote", json=_ballot(teams["Charlie"][0]["id"], teams["Bravo"][0]["id"]))
    assert r.status_code == 400
    assert r.json()["message"] == "Your team has already voted in this cohort"


def test_self_vote_is_rejected(make_cohort):
    teams = make_cohort(TAG, ["Alpha", "Bravo", "Charlie"])
    alpha, ac = teams["Alpha"]
    r = ac.post(f"/api/showcase/{TAG}/vote", json=_ballot(alpha["id"], teams["Bravo"][0]["id"]))
    assert r.status_code == 400
    assert r.json()["message"] == "Cannot vote for your own team"


def test_duplicate_targets_and_ranks_are_rejected(make_cohort):
    teams = make_cohort(TAG, ["Alpha", "Bravo", "Charlie", "Delta"])
    _, ac = teams["Alpha"]
    b, c, d = (teams[n][0]["id"] for n in ("Bravo", "Charlie", "Delta"))

    r = ac.post(f"/api/showcase/{TAG}/vote", json=_ballot(b, b, c))
    assert r.status_code == 400
    assert r.json()["message"] == "Each team can receive only one of your votes"

    body = {"votes": [
        {"voted_for_team_id": b, "rank": 1},
        {"voted_for_team_id": c, "rank": 1},
        {"voted_for_team_id": d, "rank": 2},
    ]}
    r = ac.post(f"/api/showcase/{TAG}/vote", json=body)
    assert r.status_code == 400
    assert r.json()["message"] == "Ranks must be distinct and start at 1"

    body = {"votes": [{"voted_for_team_id": b, "rank": 2}]}
    r = ac.post(f"/api/showcase/{TAG}/vote", json=body)
    assert r.status_code == 400
    assert r.json()["message"] == "Ranks must be distinct and start at 1"


def test_ballot_must_rank_as_many_teams_as_possible(make_cohort):
    teams = make_cohort(TAG, ["Alpha", "Bravo", "Charlie", "Delta"])
    _, ac = teams["Alpha"]
    r = ac.post(f"/api/showcase/{TAG}/vote", json=_ballot(teams["Bravo"][0]["id"], teams["Charlie"][0]["id"]))
    assert r.status_code == 400
    assert r.json()["message"] == "Your ballot must rank exactly 3 teams"


def test_small_cohort_ballot_ranks_the_only_other_team(make_cohort):
    teams = make_cohort(TAG, ["Alpha", "Bravo"])
    _, ac = teams["Alpha"]
    r = ac.post(f"/api/showcase/{TAG}/vote", json=_ballot(teams["Bravo"][0]["id"]))
    assert r.status_code == 201, r.text


def test_ballot_schema_errors(make_cohort):
    teams = make_cohort(TAG, ["Alpha", "Bravo"])
    _, ac = teams["Alpha"]
    bravo_id = teams["Bravo"][0]["id"]
    for body in (
        {"votes": []},
        {"votes": [{"voted_for_team_id": bravo_id, "rank": 4}]},
        {"votes": [{"voted_for_team_id": bravo_id, "rank": r} for r in (1, 2, 3, 3)]},
        {"votes": [{"rank": 1}]},
        {},
    ):
        r = ac.post(f"/api/showcase/{TAG}/vote", json=body)
        assert r.status_code == 400, body
        assert r.json()["message"] == "Invalid request data"
        assert r.json()["errors"]


def test_votes_for_teams_without_website_or_outside_cohort_are_rejected(make_cohort, make_team):
    teams = make_cohort(TAG, ["Alpha", "Bravo", "Charlie"], without_website=("Charlie",))
    _, ac = teams["Alpha"]
    outsider, _ = make_team("Outsider", website="https://outsider.example")

    r = ac.post(f"/api/showcase/{TAG}/vote", json=_ballot(teams["Charlie"][0]["id"]))
    assert r.status_code == 400
    assert r.json()["message"] == f"Team {teams['Charlie'][0]['id']} is not an eligible showcase entry"

    r = ac.post(f"/api/showcase/{TAG}/vote", json=_ballot(outsider["id"]))
    assert r.status_code == 400

    r = ac.post(f"/api/showcase/{TAG}/vote", json=_ballot(99999))
    assert r.status_code == 400


def test_voting_requires_open_cohort(make_cohort):
    teams = make_cohort(TAG, ["Alpha", "Bravo"], open_voting=False)
    _, ac = teams["Alpha"]
    r = ac.post(f"/api/showcase/{TAG}/vote", json=_ballot(teams["Bravo"][0]["id"]))
    assert r.status_code == 403
    assert r.json()["message"] == "Voting is not open for this cohort"


def test_voting_requires_own_website(make_cohort):
    teams = make_cohort(TAG, ["Alpha", "Bravo"], without_website=("Alpha",))
    _, ac = teams["Alpha"]
    r = ac.post(f"/api/showcase/{TAG}/vote", json=_ballot(teams["Bravo"][0]["id"]))
    assert r.status_code == 403
    assert r.json()["message"] == "Submit your team's website before voting"


def test_voting_requires_cohort_membership(make_cohort, make_team):
    teams = make_cohort(TAG, ["Alpha", "Bravo"])
    _, oc = make_team("Outsider", website="https://outsider.example")
    r = oc.post(f"/api/showcase/{TAG}/vote", json=_ballot(teams["Bravo"][0]["id"]))
    assert r.status_code == 403
    assert r.json()["message"] == "Your team is not part of this cohort"


def test_voting_requires_team_session(make_cohort, client):
    teams = make_cohort(TAG, ["Alpha", "Bravo"])
    r = client.post(f"/api/showcase/{TAG}/vote", json=_ballot(teams["Bravo"][0]["id"]))
    assert r.status_code == 401
    assert r.json()["message"] == "Unauthorized - No team session"
    assert client.get(f"/api/showcase/{TAG}/vote").status_code == 401


def test_unknown_cohort_vote_is_404(make_team):
    _, tc = make_team("Alpha", website="https://alpha.example")
    r = tc.post("/api/showcase/missing/vote", json=_ballot(1))
    assert r.status_code == 404
    assert r.json()["message"] == "Cohort not found"


def test_admin_can_read_any_ballot(make_cohort, admin_client):
    teams = make_cohort(TAG, ["Alpha", "Bravo"])
    alpha, ac = teams["Alpha"]
    ac.post(f"/api/showcase/{TAG}/vote", json=_ballot(teams["Bravo"][0]["id"]))
    r = admin_client.get(f"/api/showcase/{TAG}/vote", params={"team_id": alpha["id"]})
    assert r.status_code == 200
    assert r.json()["has_voted"] is True
    assert admin_client.get(f"/api/showcase/{TAG}/vote").status_code == 400


def test_results_hidden_until_revealed(make_cohort, admin_client, client):
    teams = make_cohort(TAG, ["Alpha", "Bravo"])
    _, ac = teams["Alpha"]
    ac.post(f"/api/showcase/{TAG}/vote", json=_ballot(teams["Bravo"][0]["id"]))

    r = client.get(f"/api/showcase/{TAG}/results")
    assert r.status_code == 403
    assert r.json()["message"] == "Results are not yet available"

    preview = admin_client.get(f"/api/showcase/{TAG}/results")
    assert preview.status_code == 200
    assert preview.json()["results_visible"] is False
    assert preview.json()["total_ballots"] == 1

    r = admin_client.patch(f"/api/admin/cohorts/{TAG}", json={"results_visible": True})
    assert r.json()["voting_open"] is False

    r = client.get(f"/api/showcase/{TAG}/results")
    assert r.status_code == 200
    assert r.json()["results"][0]["team_name"] == "Bravo"
    assert r.json()["results"][0]["total_points"] == 3

    # revealing results closed voting
    _, bc = teams["Bravo"]
    r = bc.post(f"/api/showcase/{TAG}/vote", json=_ballot(teams["Alpha"][0]["id"]))
    assert r.status_code == 403


def test_results_full_round(make_cohort, admin_client):
    teams = make_cohort(TAG, ["Alpha", "Bravo", "Charlie", "Delta"])
    ids = {n: t["id"] for n, (t, _) in teams.items()}
    ballots = {
        "Alpha": ("Bravo", "Charlie", "Delta"),
        "Bravo": ("Alpha", "Charlie", "Delta"),
        "Charlie": ("Alpha", "Bravo", "Delta"),
        "Delta": ("Alpha", "Bravo", "Charlie"),
    }
    for voter, picks in ballots.items():
        r = teams[voter][1].post(f"/api/showcase/{TAG}/vote", json=_ballot(*(ids[p] for p in picks)))
        assert r.status_code == 201, r.text

    data = admin_client.get(f"/api/showcase/{TAG}/results").json()
    assert data["total_ballots"] == 4
    summary = [(e["position"], e["team_name"], e["total_points"]) for e in data["results"]]
    assert summary == [(1, "Alpha", 9), (2, "Bravo", 7), (3, "Charlie", 5), (4, "Delta", 3)]
    assert [e["team_name"] for e in data["podium"]] == ["Alpha", "Bravo", "Charlie"]
    alpha = data["results"][0]
    assert alpha["votes"] == [{"rank": 1, "count": 3}, {"rank": 2, "count": 0}, {"rank": 3, "count": 0}]


def _seed_votes(db, tag, names, ballots, results_visible=True):
    """Insert cohort, teams and raw votes directly; returns `{name: id}`."""
    db.add(models.Cohort(tag=tag, name=tag, results_visible=results_visible))
    db.commit()
    ids = {}
    for i, name in enumerate(names):
        team = models.Team(code=f"T{i:03d}", name=name, access_token=f"TOKEN{i:03d}", cohort_tag=tag,
                           submitted_website_url=f"https://{i}.example")
        db.add(team)
        db.commit()
        db.refresh(team)
        ids[name] = team.id
    for voter, picks in ballots.items():
        for rank, target in enumerate(picks, start=1):
            if target:
                db.add(models.Vote(cohort_tag=tag, voting_team_id=ids[voter], voted_for_team_id=ids[target], rank=rank))
    db.commit()
    return ids


def test_results_tie_break_prefers_more_first_places(db, client):
    # X: rank1 + rank3 = 4 points, Y: rank2 + rank2 = 4 points
    _seed_votes(db, TAG, ["X team", "Y team", "V1", "V2"], {
        "V1": ("X team", "Y team"),
        "V2": (None, "Y team", "X team"),
    })
    data = client.get(f"/api/showcase/{TAG}/results").json()
    assert [(e["team_name"], e["total_points"], e["position"]) for e in data["results"]] == [
        ("X team", 4, 1),
        ("Y team", 4, 2),
    ]


def test_results_use_competition_ranking_for_full_ties(db, client):
    _seed_votes(db, TAG, ["X team", "P team", "Q team", "R team", "V1", "V2", "V3", "V4"], {
        "V1": ("P team", "Q team", "R team"),
        "V2": ("Q team", "P team", "R team"),
        "V3": ("X team",),
        "V4": ("X team",),
    })
    data = client.get(f"/api/showcase/{TAG}/results").json()
    assert [(e["team_name"], e["total_points"], e["position"]) for e in data["results"]] == [
        ("X team", 6, 1),
        ("P team", 5, 2),
        ("Q team", 5, 2),
        ("R team", 2, 4),
    ]
    assert [e["team_name"] for e in data["podium"]] == ["X team", "P team", "Q team"]
    assert data["total_ballots"] == 4


def test_results_for_cohort_without_votes(db, client):
    _seed_votes(db, TAG, ["Alpha"], {})
    data = client.get(f"/api/showcase/{TAG}/results").json()
    assert data["results"] == []
    assert data["podium"] == []
    assert data["total_ballots"] == 0


def test_ballot_audit(make_cohort, admin_client, client):
    teams = make_cohort(TAG, ["Alpha", "Bravo", "Charlie"])
    _, ac = teams["Alpha"]
    ac.post(f"/api/showcase/{TAG}/vote", json=_ballot(teams["Bravo"][0]["id"], teams["Charlie"][0]["id"]))

    assert client.get(f"/api/admin/cohorts/{TAG}/votes").status_code == 401
    r = admin_client.get(f"/api/admin/cohorts/{TAG}/votes")
    assert r.status_code == 200
    data = r.json()
    assert data["total_ballots"] == 1
    by_name = {t["team_name"]: t for t in data["teams"]}
    assert by_name["Alpha"]["has_voted"] is True
    assert by_name["Bravo"]["has_voted"] is False
    assert by_name["Bravo"]["votes_received"] == 1
    assert data["ballots"][0]["voting_team_name"] == "Alpha"
    assert [v["voted_for_team_name"] for v in data["ballots"][0]["votes"]] == ["Bravo", "Charlie"]


def test_website_is_locked_while_voting_is_open(make_cohort, make_team, admin_client):
    teams = make_cohort(TAG, ["Alpha", "Bravo"], without_website=("Bravo",))
    alpha, ac = teams["Alpha"]
    r = ac.patch(f"/api/teams/{alpha['id']}/website", json={"website_url": "https://other.example"})
    assert r.status_code == 409
    r = ac.patch(f"/api/teams/{alpha['id']}/website", json={"website_url": ""})
    assert r.status_code == 409

    # a first submission during voting is still accepted
    bravo, bc = teams["Bravo"]
    r = bc.patch(f"/api/teams/{bravo['id']}/website", json={"website_url": "https://bravo.example"})
    assert r.status_code == 200

    admin_client.patch(f"/api/admin/cohorts/{TAG}", json={"voting_open": False})
    r = ac.patch(f"/api/teams/{alpha['id']}/website", json={"website_url": "https://other.example"})
    assert r.status_code == 200
    assert r.json()["submitted_website_url"] == "https://other.example"


def test_code_login_session_cannot_vote(make_cohort, client):
    teams = make_cohort(TAG, ["Alpha", "Bravo"])
    alpha_code = next(t["code"] for t in client.get("/api/teams").json() if t["name"] == "Alpha")
    r = client.post("/api/auth/team/login-code", json={"code": alpha_code})
    assert r.status_code == 200

    r = client.post(f"/api/showcase/{TAG}/vote", json=_ballot(teams["Bravo"][0]["id"]))
    assert r.status_code == 403
    assert r.json()["message"] == "Log in with your access token to do this"
    _, ac = teams["Alpha"]
    assert ac.get(f"/api/showcase/{TAG}/vote").json()["has_voted"] is False


def test_concurrent_second_ballot_hits_unique_constraint(make_cohort, admin_client, monkeypatch):
    teams = make_cohort(TAG, ["Alpha", "Bravo", "Charlie"])
    _, ac = teams["Alpha"]
    bravo_id, charlie_id = teams["Bravo"][0]["id"], teams["Charlie"][0]["id"]
    assert ac.post(f"/api/showcase/{TAG}/vote", json=_ballot(bravo_id, charlie_id)).status_code == 201

    # the pre-check misses the first ballot, as when two requests overlap
    monkeypatch.setattr(repositories.VoteRepository, "has_voted", lambda self, cohort_tag, voting_team_id: False)
    r = ac.post(f"/api/showcase/{TAG}/vote", json=_ballot(charlie_id, bravo_id))
    assert r.status_code == 400
    assert r.json()["message"] == "Your team has already voted in this cohort"

    audit = admin_client.get(f"/api/admin/cohorts/{TAG}/votes").json()
    assert audit["total_ballots"] == 1
    assert [v["voted_for_team_id"] for v in audit["ballots"][0]["votes"]] == [bravo_id, charlie_id]
