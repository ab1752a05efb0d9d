from datetime import datetime, timedelta, timezone

from feedbackloop.services import analytics

NOW = datetime(2026, 3, 20, 15, 30, tzinfo=timezone.utc)


def test_nps_score():
    assert analytics.nps_score(0, 0, 0) == 0
    assert analytics.nps_score(3, 1, 5) == 40
    assert analytics.nps_score(3, 1, 6) == 33
    assert analytics.nps_score(0, 4, 4) == -100
    # Halves go up
    assert analytics.nps_score(1, 0, 8) == 13


def test_range_start():
    assert analytics.range_start("7d", NOW) == NOW - timedelta(days=7)
    assert analytics.range_start("30d", NOW) == NOW - timedelta(days=30)
    assert analytics.range_start("this_month", NOW) == datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert analytics.range_start("bogus", NOW) == NOW - timedelta(days=30)


def test_tag_frequencies_order_and_sentiment():
    answers = [{"tags": ["Speed", "Price"]}, {"tags": ["Price"]}, None, {"comment": "x"}]
    answers += [{"tags": ["Bugs"]}] * 11
    top = analytics.tag_frequencies(answers)
    assert [t["tag"] for t in top] == ["Bugs", "Price", "Speed"]
    assert top[0] == {"tag": "Bugs", "count": 11, "sentiment": "positive"}
    assert top[1]["sentiment"] == "neutral"


def test_tag_frequencies_limit():
    answers = [{"tags": [f"t{i}" for i in range(15)]}]
    assert len(analytics.tag_frequencies(answers)) == 10


def test_project_stats(app, make_user, make_project, make_feedback):
    owner = make_user()
    project = make_project(owner)
    day1 = NOW - timedelta(days=2)
    day2 = NOW - timedelta(days=1)
    make_feedback(project, rating=5, answers={"tags": ["Speed"]}, created_at=day1)
    make_feedback(project, rating=4, answers={"tags": ["Speed", "Design"]}, created_at=day1)
    make_feedback(project, rating=1, answers={"tags": ["Bugs"]}, created_at=day2)
    make_feedback(project, rating=4, created_at=day2)
    # Outside the 7 day window
    make_feedback(project, rating=1, created_at=NOW - timedelta(days=20))

    with app.app_context():
        stats = analytics.project_stats(project.id, "7d", now=NOW)

    assert stats["range"] == "7d"
    assert stats["summary"] == {"total_feedback": 4, "average_rating": 3.5, "nps_score": 50}
    assert stats["chart_data"] == [
        {"date": day1.date().isoformat(), "avg_rating": 4.5, "count": 2},
        {"date": day2.date().isoformat(), "avg_rating": 2.5, "count": 2},
    ]
    assert stats["top_tags"][0] == {"tag": "Speed", "count": 2, "sentiment": "neutral"}

    with app.app_context():
        wide = analytics.project_stats(project.id, "nope", now=NOW)
    assert wide["range"] == "30d"
    assert wide["summary"]["total_feedback"] == 5


def test_project_stats_empty(app, make_user, make_project):
    project = make_project(make_user())
    with app.app_context():
        stats = analytics.project_stats(project.id, "30d", now=NOW)
    assert stats["summary"] == {"total_feedback": 0, "average_rating": 0, "nps_score": 0}
    assert stats["chart_data"] == []
    assert stats["top_tags"] == []


def test_project_overview(app, make_user, make_project, make_feedback):
    owner = make_user()
    a = make_project(owner, slug="proj-a")
    b = make_project(owner, slug="proj-b")
    make_feedback(a, rating=5)
    make_feedback(a, rating=2)
    with app.app_context():
        overview = analytics.project_overview([a.id, b.id])
        assert analytics.project_overview([]) == {}
    assert overview[a.id] == {"feedback_count": 2, "avg_rating": 3.5}
    assert overview[b.id] == {"feedback_count": 0, "avg_rating": None}
