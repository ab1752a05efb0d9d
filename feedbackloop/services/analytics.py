"""Dashboard analytics: NPS, average rating, daily series and tag frequency."""
from __future__ import annotations

import math
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy import case, func

from feedbackloop.extensions import db
from feedbackloop.models import Feedback

RANGE_CHOICES = ("7d", "30d", "this_month")
DEFAULT_RANGE = "30d"
TOP_TAGS_LIMIT = 10
POSITIVE_TAG_THRESHOLD = 10  # display heuristic only


def range_start(range_key: Optional[str], now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    if range_key == "7d":
        return now - timedelta(days=7)
    if range_key == "this_month":
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return now - timedelta(days=30)


def nps_score(promoters: int, detractors: int, total: int) -> int:
    """% ratings >= 4 minus % ratings <= 2, rounded with .5 going up."""
    if not total:
        return 0
    raw = (promoters / total) * 100 - (detractors / total) * 100
    return math.floor(raw + 0.5)


def tag_frequencies(answers: Iterable[Optional[dict]], limit: int = TOP_TAGS_LIMIT) -> List[Dict]:
    counts = Counter()
    for a in answers:
        tags = (a or {}).get("tags") or []
        counts.update(t for t in tags if isinstance(t, str))
    # Counter.most_common keeps first-seen order among equal counts
    return [
        {
            "tag": tag,
            "count": count,
            "sentiment": "positive" if count > POSITIVE_TAG_THRESHOLD else "neutral",
        }
        for tag, count in counts.most_common(limit)
    ]


def _date_str(value) -> str:
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    return str(value)


def project_stats(project_id, range_key: Optional[str] = None, now: Optional[datetime] = None) -> Dict:
    range_key = range_key if range_key in RANGE_CHOICES else DEFAULT_RANGE
    start = range_start(range_key, now)
    scope = (Feedback.project_id == project_id, Feedback.created_at >= start)

    total, avg_rating, promoters, detractors = (
        db.session.query(
            func.count(Feedback.id),
            func.avg(Feedback.rating),
            func.coalesce(func.sum(case((Feedback.rating >= 4, 1), else_=0)), 0),
            func.coalesce(func.sum(case((Feedback.rating <= 2, 1), else_=0)), 0),
        )
        .filter(*scope)
        .one()
    )
    total = int(total or 0)

    day = func.date(Feedback.created_at)
    daily = (
        db.session.query(day, func.avg(Feedback.rating), func.count(Feedback.id))
        .filter(*scope)
        .group_by(day)
        .order_by(day)
        .all()
    )

    answers = (a for (a,) in db.session.query(Feedback.answers).filter(*scope).yield_per(500))

    return {
        "range": range_key,
        "summary": {
            "total_feedback": total,
            "average_rating": round(float(avg_rating), 1) if avg_rating is not None else 0,
            "nps_score": nps_score(int(promoters), int(detractors), total),
        },
        "chart_data": [
            {
                "date": _date_str(d),
                "avg_rating": round(float(avg), 1) if avg is not None else 0,
                "count": int(count),
            }
            for d, avg, count in daily
        ],
        "top_tags": tag_frequencies(answers),
    }


def project_overview(project_ids: List) -> Dict:
    """{project_id: {"feedback_count", "avg_rating"}} for the project list, one query."""
    if not project_ids:
        return {}
    rows = (
        db.session.query(Feedback.project_id, func.count(Feedback.id), func.avg(Feedback.rating))
        .filter(Feedback.project_id.in_(project_ids))
        .group_by(Feedback.project_id)
        .all()
    )
    out = {pid: {"feedback_count": 0, "avg_rating": None} for pid in project_ids}
    for pid, count, avg in rows:
        out[pid] = {
            "feedback_count": int(count),
            "avg_rating": round(float(avg), 2) if avg is not None else None,
        }
    return out
