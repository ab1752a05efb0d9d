"""
Widget runtime: rating-bucket branching and the embed-origin check.

A project's ``widget_config`` holds a ``theme`` and an ordered list of logic
steps::

    {"rating_group": [4, 5], "title": "What did you love?", "tags": ["Speed"],
     "placeholder": "Tell us more", "collect_email": False,
     "cta_redirect": "https://example.com/review"}

The first step whose ``rating_group`` contains the submitted rating drives
the follow-up form. Ratings no step claims get the generic comment prompt.
"""
from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

DEFAULT_THEME: Dict[str, str] = {
    "color_primary": "#000000",
    "position": "bottom_right",
    "trigger_label": "Feedback",
}

DEFAULT_STEP: Dict[str, Any] = {
    "rating_group": [],
    "title": "Please add a comment to help us improve.",
    "tags": [],
    "placeholder": "Share your thoughts with us...",
    "collect_email": False,
    "cta_redirect": None,
}


def select_logic_step(logic: Optional[Iterable[dict]], rating: int) -> Dict[str, Any]:
    """Return the first step claiming ``rating``; the generic prompt otherwise."""
    for step in logic or []:
        if not isinstance(step, dict):
            continue
        group = step.get("rating_group") or []
        if rating in group:
            return {**DEFAULT_STEP, **step, "is_default": False}
    return {**DEFAULT_STEP, "is_default": True}


def overlapping_rating_groups(logic: Optional[Iterable[dict]]) -> List[int]:
    """Ratings claimed by more than one step. Only the first claimant is ever used."""
    seen = Counter()
    for step in logic or []:
        if isinstance(step, dict):
            seen.update(set(step.get("rating_group") or []))
    return sorted(r for r, n in seen.items() if n > 1)


def unreachable_steps(logic: Optional[Iterable[dict]]) -> List[int]:
    """Indexes of steps whose every rating is already claimed by an earlier step."""
    claimed = set()
    dead = []
    for idx, step in enumerate(logic or []):
        if not isinstance(step, dict):
            continue
        group = set(step.get("rating_group") or [])
        if group and group <= claimed:
            dead.append(idx)
        claimed |= group
    return dead


def logic_warnings(logic: Optional[Iterable[dict]]) -> List[str]:
    logic = list(logic or [])
    warnings = []
    overlaps = overlapping_rating_groups(logic)
    if overlaps:
        warnings.append(
            "ratings %s appear in more than one logic step; the first matching step wins"
            % ", ".join(str(r) for r in overlaps)
        )
    for idx in unreachable_steps(logic):
        warnings.append(f"logic[{idx}] is never shown: all of its ratings are claimed by earlier steps")
    return warnings


def resolve_widget_config(project) -> Dict[str, Any]:
    """Public widget payload. Stored theme keys override the defaults one by one."""
    config = project.widget_config or {}
    theme = {**DEFAULT_THEME, **(config.get("theme") or {})}
    settings = project.settings or {}
    return {
        "project_id": str(project.id),
        "project_name": project.name,
        "theme": theme,
        "logic": list(config.get("logic") or []),
        "show_branding": not bool(settings.get("remove_branding")),
    }


def origin_hostname(origin: Optional[str]) -> Optional[str]:
    """Hostname of an Origin/Referer header value; None when absent or unparsable."""
    if not origin:
        return None
    try:
        parsed = urlparse(origin.strip())
        host = parsed.hostname
    except ValueError:
        return None
    if not parsed.scheme or not host:
        return None
    return host


def is_origin_allowed(whitelist: Optional[Iterable[str]], origin: Optional[str]) -> bool:
    """
    Empty whitelist or missing origin (direct link, QR code, server-side call) passes.
    Otherwise the origin's hostname must appear verbatim in the whitelist; there is
    no wildcard or subdomain matching.
    """
    whitelist = list(whitelist or [])
    if not whitelist:
        return True
    host = origin_hostname(origin)
    if host is None:
        return True
    return host in whitelist
