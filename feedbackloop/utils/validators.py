import re
from typing import Any, List, Optional, Tuple
from uuid import UUID

from feedbackloop.models.feedback import STATUS_CHOICES
from feedbackloop.models.webhook import EVENT_CHOICES

# Simple, pragmatic patterns
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,50}$")
SLUG_RE = re.compile(r"^[a-z0-9-]+$")
IDENTIFIER_RE = re.compile(r"^[a-z0-9_-]+$")
_HTTP_URL_RE = re.compile(r"^https?://[^\s/]+")

SLUG_MIN, SLUG_MAX = 3, 50
PASSWORD_MIN = 8

THEME_POSITIONS = ("bottom_left", "bottom_right", "top_left", "top_right")
DEVICE_TYPES = ("mobile", "tablet", "desktop")
META_KEYS = ("url", "user_agent", "device_type", "os", "browser", "geo")


def clean_str(val: Optional[str], max_len: int = 255) -> Optional[str]:
    """
    Collapse whitespace, trim, enforce max length. Returns None if empty after cleaning.
    """
    if val is None or not isinstance(val, str):
        return None
    s = re.sub(r"\s+", " ", val).strip()
    if not s:
        return None
    return s[:max_len]


def is_valid_email(val: Optional[str]) -> bool:
    if not val or not isinstance(val, str):
        return False
    return bool(_EMAIL_RE.match(val))


def is_valid_username(val: Optional[str]) -> bool:
    return isinstance(val, str) and bool(_USERNAME_RE.match(val))


def is_int(val: Any) -> bool:
    # bool is an int subclass; JSON true must not pass as rating 1
    return isinstance(val, int) and not isinstance(val, bool)


def as_rating(val: Any) -> Optional[int]:
    """Rating 1-5 as an int; integral floats such as 4.0 are accepted."""
    if isinstance(val, float) and val.is_integer():
        val = int(val)
    if is_int(val) and 1 <= val <= 5:
        return val
    return None


def parse_uuid(val: Any) -> Optional[UUID]:
    if isinstance(val, UUID):
        return val
    if not isinstance(val, str):
        return None
    try:
        return UUID(val)
    except ValueError:
        return None


def validate_password(password: Any, field: str = "password") -> List[str]:
    if not isinstance(password, str) or not password:
        return [f"{field}: required"]
    errors = []
    if len(password) < PASSWORD_MIN:
        errors.append(f"{field}: must be at least {PASSWORD_MIN} characters")
    if not re.search(r"[A-Za-z]", password) or not re.search(r"\d", password):
        errors.append(f"{field}: must contain at least one letter and one number")
    return errors


def validate_slug(slug: Any) -> List[str]:
    if not isinstance(slug, str) or not slug:
        return ["slug: required"]
    errors = []
    if not (SLUG_MIN <= len(slug) <= SLUG_MAX):
        errors.append(f"slug: must be {SLUG_MIN}-{SLUG_MAX} characters")
    if not SLUG_RE.match(slug):
        errors.append("slug: only lowercase letters, numbers, and hyphens")
    return errors


def normalize_whitelist(value: Any) -> Tuple[List[str], List[str]]:
    """
    Returns (hostnames, errors). Entries are trimmed and lower-cased; duplicates dropped.
    At least one entry is required.
    """
    if not isinstance(value, list):
        return [], ["domain_whitelist: must be an array of hostnames"]
    hosts: List[str] = []
    errors: List[str] = []
    for i, raw in enumerate(value):
        if not isinstance(raw, str) or not raw.strip():
            errors.append(f"domain_whitelist[{i}]: must be a non-empty string")
            continue
        host = raw.strip().lower()
        if host not in hosts:
            hosts.append(host)
    if not hosts and not errors:
        errors.append("domain_whitelist: at least one domain is required")
    return hosts, errors


def validate_logic_step(step: Any, idx: int) -> List[str]:
    p = f"widget_config.logic[{idx}]"
    if not isinstance(step, dict):
        return [f"{p}: must be an object"]
    errors = []
    group = step.get("rating_group")
    if not isinstance(group, list) or not all(is_int(r) and 1 <= r <= 5 for r in group):
        errors.append(f"{p}.rating_group: must be an array of integers 1-5")
    for key in ("title", "placeholder"):
        if not isinstance(step.get(key), str):
            errors.append(f"{p}.{key}: required string")
    tags = step.get("tags")
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        errors.append(f"{p}.tags: must be an array of strings")
    if not isinstance(step.get("collect_email"), bool):
        errors.append(f"{p}.collect_email: required boolean")
    cta = step.get("cta_redirect")
    if cta is not None and (not isinstance(cta, str) or not _HTTP_URL_RE.match(cta)):
        errors.append(f"{p}.cta_redirect: must be an http(s) URL")
    return errors


def validate_widget_config(cfg: Any) -> List[str]:
    if not isinstance(cfg, dict):
        return ["widget_config: must be an object"]
    errors = []
    theme = cfg.get("theme")
    if theme is not None:
        if not isinstance(theme, dict):
            errors.append("widget_config.theme: must be an object")
        else:
            for key in ("color_primary", "trigger_label"):
                if key in theme and not isinstance(theme[key], str):
                    errors.append(f"widget_config.theme.{key}: must be a string")
            if "position" in theme and theme["position"] not in THEME_POSITIONS:
                errors.append("widget_config.theme.position: must be one of " + ", ".join(THEME_POSITIONS))
    logic = cfg.get("logic")
    if logic is not None:
        if not isinstance(logic, list):
            errors.append("widget_config.logic: must be an array")
        else:
            for idx, step in enumerate(logic):
                errors.extend(validate_logic_step(step, idx))
    return errors


def validate_settings(settings: Any) -> List[str]:
    if not isinstance(settings, dict):
        return ["settings: must be an object"]
    errors = []
    if "remove_branding" in settings and not isinstance(settings["remove_branding"], bool):
        errors.append("settings.remove_branding: must be a boolean")
    if "retention_days" in settings:
        days = settings["retention_days"]
        if not is_int(days) or days <= 0:
            errors.append("settings.retention_days: must be a positive integer")
    return errors


def validate_project_payload(data: Any, partial: bool = False) -> List[str]:
    """Create (partial=False) or PATCH (partial=True) body of a project."""
    if not isinstance(data, dict):
        return ["payload: must be a JSON object"]
    errors: List[str] = []

    if not partial or "name" in data:
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.append("name: required")
        elif len(name) > 255:
            errors.append("name: at most 255 characters")

    if not partial:
        errors.extend(validate_slug(data.get("slug")))

    if not partial or "domain_whitelist" in data:
        errors.extend(normalize_whitelist(data.get("domain_whitelist"))[1])

    if "widget_config" in data and data["widget_config"] is not None:
        errors.extend(validate_widget_config(data["widget_config"]))

    if partial and "settings" in data:
        errors.extend(validate_settings(data["settings"]))

    return errors


def validate_feedback_submission(data: Any) -> List[str]:
    """Public widget body: project_id, rating, optional answers and meta."""
    if not isinstance(data, dict):
        return ["payload: must be a JSON object"]
    errors: List[str] = []

    if parse_uuid(data.get("project_id")) is None:
        errors.append("project_id: Invalid project_id format")

    if as_rating(data.get("rating")) is None:
        errors.append("rating: must be an integer between 1 and 5")

    answers = data.get("answers")
    if answers is not None:
        if not isinstance(answers, dict):
            errors.append("answers: must be an object")
        else:
            tags = answers.get("tags")
            if tags is not None and (not isinstance(tags, list) or not all(isinstance(t, str) for t in tags)):
                errors.append("answers.tags: must be an array of strings")
            comment = answers.get("comment")
            if comment is not None and not isinstance(comment, str):
                errors.append("answers.comment: must be a string")
            email = answers.get("email")
            if email is not None and not is_valid_email(email):
                errors.append("answers.email: Invalid email")

    meta = data.get("meta")
    if meta is not None:
        if not isinstance(meta, dict):
            errors.append("meta: must be an object")
        else:
            for key in META_KEYS:
                if key in meta and meta[key] is not None and not isinstance(meta[key], str):
                    errors.append(f"meta.{key}: must be a string")
            device = meta.get("device_type")
            if isinstance(device, str) and device not in DEVICE_TYPES:
                errors.append("meta.device_type: must be one of " + ", ".join(DEVICE_TYPES))

    return errors


def validate_status(status: Any) -> List[str]:
    if status not in STATUS_CHOICES:
        return ["status: must be one of " + ", ".join(STATUS_CHOICES)]
    return []


def validate_bulk_status(data: Any) -> List[str]:
    if not isinstance(data, dict):
        return ["payload: must be a JSON object"]
    errors = []
    ids = data.get("feedback_ids")
    if not isinstance(ids, list) or not ids:
        errors.append("feedback_ids: at least one id is required")
    elif any(parse_uuid(i) is None for i in ids):
        errors.append("feedback_ids: every id must be a UUID")
    errors.extend(validate_status(data.get("status")))
    return errors


def validate_webhook_payload(data: Any) -> List[str]:
    if not isinstance(data, dict):
        return ["payload: must be a JSON object"]
    errors = []
    url = data.get("url")
    if not isinstance(url, str) or not _HTTP_URL_RE.match(url):
        errors.append("url: must be an http(s) URL")
    events = data.get("events")
    if not isinstance(events, list) or not events:
        errors.append("events: at least one event is required")
    elif any(e not in EVENT_CHOICES for e in events):
        errors.append("events: must be among " + ", ".join(EVENT_CHOICES))
    secret = data.get("secret_key")
    if secret is not None and (not isinstance(secret, str) or len(secret) > 100):
        errors.append("secret_key: must be a string of at most 100 characters")
    return errors
