import uuid
from types import SimpleNamespace

from feedbackloop.services.widget import (
    DEFAULT_STEP,
    DEFAULT_THEME,
    is_origin_allowed,
    logic_warnings,
    origin_hostname,
    overlapping_rating_groups,
    resolve_widget_config,
    select_logic_step,
    unreachable_steps,
)

HAPPY = {"rating_group": [4, 5], "title": "What did you love?", "tags": ["Speed", "Design"],
         "placeholder": "Tell us more", "collect_email": False, "cta_redirect": "https://g.page/review"}
UNHAPPY = {"rating_group": [1, 2], "title": "What went wrong?", "tags": ["Bugs"],
           "placeholder": "Help us fix it", "collect_email": True}


def test_first_matching_step_wins():
    shadow = {**HAPPY, "title": "Never shown", "rating_group": [5]}
    step = select_logic_step([HAPPY, shadow], 5)
    assert step["title"] == "What did you love?"
    assert step["is_default"] is False


def test_unclaimed_rating_gets_generic_prompt():
    step = select_logic_step([HAPPY, UNHAPPY], 3)
    assert step["is_default"] is True
    assert step["title"] == DEFAULT_STEP["title"]
    assert step["tags"] == []
    assert step["cta_redirect"] is None


def test_missing_keys_filled_from_default():
    step = select_logic_step([{"rating_group": [1]}], 1)
    assert step["placeholder"] == DEFAULT_STEP["placeholder"]
    assert step["collect_email"] is False


def test_empty_or_none_logic():
    assert select_logic_step(None, 4)["is_default"] is True
    assert select_logic_step([], 4)["is_default"] is True


def test_overlaps_and_unreachable():
    logic = [HAPPY, UNHAPPY, {**HAPPY, "rating_group": [5, 4]}, {**UNHAPPY, "rating_group": [2, 3]}]
    assert overlapping_rating_groups(logic) == [2, 4, 5]
    assert unreachable_steps(logic) == [2]
    warnings = logic_warnings(logic)
    assert len(warnings) == 2
    assert "2, 4, 5" in warnings[0]
    assert warnings[1].startswith("logic[2]")


def test_clean_logic_has_no_warnings():
    assert logic_warnings([HAPPY, UNHAPPY]) == []
    assert logic_warnings(None) == []


def _project(**kw):
    base = dict(id=uuid.uuid4(), name="Acme", widget_config={}, settings={})
    base.update(kw)
    return SimpleNamespace(**base)


def test_resolve_config_merges_theme_over_defaults():
    p = _project(widget_config={"theme": {"color_primary": "#ff0000"}, "logic": [HAPPY]})
    cfg = resolve_widget_config(p)
    assert cfg["project_id"] == str(p.id)
    assert cfg["project_name"] == "Acme"
    assert cfg["theme"] == {**DEFAULT_THEME, "color_primary": "#ff0000"}
    assert cfg["logic"] == [HAPPY]
    assert cfg["show_branding"] is True


def test_resolve_config_defaults_and_branding_flag():
    cfg = resolve_widget_config(_project(widget_config=None, settings={"remove_branding": True}))
    assert cfg["theme"] == DEFAULT_THEME
    assert cfg["logic"] == []
    assert cfg["show_branding"] is False


def test_origin_hostname():
    assert origin_hostname("https://Shop.Acme.com:8443/path") == "shop.acme.com"
    assert origin_hostname("null") is None
    assert origin_hostname("") is None
    assert origin_hostname(None) is None


def test_origin_whitelist_exact_host_only():
    wl = ["acme.com", "localhost"]
    assert is_origin_allowed(wl, "https://acme.com")
    assert is_origin_allowed(wl, "http://localhost:3000")
    assert not is_origin_allowed(wl, "https://shop.acme.com")
    assert not is_origin_allowed(wl, "https://acme.com.evil.io")


def test_origin_missing_or_empty_whitelist_passes():
    assert is_origin_allowed(["acme.com"], None)
    assert is_origin_allowed([], "https://anywhere.io")
    assert is_origin_allowed(None, "https://anywhere.io")
