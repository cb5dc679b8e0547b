"""
Tests for environment settings and site configuration loading.
"""
import json

import pytest

from config.settings import ConfigError, load_settings, parse_bool, parse_number
from sitewatch.models.site import DEFAULT_GOAL_KEYWORDS, RelevanceMode
from sitewatch.services.site_loader import load_sites, site_id_from_url
from sitewatch.utils.content_analysis import HeuristicFilter

BASE_ENV = {
    "OPENAI_API_KEY": "sk-test",
    "DISCORD_WEBHOOK_URL": "https://discord.example/webhook",
}


def env(**overrides) -> dict:
    merged = dict(BASE_ENV)
    merged.update(overrides)
    return merged


# ============================================
# SETTINGS
# ============================================

@pytest.mark.unit
def test_defaults():
    settings = load_settings(env())
    assert settings.max_concurrency == 3
    assert settings.global_check_min == 4
    assert settings.global_check_max == 6
    assert settings.classifier_char_budget == 6000
    assert settings.wait_until == "networkidle"
    assert settings.headless is True
    assert settings.db_path.endswith("sitewatch.db")


@pytest.mark.unit
@pytest.mark.parametrize("missing", ["OPENAI_API_KEY", "DISCORD_WEBHOOK_URL"])
def test_missing_required_key_is_fatal(missing):
    values = env()
    del values[missing]
    with pytest.raises(ConfigError, match=missing):
        load_settings(values)


@pytest.mark.unit
@pytest.mark.parametrize("overrides", [
    {"MAX_CONCURRENCY": "0"},
    {"GLOBAL_CHECK_MIN": "8", "GLOBAL_CHECK_MAX": "6"},
    {"WAIT_UNTIL": "networkidle0"},
])
def test_invalid_values_are_fatal(overrides):
    with pytest.raises(ConfigError):
        load_settings(env(**overrides))


@pytest.mark.unit
def test_malformed_numbers_fall_back_to_default():
    assert load_settings(env(MAX_CONCURRENCY="lots")).max_concurrency == 3
    assert parse_number("2.5", 1) == 2.5
    assert parse_number("", 7) == 7


@pytest.mark.unit
def test_parse_bool():
    assert parse_bool("TRUE", False) is True
    assert parse_bool("no", True) is False
    assert parse_bool(None, True) is True
    assert load_settings(env(PLAYWRIGHT_HEADLESS="false")).headless is False


# ============================================
# SITE LOADING
# ============================================

@pytest.fixture
def settings(tmp_path):
    return load_settings(env(SITES_FILE=str(tmp_path / "missing.json")))


@pytest.mark.unit
def test_sites_file_has_priority(tmp_path):
    sites_file = tmp_path / "sites.json"
    sites_file.write_text(json.dumps({"sites": [{
        "id": "tock",
        "url": "https://www.exploretock.com/x",
        "check_min": 2,
        "relevance_mode": "loose",
        "goal_keywords": ["available"],
        "goal_date": "2025-10-21",
        "scrub_patterns": [{"pattern": "\\d+ viewing", "flags": "i"}, "token=\\w+"],
    }]}), encoding="utf-8")
    settings = load_settings(env(SITES_FILE=str(sites_file), WATCH_URLS="https://other.example"))

    sites = load_sites(settings)

    assert [s.id for s in sites] == ["tock"]
    site = sites[0]
    assert site.relevance_mode == RelevanceMode.LOOSE
    assert site.check_min == 2
    assert site.check_max == 6
    assert site.goal.goal_keywords == ("available",)
    assert site.goal.goal_date == "2025-10-21"
    assert len(site.scrub_patterns) == 2
    assert site.scrub_patterns[0].flags == "i"


@pytest.mark.unit
def test_invalid_and_duplicate_entries_skipped(tmp_path, log_capture):
    sites_file = tmp_path / "sites.json"
    sites_file.write_text(json.dumps({"sites": [
        {"id": "a", "url": "https://a.example"},
        {"id": "a", "url": "https://dup.example"},
        {"url": "https://no-id.example"},
        {"id": "b", "url": "https://b.example", "relevance_mode": "eager"},
        {"id": "c", "url": "https://c.example", "check_min": 9, "check_max": 3},
    ]}), encoding="utf-8")
    settings = load_settings(env(SITES_FILE=str(sites_file)))

    sites = load_sites(settings)

    assert [s.id for s in sites] == ["a"]
    log_capture.assert_logged("duplicate site id", level="WARNING")
    log_capture.assert_logged("unknown relevance_mode", level="WARNING")


@pytest.mark.unit
def test_invalid_json_is_fatal(tmp_path):
    sites_file = tmp_path / "sites.json"
    sites_file.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_sites(load_settings(env(SITES_FILE=str(sites_file))))


@pytest.mark.unit
def test_watch_urls(tmp_path):
    settings = load_settings(env(
        SITES_FILE=str(tmp_path / "missing.json"),
        WATCH_URLS="https://www.resy.com/a, https://example.org/b ,",
        GLOBAL_CHECK_MIN="3",
        GLOBAL_CHECK_MAX="5",
    ))

    sites = load_sites(settings)

    assert [s.id for s in sites] == ["resy.com-1", "example.org-2"]
    assert all(s.relevance_mode == RelevanceMode.STRICT for s in sites)
    assert sites[0].selector == "main"
    assert (sites[0].check_min, sites[0].check_max) == (3, 5)
    assert sites[0].goal.goal_keywords == DEFAULT_GOAL_KEYWORDS


@pytest.mark.unit
def test_legacy_target_url(tmp_path):
    settings = load_settings(env(
        SITES_FILE=str(tmp_path / "missing.json"),
        TARGET_URL="https://example.com/page",
        CSS_SELECTOR="#content",
        CHECK_INTERVAL_MINUTES="30",
    ))

    sites = load_sites(settings)

    assert len(sites) == 1
    assert sites[0].id == "legacy-site"
    assert sites[0].relevance_mode == RelevanceMode.LOOSE
    assert sites[0].selector == "#content"
    assert sites[0].check_min == sites[0].check_max == 30


@pytest.mark.unit
def test_no_sites_is_fatal(settings):
    with pytest.raises(ConfigError, match="No sites configured"):
        load_sites(settings)


@pytest.mark.unit
def test_site_id_without_hostname():
    assert site_id_from_url("not a url", 0) == "site-1"


@pytest.mark.unit
def test_single_cadence_bound_keeps_pair_ordered(tmp_path):
    sites_file = tmp_path / "sites.json"
    sites_file.write_text(json.dumps({"sites": [
        {"id": "slow", "url": "https://slow.example", "check_min": 30},
        {"id": "fast", "url": "https://fast.example", "check_max": 2},
        {"id": "wide", "url": "https://wide.example", "check_min": 1},
    ]}), encoding="utf-8")
    settings = load_settings(env(SITES_FILE=str(sites_file)))

    sites = {s.id: s for s in load_sites(settings)}

    assert (sites["slow"].check_min, sites["slow"].check_max) == (30, 30)
    assert (sites["fast"].check_min, sites["fast"].check_max) == (2, 2)
    assert (sites["wide"].check_min, sites["wide"].check_max) == (1, 6)


@pytest.mark.unit
def test_record_values_are_type_checked(tmp_path, log_capture):
    sites_file = tmp_path / "sites.json"
    sites_file.write_text(json.dumps({"sites": [
        {"id": "dated", "url": "https://dated.example", "goal_date": 20251021, "headless": False},
        {"id": "stringly", "url": "https://s.example", "headless": "false"},
        {"id": "wordy", "url": "https://w.example", "check_min": "often"},
    ]}), encoding="utf-8")
    settings = load_settings(env(SITES_FILE=str(sites_file)))

    sites = load_sites(settings)

    assert [s.id for s in sites] == ["dated"]
    assert sites[0].goal.goal_date == "20251021"
    assert sites[0].headless is False
    log_capture.assert_logged("headless must be true or false", level="WARNING")
    log_capture.assert_logged("check_min must be a number", level="WARNING")


@pytest.mark.unit
def test_numeric_goal_date_is_usable_by_heuristic(tmp_path):
    sites_file = tmp_path / "sites.json"
    sites_file.write_text(json.dumps({"sites": [
        {"id": "dated", "url": "https://dated.example", "goal_date": 20251021, "goal_keywords": ["open"]},
    ]}), encoding="utf-8")
    site = load_sites(load_settings(env(SITES_FILE=str(sites_file))))[0]

    result = HeuristicFilter().evaluate("tables open on 20251021", site.goal)

    assert result.hit is True
