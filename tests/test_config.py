import pytest

from profileharvest.core.config.loader import (
    ConfigError,
    build_run_config,
    load_app_config,
    load_run_config,
)
from profileharvest.core.config.models import AppConfig, EnrichmentConfig


def test_run_config_defaults():
    config = build_run_config(search_keywords="cardiology")

    assert config.max_items == 50
    assert config.department == ""
    assert config.to_query().keyword == "cardiology"


@pytest.mark.parametrize("max_items", [0, -1, 501])
def test_max_items_out_of_range(max_items):
    with pytest.raises(ConfigError, match="max_items"):
        build_run_config(search_keywords="x", max_items=max_items)


@pytest.mark.parametrize("max_items", [1, 500])
def test_max_items_bounds_accepted(max_items):
    assert build_run_config(max_items=max_items).max_items == max_items


def test_none_filters_become_empty():
    config = build_run_config(search_keywords=None, department=None, institution="HMS")

    assert config.to_query().to_dict() == {
        "search_keywords": "",
        "department": "",
        "institution": "HMS",
    }


def test_load_run_config_from_file(tmp_path):
    path = tmp_path / "input.yaml"
    path.write_text("search_keywords: oncology\ndepartment: Medicine\nmax_items: 20\n")

    config = load_run_config(path)

    assert config.search_keywords == "oncology"
    assert config.department == "Medicine"
    assert config.max_items == 20


def test_load_run_config_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_run_config(tmp_path / "missing.yaml")


def test_load_run_config_invalid_yaml(tmp_path):
    path = tmp_path / "input.yaml"
    path.write_text("search_keywords: [unclosed\n")

    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_run_config(path)


def test_app_config_missing_file_uses_defaults(tmp_path):
    config = load_app_config(tmp_path / "app.yaml")

    assert config == AppConfig()
    assert config.progress.checkpoint_interval == 50
    assert config.enrichment.max_item_retries == 3


def test_app_config_env_expansion(tmp_path, monkeypatch):
    monkeypatch.setenv("HARVEST_DB", "sqlite:///tmp/test.db")
    monkeypatch.delenv("HARVEST_LEVEL", raising=False)
    path = tmp_path / "app.yaml"
    path.write_text(
        "database:\n"
        "  url: ${HARVEST_DB}\n"
        "logging:\n"
        "  level: ${HARVEST_LEVEL:-DEBUG}\n"
        "progress:\n"
        "  checkpoint_interval: 10\n"
    )

    config = load_app_config(path)

    assert config.database.url == "sqlite:///tmp/test.db"
    assert config.logging.level == "DEBUG"
    assert config.progress.checkpoint_interval == 10


def test_app_config_invalid_values(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("enrichment:\n  concurrency: 50\n")

    with pytest.raises(ConfigError, match="Invalid app configuration") as excinfo:
        load_app_config(path)

    assert "concurrency" in str(excinfo.value)


def test_max_delay_must_not_be_below_min_delay():
    with pytest.raises(ValueError, match="max_delay_ms"):
        EnrichmentConfig(min_delay_ms=500, max_delay_ms=100)


def test_search_urls_derive_from_base_url():
    config = AppConfig.model_validate({"search": {"base_url": "https://example.org/profiles/"}})

    assert config.search.search_url == (
        "https://example.org/profiles/Search/SearchSvc.aspx?SearchType=person"
    )
    assert config.search.profile_base_url == "https://example.org/profiles/display/Person"
