from __future__ import annotations

import pytest

from app.clients.firecrawl import FirecrawlClient, PageFetchError
from app.config import Settings
from app.services.events.errors import IngestionConfigError
from pipelines.page_client import (
    FixtureNotFoundError,
    FixturePageFetcher,
    RuntimeMode,
    fixture_slug,
    get_page_fetcher,
    get_runtime_config,
)


@pytest.mark.parametrize(
    ("target", "slug"),
    [
        ("https://www.bloomberg.com/topics/layoffs", "bloomberg-com-topics-layoffs"),
        ("https://techcrunch.com/tag/layoffs/", "techcrunch-com-tag-layoffs"),
        ("https://www.theverge.com/tech", "theverge-com-tech"),
    ],
)
def test_fixture_slug(target, slug):
    assert fixture_slug(target) == slug


def test_fixture_fetcher_reads_snapshot(tmp_path):
    (tmp_path / "theverge-com-tech.md").write_text("# Tech news\n", encoding="utf-8")

    fetcher = FixturePageFetcher(tmp_path)

    assert fetcher.fetch("https://www.theverge.com/tech") == "# Tech news\n"


def test_fixture_fetcher_missing_snapshot(tmp_path):
    with pytest.raises(FixtureNotFoundError) as excinfo:
        FixturePageFetcher(tmp_path).fetch("https://unknown.example.com/page")

    assert excinfo.value.code == "E_FIXTURE_NOT_FOUND"


def test_fixture_fetcher_empty_snapshot(tmp_path):
    (tmp_path / "blank-example-com.md").write_text("\n", encoding="utf-8")

    with pytest.raises(PageFetchError) as excinfo:
        FixturePageFetcher(tmp_path).fetch("https://blank.example.com")

    assert excinfo.value.code == "FETCH_EMPTY"


def test_fixture_fetcher_undecodable_snapshot(tmp_path):
    (tmp_path / "garbled-example-com.md").write_bytes(b"\xff\xfe\xfa broken")

    with pytest.raises(PageFetchError) as excinfo:
        FixturePageFetcher(tmp_path).fetch("https://garbled.example.com")

    assert excinfo.value.code == "FETCH_UNREADABLE"


def test_fixture_fetcher_snapshot_path_is_directory(tmp_path):
    (tmp_path / "folder-example-com.md").mkdir()

    with pytest.raises(PageFetchError) as excinfo:
        FixturePageFetcher(tmp_path).fetch("https://folder.example.com")

    assert excinfo.value.code == "FETCH_UNREADABLE"


def test_runtime_config_defaults_to_fixture(tmp_path):
    runtime = get_runtime_config(Settings(workforce_signal_mode="Fixture", fixture_dir=str(tmp_path)))

    assert runtime.mode is RuntimeMode.FIXTURE
    assert runtime.fixture_dir == tmp_path


def test_runtime_config_rejects_unknown_mode():
    with pytest.raises(IngestionConfigError) as excinfo:
        get_runtime_config(Settings(workforce_signal_mode="replay"))

    assert excinfo.value.code == "E_MODE_UNSUPPORTED"


def test_online_mode_requires_firecrawl_key():
    with pytest.raises(IngestionConfigError):
        get_page_fetcher(config=Settings(workforce_signal_mode="online", firecrawl_api_key=None))


def test_online_mode_builds_firecrawl_client():
    fetcher = get_page_fetcher(config=Settings(workforce_signal_mode="online", firecrawl_api_key="fc-key"))

    assert isinstance(fetcher, FirecrawlClient)
    fetcher.close()
