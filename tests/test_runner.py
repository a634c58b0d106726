"""End-to-end run orchestration tests with an in-memory page source"""

import json
from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from conftest import NOW, FakePageSource, FakeDocument, RecordingSleep, detail_document, listing_row, page_url
from estatespider.common.config import Config, RedisConfig, StorageConfig
from estatespider.common.exceptions import BrowserUnavailableError, NavigationError
from estatespider.common.types import EnrichedRecord, RunMode, StopReason
from estatespider.pipeline.runner import run_harvest, sort_newest_first


def detail_url(slug):
    return f"https://listings.example.com/listing/{slug}"


def make_config(tmp_path):
    return Config(storage=StorageConfig(output_dir=str(tmp_path), s3_bucket=None), redis=RedisConfig(enabled=False))


def standard_source(*page_one_rows):
    source = FakePageSource()
    source.add(page_url(1), FakeDocument(page_url(1), rows=list(page_one_rows)))
    source.add(page_url(2), FakeDocument(page_url(2), rows=[]))
    for row in page_one_rows:
        if row["url"]:
            url = "https://listings.example.com" + row["url"]
            source.add(url, detail_document(url, f"about {row['title']}"))
    return source


async def harvest(settings, tmp_path, source):
    return await run_harvest(
        settings, make_config(tmp_path), source=source, clock=lambda: NOW, sleep=RecordingSleep()
    )


class TestRunHarvest:
    """Checkpoint, sink and dedup wiring"""

    @pytest.mark.asyncio
    async def test_first_run_writes_results_and_checkpoint(self, update_settings, tmp_path):
        source = standard_source(
            listing_row("older", listed="2 days ago"),
            listing_row("newer", listed="5 hours ago"),
            listing_row("tiny", area="800 sq ft"),
        )

        report = await harvest(update_settings, tmp_path, source)

        assert report.stop_reason is StopReason.END_OF_RESULTS
        assert report.records_emitted == 2
        assert report.checkpoint_updated
        # no checkpoint yet: two-month lookback
        assert report.threshold == datetime(2024, 4, 15, 12, 0, tzinfo=timezone.utc)

        frame = pd.read_csv(tmp_path / "results.csv", dtype=str, keep_default_na=False)
        assert frame["url"].tolist() == [detail_url("newer"), detail_url("older")]
        assert frame["description"].tolist() == ["about Plot newer", "about Plot older"]

        checkpoint = json.loads((tmp_path / "lastRun.json").read_text(encoding="utf-8"))
        assert checkpoint == {"lastRun": "2024-06-15T12:00:00.000Z"}

    @pytest.mark.asyncio
    async def test_second_run_uses_checkpoint_and_prior_results(self, update_settings, tmp_path):
        await harvest(update_settings, tmp_path, standard_source(listing_row("a", listed="1 day ago")))
        (tmp_path / "lastRun.json").write_text(
            json.dumps({"lastRun": (NOW - timedelta(days=3)).isoformat()}), encoding="utf-8"
        )

        source = standard_source(
            listing_row("a", listed="1 day ago"),
            listing_row("b", listed="2 hours ago"),
            listing_row("stale", listed="10 days ago"),
        )
        report = await harvest(update_settings, tmp_path, source)

        assert report.threshold == NOW - timedelta(days=3)
        assert report.records_emitted == 1
        assert detail_url("a") not in source.calls
        assert detail_url("stale") not in source.calls
        frame = pd.read_csv(tmp_path / "results.csv", dtype=str, keep_default_na=False)
        assert frame["url"].tolist() == [detail_url("a"), detail_url("b")]

    @pytest.mark.asyncio
    async def test_browser_failure_leaves_checkpoint_untouched(self, update_settings, tmp_path):
        checkpoint_path = tmp_path / "lastRun.json"
        checkpoint_path.write_text('{"lastRun": "2024-06-10T00:00:00.000Z"}', encoding="utf-8")
        source = FakePageSource({page_url(1): BrowserUnavailableError("browser crashed")})

        with pytest.raises(BrowserUnavailableError):
            await harvest(update_settings, tmp_path, source)

        assert checkpoint_path.read_text(encoding="utf-8") == '{"lastRun": "2024-06-10T00:00:00.000Z"}'
        assert not (tmp_path / "results.csv").exists()

    @pytest.mark.asyncio
    async def test_page_failure_still_persists_and_advances(self, update_settings, tmp_path):
        source = FakePageSource()
        source.add(page_url(1), FakeDocument(page_url(1), rows=[listing_row("a")]))
        source.add(page_url(2), NavigationError(page_url(2), status=503))
        source.add(detail_url("a"), detail_document(detail_url("a")))

        report = await harvest(update_settings, tmp_path, source)

        assert report.stop_reason is StopReason.PAGE_LOAD_FAILURE
        assert report.checkpoint_updated
        frame = pd.read_csv(tmp_path / "results.csv", dtype=str, keep_default_na=False)
        assert frame["url"].tolist() == [detail_url("a")]

    @pytest.mark.asyncio
    async def test_empty_run_still_advances_checkpoint(self, initial_settings, tmp_path):
        source = FakePageSource({page_url(1): FakeDocument(page_url(1), rows=[])})

        report = await harvest(initial_settings, tmp_path, source)

        assert report.records_emitted == 0
        assert report.checkpoint_updated
        assert (tmp_path / "lastRun.json").exists()
        assert report.mode is RunMode.INITIAL


class TestSortNewestFirst:
    """Final ordering"""

    def test_stable_and_undated_last(self):
        t = NOW - timedelta(days=1)
        records = [
            EnrichedRecord(title="undated"),
            EnrichedRecord(title="first", listed_at=t),
            EnrichedRecord(title="newest", listed_at=NOW),
            EnrichedRecord(title="second", listed_at=t),
        ]
        assert [r.title for r in sort_newest_first(records)] == ["newest", "first", "second", "undated"]
