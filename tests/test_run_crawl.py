import json
import logging

import pytest

import run_crawl
from discovery.crawler import CrawlReport
from discovery.records import SkippedEvent
from extensions.logging import LoggingExtension, visit_context


@pytest.mark.asyncio
async def test_invalid_config_is_fatal_before_browser_start(tmp_path, capsys, monkeypatch):
    async def no_browser(*a, **kw):
        raise AssertionError("browser must not start on a bad config")

    monkeypatch.setattr(run_crawl, "crawl", no_browser)
    bad = tmp_path / "run.json"
    bad.write_text(json.dumps({"seed_urls": ["https://a.com/"], "allowlist_domains": ["a.com"], "nope": 1}))

    code = await run_crawl.main_async(["--config", str(bad), "--log-file", str(tmp_path / "x.log")])

    assert code == 1
    out, err = capsys.readouterr()
    assert out == ""
    fatal = json.loads(err)
    assert fatal["fatal"].startswith("Invalid crawler config:")
    assert "nope" in fatal["fatal"]


@pytest.mark.asyncio
async def test_unusable_log_path_is_reported_as_fatal(tmp_path, capsys, monkeypatch):
    async def no_browser(*a, **kw):
        raise AssertionError("browser must not start when logging cannot be set up")

    monkeypatch.setattr(run_crawl, "crawl", no_browser)
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")

    code = await run_crawl.main_async([
        "--url", "https://example.com/v/1", "--log-file", str(blocker / "sub" / "x.log"),
    ])

    assert code == 1
    out, err = capsys.readouterr()
    assert out == ""
    fatal = json.loads(err)
    assert "blocker" in fatal["fatal"]


@pytest.mark.asyncio
async def test_successful_run_writes_discoveries_and_audit(tmp_path, capsys, monkeypatch):
    seen = {}

    async def fake_crawl(run_cfg, cfg):
        seen["run_cfg"] = run_cfg
        return CrawlReport(
            discoveries=[],
            events=[SkippedEvent("https://example.com/v/1", "outside_allowlist", ts="2024-01-01T00:00:00.000Z")],
            domain_failures={},
        )

    monkeypatch.setattr(run_crawl, "crawl", fake_crawl)
    log_file = tmp_path / "logs" / "run.log"

    code = await run_crawl.main_async([
        "--url", "https://example.com/v/1", "--require-hd", "--log-file", str(log_file),
    ])

    assert code == 0
    assert seen["run_cfg"].require_hd_playback_confirmation is True
    assert seen["run_cfg"].allowlist_domains == ["example.com"]

    out, err = capsys.readouterr()
    assert json.loads(out) == []
    audit = json.loads(err)
    assert audit["crawl_events"][0]["reason"] == "outside_allowlist"
    assert audit["domain_failures"] == {}
    assert "Run config" in log_file.read_text(encoding="utf-8")


def test_log_records_carry_visit_url(tmp_path):
    log_file = tmp_path / "visit.log"
    ext = LoggingExtension(log_file, level=logging.DEBUG)
    try:
        log = logging.getLogger("discovery.test")
        with visit_context("https://example.com/v/1"):
            log.info("inside")
        log.info("outside")
    finally:
        ext.close()

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert lines[0].endswith("<https://example.com/v/1> inside")
    assert lines[1].endswith("] outside")
