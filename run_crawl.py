from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from components.adapters.registry import default_registry
from discovery.browser import init_browser, shutdown_browser
from discovery.config import Config, load_config
from discovery.crawler import CrawlReport, DiscoveryCrawler
from discovery.run_config import RunConfig, load_run_config
from extensions.logging import LoggingExtension

logger = logging.getLogger("run_crawl")


# ----------------------------
# CLI parsing
# ----------------------------

def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Seed → admit → visit (wait, play, extract) → content/HD policy → discoveries + audit log"
    )
    p.add_argument("--config", type=str, default=None, help="Run config JSON file, or '-' to read it from stdin")
    p.add_argument("--url", type=str, default=None, help="Crawl this single URL (replaces seed_urls; allowlists its host if none given)")
    p.add_argument("--require-hd", action="store_true", help="Only accept pages with confirmed HD playback")

    # Logging
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log file level")
    p.add_argument("--log-file", type=Path, default=None, help="Log file path (default: LOG_FILE env or logs/crawler.log)")
    p.add_argument("--console-log", action="store_true", help="Also log to stderr (mixes with the JSON audit output)")
    return p.parse_args(argv)


# ----------------------------
# Run
# ----------------------------

async def crawl(run_cfg: RunConfig, cfg: Config) -> CrawlReport:
    pw, browser, context = await init_browser(cfg, navigation_timeout_ms=run_cfg.navigation_timeout_ms)
    try:
        crawler = DiscoveryCrawler(run_cfg, default_registry())
        return await crawler.run(context, cfg)
    finally:
        await shutdown_browser(pw, browser, context)


def _emit(report: CrawlReport) -> None:
    sys.stdout.write(report.discoveries_json() + "\n")
    sys.stdout.flush()
    sys.stderr.write(report.audit_json() + "\n")
    sys.stderr.flush()


def _emit_fatal(error: BaseException) -> None:
    sys.stderr.write(json.dumps({"fatal": str(error)}, indent=2) + "\n")
    sys.stderr.flush()


async def main_async(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    log_ext: Optional[LoggingExtension] = None
    try:
        cfg = load_config()
        level = getattr(logging, args.log_level)
        log_ext = LoggingExtension(args.log_file or cfg.log_file, level=level, console=args.console_log)

        # config errors are fatal before any network activity
        run_cfg = load_run_config(args.config, inline_url=args.url, require_hd=args.require_hd)
        logger.info(
            "Run config: seeds=%d roots=%d allowlist=%s concurrency=%d policy=%s require_hd=%s",
            len(run_cfg.seed_urls), len(run_cfg.discovery_roots), run_cfg.allowlist_domains,
            run_cfg.max_concurrency, run_cfg.resource_domain_policy,
            run_cfg.require_hd_playback_confirmation,
        )
        report = await crawl(run_cfg, cfg)
    except Exception as e:
        # stderr carries only the fatal JSON when logging never came up
        if log_ext is not None:
            logger.exception("Fatal error")
        _emit_fatal(e)
        return 1
    finally:
        if log_ext is not None:
            log_ext.close()

    _emit(report)
    return 0


# ----------------------------
# Entrypoint
# ----------------------------

def main() -> None:
    sys.exit(asyncio.run(main_async()))

if __name__ == "__main__":
    main()
