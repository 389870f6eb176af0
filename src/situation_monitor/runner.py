# -*- coding: utf-8 -*-
"""Situation Monitor runner: refresh datasets from the command line."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Load .env early so Settings defaults see it.
_env_file = os.getenv("DOTENV_FILE")
if _env_file:
    load_dotenv(_env_file)
else:
    load_dotenv()

from situation_monitor import news  # noqa: E402
from situation_monitor.config import get_settings  # noqa: E402
from situation_monitor.dashboard import Dashboard  # noqa: E402
from situation_monitor.logging_utils import get_logger, setup_logging  # noqa: E402
from situation_monitor.models import AggregationResult  # noqa: E402

log = get_logger("runner")

ALL_NEWS = "all-news"


def _jsonable(obj: Any) -> Any:
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    return str(obj)


def result_to_dict(result: AggregationResult) -> Dict[str, Any]:
    return {
        "key": result.key,
        "provenance": result.provenance.value,
        "count": len(result.items),
        "errors": result.errors,
        "fetched_at": result.fetched_at,
        "items": result.items,
    }


async def _run(datasets: List[str], force: bool) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    async with Dashboard(get_settings()) as dash:
        for key in datasets:
            if key == ALL_NEWS:
                results = await dash.fetch_all_news(force=force)
                for category, res in results.items():
                    out[news.dataset_key(category)] = result_to_dict(res)
            else:
                out[key] = result_to_dict(await dash.fetch_dataset(key, force=force))
    return out


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Refresh dashboard datasets")
    ap.add_argument(
        "--dataset",
        action="append",
        default=None,
        help=(
            "Dataset key to refresh (polymarket_predictions, news_<category> or "
            f"{ALL_NEWS}); may be repeated"
        ),
    )
    ap.add_argument("--force", action="store_true", help="Bypass fresh cache entries")
    ap.add_argument("--log-level", default="INFO", help="Root log level")
    ap.add_argument("--output", default=None, help="Write JSON here instead of stdout")
    args = ap.parse_args(argv)

    setup_logging(args.log_level)
    datasets = args.dataset or ["polymarket_predictions"]
    try:
        payload = asyncio.run(_run(datasets, args.force))
    except (KeyError, ValueError) as e:
        log.error("runner_bad_dataset err=%s", e)
        sys.stderr.write(f"unknown dataset: {e}\n")
        return 2

    text = json.dumps(payload, default=_jsonable, indent=2, ensure_ascii=False)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as fh:
            fh.write(text)
    else:
        sys.stdout.write(text + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
