#!/usr/bin/env python3
"""
Run a watch-history import inline, without the API or a queue worker.

The pipeline runs on a background thread and reports to a progress channel
that this script prints from. Ctrl+C cancels the import at its next
suspension point and prints the partial result.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from backend.catalog_api.db import create_engine_from_settings, init_database  # noqa: E402
from backend.catalog_api.services.tasks import build_provider_client, import_options  # noqa: E402
from backend.catalog_api.settings import CatalogSettings  # noqa: E402
from backend.catalog_api.stores.series_store import SeriesStore  # noqa: E402
from backend.importer import ImportCancelled, ImportPipeline, ImportResult  # noqa: E402
from backend.importer.grouping import default_normalizer  # noqa: E402
from backend.importer.jobs import LocalJobHandle  # noqa: E402
from backend.importer.progress import ProgressChannel, ProgressEvent  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mediadex watch-history importer.")
    parser.add_argument("export", type=Path, help="Path to the XML watch-history export")
    parser.add_argument("--user", required=True, help="User the watch-marks are recorded for")
    parser.add_argument("--database-url", type=str, default=None, help="Override the catalog database URL")
    parser.add_argument("--batch-size", type=int, default=None, help="Series per batch")
    parser.add_argument("--cooldown", type=int, default=None, help="Seconds to pause between batches")
    parser.add_argument(
        "--override",
        action="append",
        default=[],
        metavar="TITLE=SERIES",
        help="Group an export title under a series title (repeatable)",
    )
    return parser.parse_args()


def describe(event: ProgressEvent) -> str:
    if event.phase == "batch":
        return f"Batch {event.current_batch}/{event.total_batches}"
    if event.phase == "item":
        return f"  [{event.current_index}/{event.total}] {event.current_item_label}"
    if event.phase == "pause":
        return f"  pausing... {event.remaining_pause_seconds}s"
    return f"Done: {event.imported} imported, {event.updated} updated, {event.errors} errors"


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    overrides: dict[str, str] = {}
    for value in args.override:
        title, _, series = value.partition("=")
        if not title or not series:
            print(f"Invalid override {value!r}, expected TITLE=SERIES", file=sys.stderr)
            return 2
        overrides[title.strip()] = series.strip()

    updates: dict[str, object] = {}
    if args.database_url:
        updates["database_url"] = args.database_url
    if args.batch_size is not None:
        updates["import_batch_size"] = args.batch_size
    if args.cooldown is not None:
        updates["import_cooldown_seconds"] = args.cooldown
    settings = CatalogSettings(**updates)

    document = args.export.read_text(encoding="utf-8")
    engine = create_engine_from_settings(settings)
    init_database(engine)

    handle = LocalJobHandle()
    channel = ProgressChannel()
    outcome: dict[str, object] = {}

    def run() -> None:
        try:
            with build_provider_client(settings) as providers:
                pipeline = ImportPipeline(
                    SeriesStore(engine),
                    providers,
                    sink=channel,
                    handle=handle,
                    options=import_options(settings),
                    normalizer=default_normalizer(overrides),
                )
                outcome["result"] = pipeline.run(document, user_id=args.user)
        except ImportCancelled as exc:
            outcome["result"] = exc.result
            outcome["cancelled"] = True
        except Exception as exc:  # reported by the main thread
            outcome["error"] = exc
        finally:
            channel.close()

    worker = threading.Thread(target=run, name="mediadex-import", daemon=True)
    worker.start()
    try:
        for event in channel:
            print(describe(event))
        worker.join()
    except KeyboardInterrupt:
        print("Cancelling import...", file=sys.stderr)
        handle.cancel()
        worker.join()
    finally:
        engine.dispose()

    if "error" in outcome:
        print(f"Import failed: {outcome['error']}", file=sys.stderr)
        return 1
    result = outcome.get("result")
    if isinstance(result, ImportResult):
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 130 if outcome.get("cancelled") else 0


if __name__ == "__main__":
    sys.exit(main())
