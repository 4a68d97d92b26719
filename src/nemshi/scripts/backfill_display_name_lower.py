"""Populate ``displayNameLower`` on user documents (used for name search).

Usage:
    python -m nemshi.scripts.backfill_display_name_lower [--batch 400]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass

from nemshi.config import get_settings
from nemshi.container import close_container, create_container
from nemshi.middleware.logging import setup_logging
from nemshi.store import DocumentStore
from nemshi.store import paths

logger = logging.getLogger(__name__)


@dataclass
class DisplayNameReport:
    processed: int = 0
    updated: int = 0
    skipped: int = 0


def normalize_display_name(value: object) -> str:
    return ("" if value is None else str(value)).strip().lower()


async def backfill_display_name_lower(store: DocumentStore, batch_size: int = 400) -> DisplayNameReport:
    """Page through users by id, writing one batch of updates per page."""
    report = DisplayNameReport()
    last_id: str | None = None
    while True:
        page = await store.list_collection(paths.USERS, order_by="id", limit=batch_size, start_after=last_id)
        if not page:
            break

        batch = store.batch()
        for doc in page:
            report.processed += 1
            data = doc.to_dict()
            display_name = data.get("displayName")
            normalized = normalize_display_name(display_name)
            existing = str(data.get("displayNameLower") or "")
            if not display_name or not normalized or existing == normalized:
                report.skipped += 1
                continue
            batch.update(doc.path, {"displayNameLower": normalized})
            report.updated += 1

        if len(batch):
            await batch.commit()

        last_id = page[-1].id
        logger.info(
            "Page processed: processed=%d updated=%d skipped=%d",
            report.processed,
            report.updated,
            report.skipped,
        )
        if len(page) < batch_size:
            break

    return report


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backfill displayNameLower on user documents.")
    parser.add_argument(
        "--batch", type=int, default=get_settings().backfill_display_name_batch_size, help="Users per page"
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    setup_logging(settings)
    container = await create_container(settings)
    try:
        logger.info("Starting displayNameLower backfill...")
        report = await backfill_display_name_lower(container.store, args.batch)
    finally:
        await close_container(container, settings)
    logger.info(
        "Backfill finished: processed=%d updated=%d skipped=%d",
        report.processed,
        report.updated,
        report.skipped,
    )
    return 0


def main(argv: list[str] | None = None) -> None:
    sys.exit(asyncio.run(run(parse_args(argv))))


if __name__ == "__main__":
    main()
