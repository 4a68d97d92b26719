"""Rebuild every friend profile and walk summary from the source documents.

Usage:
    python -m nemshi.scripts.backfill_friend_profiles
    python -m nemshi.scripts.backfill_friend_profiles --users-batch 500 --walks-batch 200
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field

from nemshi.config import get_settings
from nemshi.container import close_container, create_container
from nemshi.middleware.logging import setup_logging
from nemshi.social.friend_profiles import FriendProfileSync, collect_shareable_user_roles
from nemshi.store import DocumentStore, StoreError
from nemshi.store import paths
from nemshi.walks.schemas import WalkDocument

logger = logging.getLogger(__name__)


@dataclass
class BackfillReport:
    profiles: int = 0
    walks: int = 0
    users_touched: set[str] = field(default_factory=set)
    failures: int = 0


async def backfill_profile_docs(
    store: DocumentStore, profiles: FriendProfileSync, batch_size: int, report: BackfillReport
) -> None:
    logger.info("Backfilling top-level friend profiles...")
    last_id: str | None = None
    while True:
        page = await store.list_collection(paths.USERS, order_by="id", limit=batch_size, start_after=last_id)
        if not page:
            break

        results = await asyncio.gather(*(profiles.refresh_profile(doc.id) for doc in page))
        for doc, outcome in zip(page, results):
            if not outcome.ok:
                report.failures += 1
                logger.error("Failed to sync friend profile for %s", doc.id)

        report.profiles += len(page)
        logger.info("Profiles processed: %d", report.profiles)
        last_id = page[-1].id
        if len(page) < batch_size:
            break


async def backfill_walk_summaries(
    store: DocumentStore, profiles: FriendProfileSync, batch_size: int, report: BackfillReport
) -> None:
    logger.info("Backfilling walk summary snapshots...")
    last_id: str | None = None
    while True:
        page = await store.list_collection(paths.WALKS, order_by="id", limit=batch_size, start_after=last_id)
        if not page:
            break

        for doc in page:
            walk = WalkDocument.model_validate(doc.to_dict())
            roles = collect_shareable_user_roles(walk)
            if not roles:
                continue

            report.users_touched.update(roles)
            try:
                await asyncio.gather(
                    *(profiles.upsert_walk_summary(uid, doc.id, walk, role) for uid, role in roles.items())
                )
            except StoreError:
                report.failures += 1
                logger.exception("Failed to upsert walk summary %s", doc.id)

            report.walks += 1
            if report.walks % 50 == 0:
                logger.info("Walks processed: %d", report.walks)

        last_id = page[-1].id
        if len(page) < batch_size:
            break

    logger.info("Walk summaries processed for %d users", len(report.users_touched))


async def prune_summaries(profiles: FriendProfileSync, report: BackfillReport) -> None:
    if not report.users_touched:
        return

    logger.info("Enforcing walk summary limits...")

    async def prune(uid: str) -> None:
        try:
            await profiles.enforce_walk_summary_limit(uid)
        except StoreError:
            report.failures += 1
            logger.exception("Failed to prune summaries for %s", uid)

    await asyncio.gather(*(prune(uid) for uid in sorted(report.users_touched)))


async def backfill_friend_profiles(
    store: DocumentStore,
    profiles: FriendProfileSync,
    users_batch: int = 200,
    walks_batch: int = 100,
) -> BackfillReport:
    report = BackfillReport()
    await backfill_profile_docs(store, profiles, users_batch, report)
    await backfill_walk_summaries(store, profiles, walks_batch, report)
    await prune_summaries(profiles, report)
    return report


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Rebuild friend profiles and walk summaries.")
    parser.add_argument(
        "--users-batch", type=int, default=settings.backfill_users_batch_size, help="Users per page"
    )
    parser.add_argument(
        "--walks-batch", type=int, default=settings.backfill_walks_batch_size, help="Walks per page"
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    setup_logging(settings)
    container = await create_container(settings)
    try:
        logger.info("Starting friend profile backfill...")
        report = await backfill_friend_profiles(
            container.store, container.profiles, args.users_batch, args.walks_batch
        )
    finally:
        await close_container(container, settings)

    logger.info(
        "Friend profile backfill complete: profiles=%d walks=%d users=%d failures=%d",
        report.profiles,
        report.walks,
        len(report.users_touched),
        report.failures,
    )
    return 1 if report.failures else 0


def main(argv: list[str] | None = None) -> None:
    sys.exit(asyncio.run(run(parse_args(argv))))


if __name__ == "__main__":
    main()
