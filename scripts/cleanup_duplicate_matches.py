"""Collapse match records that describe the same pair of users.

Rows imported before pairs were stored in canonical order may exist twice
(once per direction) or with ``user_a_id > user_b_id``.  For every
unordered pair this keeps the most advanced record, deletes the rest and
rewrites the survivor in canonical order.

Usage: python -m scripts.cleanup_duplicate_matches [--dry-run]
"""
import argparse
import asyncio
import sys
sys.path.insert(0, ".")

from collections import defaultdict

from sqlalchemy import select
from devtinder.database import async_session_factory
from devtinder.models.match import Match, MatchStatus
from devtinder.services.pairing import canonical_pair


# Higher wins when two records describe the same pair
STATUS_PRIORITY = {
    MatchStatus.BLOCKED: 5,
    MatchStatus.MATCHED: 4,
    MatchStatus.ARCHIVED: 3,
    MatchStatus.PENDING: 2,
    MatchStatus.REJECTED: 1,
}


def pick_survivor(records: list[Match]) -> Match:
    """Most advanced status first, then the oldest record."""
    return min(
        records,
        key=lambda r: (-STATUS_PRIORITY[r.status], r.created_at, str(r.id)),
    )


def canonicalise(record: Match) -> bool:
    """Rewrite ``record`` in canonical order; return whether it changed."""
    first, second = canonical_pair(record.user_a_id, record.user_b_id)
    if record.user_a_id == first:
        return False
    record.user_a_id, record.user_b_id = first, second
    record.unread_count_a, record.unread_count_b = (
        record.unread_count_b,
        record.unread_count_a,
    )
    record.bookmarked_by_a, record.bookmarked_by_b = (
        record.bookmarked_by_b,
        record.bookmarked_by_a,
    )
    return True


async def cleanup(dry_run: bool) -> None:
    async with async_session_factory() as session:
        result = await session.execute(select(Match))
        groups: dict[tuple, list[Match]] = defaultdict(list)
        for record in result.scalars():
            groups[canonical_pair(record.user_a_id, record.user_b_id)].append(record)

        deleted = 0
        rewritten = 0
        for pair, records in groups.items():
            survivor = pick_survivor(records)
            for record in records:
                if record is not survivor:
                    print(f"  Removing {record.id} ({record.status.value}) for {pair[0]} <-> {pair[1]}")
                    await session.delete(record)
                    deleted += 1
            # Duplicates must be gone before the survivor takes the canonical slot.
            await session.flush()
            if canonicalise(survivor):
                print(f"  Canonicalising {survivor.id}")
                rewritten += 1

        if dry_run:
            await session.rollback()
            print(f"Dry run: would delete {deleted} and rewrite {rewritten} records.")
        else:
            await session.commit()
            print(f"Deleted {deleted} and rewrote {rewritten} records.")


def main():
    parser = argparse.ArgumentParser(description="Collapse duplicate match records")
    parser.add_argument("--dry-run", action="store_true", help="Report without writing")
    args = parser.parse_args()
    asyncio.run(cleanup(args.dry_run))


if __name__ == "__main__":
    main()
