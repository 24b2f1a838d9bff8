"""Orphaned group sweep

Removes groups left with zero members by a failed CreateGroup once they are
older than the grace period.

Usage:
    python -m commonground.sweep
    python -m commonground.sweep --grace-minutes 30
"""

import asyncio
from datetime import timedelta
from typing import List, Optional

import click

from commonground.groups import GroupManager
from config import config, get_logger
from database.db import Database

logger = get_logger(__name__).bind(component="orphan_sweep")


async def run_sweep(grace_minutes: int, db: Optional[Database] = None) -> List[str]:
    """Run one sweep; opens (and closes) the configured store unless db is given"""
    owns_db = db is None
    if db is None:
        db = await Database.from_config()
    try:
        manager = GroupManager(db)
        return await manager.sweep_orphaned_groups(timedelta(minutes=grace_minutes))
    finally:
        if owns_db:
            await db.close()


@click.command()
@click.option(
    "--grace-minutes",
    type=click.IntRange(min=0),
    default=config.ORPHAN_GRACE_MINUTES,
    show_default=True,
    help="Only remove groups created at least this many minutes ago",
)
def main(grace_minutes: int):
    """Delete groups that have no members"""
    removed = asyncio.run(run_sweep(grace_minutes))
    click.echo(f"Removed {len(removed)} orphaned group(s)")
    for group_id in removed:
        click.echo(f"  {group_id}")


if __name__ == "__main__":
    main()
