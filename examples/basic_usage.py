#!/usr/bin/env python3
"""
Basic CCManager usage example.

Lists your repositories, opens a session on the first cloned one, asks the
assistant for a change and prints the resulting working-copy diff.

Requires CCMANAGER_GITHUB_TOKEN and ANTHROPIC_API_KEY in the environment.
Run with: python examples/basic_usage.py
"""

import asyncio
import logging

from ccmanager import AppContext, CCManagerError, configure_logging
from ccmanager.types import UsageMetric, TimeRange


async def main() -> None:
    configure_logging(level=logging.INFO)
    ctx = AppContext.from_env()

    try:
        print("1. Fetching repositories...")
        await ctx.connect()
        if ctx.catalog.error:
            print(f"   Fetch failed: {ctx.catalog.error}")
        for repository in ctx.catalog.repositories[:10]:
            print(f"   {repository.id:>10}  {repository.full_name}  {repository.local_path or ''}")

        cloned = [r for r in ctx.catalog.repositories if r.local_path]
        if not cloned:
            print("\n   No cloned repository; run `ccmanager clone REPO_ID` first.")
            return
        repository = cloned[0]

        print(f"\n2. Asking the assistant about {repository.full_name}...")
        ctx.coordinator.start_session(repository)
        async with ctx.coordinator.stream_command("Summarize what this project does.") as stream:
            async for fragment in stream:
                print(fragment, end="", flush=True)
        print(f"\n   Stream {stream.status.value}")

        print("\n3. Working-copy changes:")
        try:
            for change in await ctx.coordinator.refresh_changes(repository):
                print(f"   {change.change_type.value:<9} {change.file_path}")
        except CCManagerError as e:
            print(f"   {e}")
        ctx.coordinator.end_current_session()

        tokens = ctx.ledger.total(TimeRange.DAY, UsageMetric.TOKENS)
        cost = ctx.ledger.total(TimeRange.DAY, UsageMetric.COST)
        print(f"\n4. Usage in the last 24h: {int(tokens)} tokens, ${cost:.4f}")
    finally:
        ctx.save()
        await ctx.aclose()


if __name__ == "__main__":
    asyncio.run(main())
