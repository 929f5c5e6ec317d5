"""CLI entrypoint to run one cleanup sweep."""

from __future__ import annotations

from dataclasses import asdict
import argparse
from datetime import datetime
import json
from typing import Optional

from src.core.config import get_settings
from src.orchestrator.cleanup import CleanupRunResult, CleanupScheduler
from src.orchestrator.locks import SweepLockManager
from src.storage.db import get_session_factory, init_db
from src.storage.redis_client import get_client as get_redis_client


def build_cleanup_scheduler() -> CleanupScheduler:
    settings = get_settings()
    return CleanupScheduler(
        session_factory=get_session_factory(),
        lock_manager=SweepLockManager(get_redis_client(), ttl_seconds=settings.cleanup_lock_ttl_seconds),
    )


def run_cleanup_once(*, now: Optional[datetime] = None) -> CleanupRunResult:
    if get_settings().auto_create_schema:
        init_db()
    return build_cleanup_scheduler().run_once(now)


def main() -> None:
    parser = argparse.ArgumentParser(description="Expire ChefSocial workflows past their TTL once.")
    parser.add_argument("--now", type=datetime.fromisoformat, default=None, help="ISO timestamp to sweep against.")
    args = parser.parse_args()

    result = run_cleanup_once(now=args.now)
    print(json.dumps(asdict(result), ensure_ascii=True, separators=(",", ":"), sort_keys=True))


if __name__ == "__main__":
    main()
