#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json

from ecms.db.session import close_engine, get_session_factory
from ecms.logging_config import configure_logging, parse_redact_fields
from ecms.services.media.migration import migrate_avatar_blobs
from ecms.services.media.runtime import SUPPORTED_BACKENDS, build_blob_store
from ecms.settings import settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Copy referenced avatars from one blob backend to another and repoint profiles.",
    )
    parser.add_argument("--source", choices=SUPPORTED_BACKENDS, required=True)
    parser.add_argument("--target", choices=SUPPORTED_BACKENDS, required=True)
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report which avatars would be copied.",
    )
    parser.add_argument(
        "--delete-source",
        action="store_true",
        help="Delete each source blob once its profile is repointed.",
    )
    return parser


async def _run(args: argparse.Namespace) -> dict:
    session_factory = get_session_factory()
    source = build_blob_store(settings, session_factory, backend=args.source)
    target = build_blob_store(settings, session_factory, backend=args.target)
    try:
        report = await migrate_avatar_blobs(
            source,
            target,
            session_factory,
            dry_run=args.dry_run,
            delete_source=args.delete_source,
        )
        return report.as_dict()
    finally:
        await source.close()
        await target.close()
        await close_engine()


def main() -> int:
    args = build_parser().parse_args()
    if args.source == args.target:
        print(json.dumps({"status": "failed", "error": "source and target must differ"}, indent=2))
        return 1

    configure_logging(
        level=settings.log_level,
        log_format="json",
        redact_fields=parse_redact_fields(settings.log_redact_fields),
        include_uvicorn_access=False,
    )
    try:
        report = asyncio.run(_run(args))
    except Exception as exc:
        print(json.dumps({"status": "failed", "error": str(exc)}, indent=2))
        return 1

    print(json.dumps(report, indent=2))
    return 1 if report["failed_user_ids"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
