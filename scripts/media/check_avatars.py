#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json

from ecms.db.session import close_engine, get_session_factory
from ecms.services.media.integrity import collect_avatar_integrity_report
from ecms.services.media.runtime import SUPPORTED_BACKENDS, build_blob_store
from ecms.settings import settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Check avatar pointers against the blob store.")
    parser.add_argument(
        "--backend",
        choices=SUPPORTED_BACKENDS,
        default=None,
        help="Blob store to check (defaults to MEDIA_STORAGE_BACKEND).",
    )
    parser.add_argument(
        "--strict-warnings",
        action="store_true",
        help="Return non-zero exit code if orphaned blobs are present.",
    )
    return parser


async def _run(backend: str | None) -> dict:
    session_factory = get_session_factory()
    blob_store = build_blob_store(settings, session_factory, backend=backend)
    try:
        return await collect_avatar_integrity_report(blob_store, session_factory)
    finally:
        await blob_store.close()
        await close_engine()


def _exit_code(report: dict, *, strict_warnings: bool) -> int:
    if report.get("status") == "failed":
        return 1
    if strict_warnings and report.get("warnings"):
        return 2
    return 0


def main() -> int:
    args = build_parser().parse_args()

    try:
        report = asyncio.run(_run(args.backend))
    except Exception as exc:
        print(json.dumps({"status": "failed", "error": str(exc)}, indent=2))
        return 1

    print(json.dumps(report, indent=2))
    return _exit_code(report, strict_warnings=args.strict_warnings)


if __name__ == "__main__":
    raise SystemExit(main())
