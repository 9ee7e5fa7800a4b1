"""
Create the schema and seed the default languages for the configured backend.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from admin_backend.dependencies import get_backend
from admin_backend.seed import DEFAULT_LANGUAGES, seed_languages

logger = logging.getLogger(__name__)


async def run(languages: list[dict], skip_schema: bool) -> int:
    backend = get_backend()
    try:
        if not skip_schema:
            await backend.init_schema()
        created = await seed_languages(backend.languages, languages)
    finally:
        await backend.close()
    print(f"Seeded {len(created)} language(s)")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed admin backend languages")
    parser.add_argument(
        "--file",
        type=str,
        default=None,
        help="JSON file with a list of languages (defaults to the built-in set)",
    )
    parser.add_argument(
        "--skip-schema",
        action="store_true",
        help="Do not create tables/indexes before seeding",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    languages = list(DEFAULT_LANGUAGES)
    if args.file:
        languages = json.loads(Path(args.file).read_text(encoding="utf-8"))
    return asyncio.run(run(languages, args.skip_schema))


if __name__ == "__main__":
    raise SystemExit(main())
