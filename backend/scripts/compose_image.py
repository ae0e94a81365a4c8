"""Compose a single photo to disk, for tuning crop thresholds offline.

Usage:
    python scripts/compose_image.py [--file <path> | --id <media id>] [--width 1280 --height 800] [--debug] [--out out.jpg]

Uses the same settings (environment / backend/.env) as the API. With --debug
the crop is not applied; faces, the planned crop and the caption sample box
are drawn on the full photo instead.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from dotenv import load_dotenv  # noqa: E402

load_dotenv(BACKEND_ROOT / ".env")

from db import SessionLocal, init_db  # noqa: E402
from services.image_composer import CompositionError  # noqa: E402
from services.photo_frame import build_photo_frame  # noqa: E402
from settings import settings  # noqa: E402

logger = logging.getLogger("compose_image")


def main(argv: list[str] | None = None) -> int:
    if not logger.handlers:
        logging.basicConfig(level=logging.INFO, format="%(message)s")
    parser = argparse.ArgumentParser(description="Compose one captioned, face-aware cropped photo.")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--file", default=None, help="Media path relative to MEDIA_ROOT (default: random).")
    source.add_argument("--id", type=int, default=None, help="Media id from the index.")
    parser.add_argument("--width", type=int, default=None)
    parser.add_argument("--height", type=int, default=None)
    parser.add_argument("--debug", action="store_true", help="Draw overlays instead of cropping.")
    parser.add_argument("--media-root", default=None, help="Override MEDIA_ROOT.")
    parser.add_argument("--no-ledger", action="store_true", help="Do not count this view in the ledger.")
    parser.add_argument("--out", default="composed.jpg")
    args = parser.parse_args(argv)

    for name in ("width", "height"):
        value = getattr(args, name)
        if value is not None and value <= 0:
            parser.error(f"--{name} must be positive")

    if args.media_root:
        settings.MEDIA_ROOT = args.media_root
    session_factory = None
    if not args.no_ledger:
        init_db()
        session_factory = SessionLocal

    frame = build_photo_frame(settings, session_factory=session_factory)
    try:
        result = frame.compose_image(
            filename=args.file, width=args.width, height=args.height, debug=args.debug, media_id=args.id
        )
    except CompositionError as exc:
        logger.error("Composition failed: %s", exc)
        return 2
    finally:
        frame.close()

    if result is None:
        logger.error("No such image: %s", args.file or (f"media id {args.id}" if args.id is not None else "(random)"))
        return 1

    data, filename = result
    out = Path(args.out)
    out.write_bytes(data)
    logger.info("Composed %s -> %s (%d bytes)", filename, out, len(data))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
