from __future__ import annotations

import argparse
import base64
import io
import sys
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv
from PIL import Image

from drawguess.ai import GuessClient, InferenceError
from drawguess.api.client import DrawguessHttpClient
from drawguess.api.config_loader import load_config

CANVAS_BACKGROUND = (255, 255, 255)


def encode_drawing(path: Path) -> str:
    """Export a drawing file the way the canvas does: a white-background PNG data URI."""
    with Image.open(path) as image:
        image.load()
        if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
            rgba = image.convert("RGBA")
            flattened = Image.new("RGB", rgba.size, CANVAS_BACKGROUND)
            flattened.paste(rgba, mask=rgba.getchannel("A"))
        else:
            flattened = image.convert("RGB")
    buffer = io.BytesIO()
    flattened.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ask the vision model to guess what a drawing shows"
    )
    parser.add_argument("image", type=Path, help="path to the drawing (PNG, JPEG, ...)")
    parser.add_argument(
        "--api",
        choices=["ollama", "http"],
        default="ollama",
        help="call the Ollama backend directly or go through a running Drawguess API",
    )
    parser.add_argument(
        "--api-url",
        default="http://127.0.0.1:8000",
        help="Base URL for the Drawguess API (only with --api http)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="optional JSON configuration file for the Ollama backend",
    )
    return parser


def build_client(args: argparse.Namespace) -> GuessClient:
    if args.api == "http":
        return DrawguessHttpClient(base_url=args.api_url)
    return load_config(args.config).ollama.build_client()


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    if not args.image.exists():
        print(f"[submit] Drawing not found: {args.image}", file=sys.stderr)
        return 2
    try:
        image_base64 = encode_drawing(args.image)
    except OSError as exc:
        print(f"[submit] Could not read drawing {args.image}: {exc}", file=sys.stderr)
        return 2

    client = build_client(args)
    try:
        result = client.guess(image_base64)
    except InferenceError as exc:
        print(f"[submit] {exc.kind.value}: {exc.message}", file=sys.stderr)
        return 1

    print(f"{result.guess} ({result.confidence} confidence, {result.duration_ms / 1000:.1f}s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
