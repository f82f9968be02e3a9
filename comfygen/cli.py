"""Command line entry point: generate one image on ComfyUI and print its URL.

Example:
    python -m comfygen.cli "a lighthouse at dusk" --width 1024 --height 1024
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .comfy_client import generate_image
from .errors import ComfyError
from .model import GenerationParams
from .workflow_builder import build_flux_workflow, dump_workflow

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="comfygen",
        description="Generate an image with the Flux workflow on ComfyUI.",
    )
    parser.add_argument("prompt", help="Text prompt.")
    parser.add_argument("--width", type=int, default=0)
    parser.add_argument("--height", type=int, default=0)
    parser.add_argument("--steps", type=int, default=0)
    parser.add_argument("--cfg", type=float, default=0)
    parser.add_argument("--seed", type=int, default=0, help="0 picks a time-based seed.")
    parser.add_argument("--base-url", default=None, help="Overrides COMFYUI_URL.")
    parser.add_argument("--client-id", default=None, help="Overrides COMFYUI_CLIENT_ID.")
    parser.add_argument(
        "--dump-workflow",
        type=Path,
        default=None,
        help="Write the workflow JSON to this path and exit without submitting.",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    params = GenerationParams(
        prompt=args.prompt,
        width=args.width,
        height=args.height,
        steps=args.steps,
        cfg=args.cfg,
        seed=args.seed,
    )

    if args.dump_workflow is not None:
        dump_workflow(build_flux_workflow(params.normalized()), args.dump_workflow)
        print(args.dump_workflow)
        return 0

    try:
        image_url = asyncio.run(
            generate_image(params, base_url=args.base_url, client_id=args.client_id)
        )
    except ComfyError as e:
        logger.error("Generation failed: %s", e)
        return 1

    print(image_url)
    return 0


if __name__ == "__main__":
    sys.exit(main())
