from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from tqdm import tqdm

from .background import BackgroundSpec, ProcessOptions
from .codec import is_supported
from .config import NobgConfig, default_workers
from .errors import NobgError
from .inference import MODEL_REGISTRY
from .service import RemovalService


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="nobg",
        description="Remove image backgrounds and flatten them onto a chosen colour.",
    )
    parser.add_argument(
        "inputs",
        nargs="*",
        type=Path,
        help="Image files or directories. Omit when using --clipboard.",
    )
    parser.add_argument(
        "--clipboard",
        action="store_true",
        help="Process the image currently on the clipboard.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("."),
        help="Directory where <name>_nobg.png files are written.",
    )
    parser.add_argument(
        "--background",
        type=str,
        default="transparent",
        help="transparent, white, black or a hex colour such as #3366ff.",
    )
    parser.add_argument(
        "--model",
        default="rmbg14",
        choices=list(MODEL_REGISTRY.keys()),
        help="Matting model. Available: " + ", ".join(MODEL_REGISTRY.keys()),
    )
    parser.add_argument(
        "--weights-dir",
        type=Path,
        default=Path("~/.cache/nobg").expanduser(),
        help="Directory used to cache downloaded model weights.",
    )
    parser.add_argument(
        "--no-download",
        dest="download_weights",
        action="store_false",
        help="Fail instead of downloading missing weights.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=default_workers(),
        help="Number of images processed concurrently in batch mode.",
    )
    parser.add_argument(
        "--alpha-threshold",
        type=float,
        default=None,
        help="Optional hard threshold [0,1] applied to the alpha matte.",
    )
    parser.add_argument(
        "--refine-dilate",
        type=int,
        default=0,
        help="Optional number of 3x3 dilation iterations applied after thresholding.",
    )
    parser.add_argument(
        "--refine-feather",
        type=int,
        default=1,
        help="Gaussian blur radius (pixels) used to soften mask edges. 0 disables it.",
    )
    parser.add_argument(
        "--suffix",
        default="_nobg",
        help="Suffix appended to output file stems.",
    )
    parser.add_argument(
        "--json",
        dest="json_report",
        type=Path,
        default=None,
        help="Optional path to write a JSON report of the run.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser.parse_args(argv)


def collect_inputs(inputs: Sequence[Path]) -> List[Path]:
    paths: List[Path] = []
    for entry in inputs:
        entry = entry.expanduser()
        if entry.is_dir():
            paths.extend(sorted(p for p in entry.rglob("*") if p.is_file() and is_supported(p)))
        else:
            paths.append(entry)
    return paths


def build_config(args: argparse.Namespace) -> NobgConfig:
    return NobgConfig(
        model_name=args.model,
        weights_dir=args.weights_dir.expanduser(),
        alpha_threshold=args.alpha_threshold,
        refine_dilate=args.refine_dilate,
        refine_feather=args.refine_feather,
        max_workers=args.workers,
        output_suffix=args.suffix,
        download_weights=args.download_weights,
    )


def run_clipboard(service: RemovalService, options: ProcessOptions, output_dir: Path) -> Dict[str, object]:
    encoded = service.capture_clipboard(options)
    destination = service.save_single(output_dir / service.suggested_single_name())
    print(f"[+] Wrote {destination}")
    return {"clipboard": {"output": str(destination), "width": encoded.width, "height": encoded.height}}


def run_batch(service: RemovalService, paths: List[Path], options: ProcessOptions, output_dir: Path) -> Dict[str, object]:
    start = time.perf_counter()
    _, stream = service.process_batch(paths, options)

    errors: Dict[str, str] = {}
    with tqdm(total=stream.total, unit="img", desc="Removing backgrounds") as progress:
        for event in stream:
            if event.error is not None:
                errors[event.name] = event.error
                tqdm.write(f"    [{event.index + 1}/{event.total}] {event.name}: {event.error}")
            progress.update(1)

    outcomes = service.save_all_batch(output_dir)
    elapsed = time.perf_counter() - start
    for outcome in outcomes:
        if not outcome.ok:
            errors[outcome.name] = outcome.error or "write failed"

    written = [str(outcome.destination) for outcome in outcomes if outcome.ok]
    print(
        f"[+] Processed {len(paths)} images | {len(written)} written | "
        f"{len(errors)} failed | {elapsed:.2f}s"
    )
    return {
        "images": len(paths),
        "written": written,
        "errors": errors,
        "total_seconds": elapsed,
    }


def run(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.clipboard and not args.inputs:
        raise SystemExit("Provide at least one input path or --clipboard.")

    try:
        options = ProcessOptions(background=BackgroundSpec.from_string(args.background))
        config = build_config(args)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    output_dir = args.output_dir.expanduser()
    output_dir.mkdir(parents=True, exist_ok=True)

    try:
        service = RemovalService.from_config(config)
    except NobgError as exc:
        raise SystemExit(str(exc)) from exc

    try:
        if args.clipboard:
            report = run_clipboard(service, options, output_dir)
        else:
            paths = collect_inputs(args.inputs)
            if not paths:
                raise SystemExit("No supported images found.")
            report = run_batch(service, paths, options, output_dir)
    except NobgError as exc:
        raise SystemExit(str(exc)) from exc
    finally:
        service.close()

    if args.json_report:
        args.json_report.parent.mkdir(parents=True, exist_ok=True)
        with args.json_report.open("w", encoding="utf-8") as handle:
            json.dump(report, handle, indent=2)
        print(f"[+] Wrote report to {args.json_report}")


if __name__ == "__main__":
    run()
