from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence

from .config import DetectorConfig, load_detector_config
from .conventions import known_conventions
from .errors import ConfigError
from .locator import ModelLocator, list_model_files
from .metadata import load_class_names
from .service import DetectorService
from .types import Detection, grouped_counts

LOGGER = logging.getLogger(__name__)


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record; exception text goes into the message."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return json.dumps(
            {
                "time": self.formatTime(record),
                "level": record.levelname,
                "logger": record.name,
                "message": message,
            }
        )


def setup_logging(log_format: str = "text", verbose: int = 0) -> None:
    log_level = logging.DEBUG if verbose > 1 else logging.INFO if verbose == 1 else logging.WARNING
    formatter: logging.Formatter
    if log_format == "json":
        formatter = JsonLineFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    logging.basicConfig(level=log_level, handlers=[handler], force=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scan-kit", description="Object detection with CoreML/ONNX YOLO models.")
    parser.add_argument("--log-format", choices=("text", "json"), default="text")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for info, -vv for debug logs.")
    sub = parser.add_subparsers(dest="command", required=True)

    detect = sub.add_parser("detect", help="Run detection on one image.")
    detect.add_argument("image", help="Path to the input image.")
    _add_model_args(detect)
    detect.add_argument("--names", default=None, help="Class names file (Metadata.json, .mlpackage or names yaml).")
    detect.add_argument("--box-format", choices=known_conventions(), default=None, help="Force the box format.")
    detect.add_argument("--no-fallback", action="store_true", help="Disable the fallback decoding pass.")
    detect.add_argument("--output", default=None, help="Write an annotated copy of the image here.")
    detect.add_argument("--json", action="store_true", help="Print detections as JSON.")

    models = sub.add_parser("models", help="List model files and load candidates.")
    _add_model_args(models)
    return parser


def _add_model_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default=None, help="Detector config JSON.")
    parser.add_argument(
        "--models-dir",
        action="append",
        default=None,
        help="Directory to search for models (repeatable). Overrides the config search roots.",
    )


def resolve_config(args: argparse.Namespace) -> DetectorConfig:
    cfg = load_detector_config(Path(args.config)) if args.config else DetectorConfig()
    if args.models_dir:
        cfg = replace(cfg, locator=replace(cfg.locator, search_roots=tuple(Path(d) for d in args.models_dir)))
    if getattr(args, "box_format", None):
        cfg = replace(cfg, decoder=replace(cfg.decoder, box_format=args.box_format))
    if getattr(args, "no_fallback", False):
        cfg = replace(cfg, fallback=replace(cfg.fallback, enabled=False))
    return cfg


def _print_detections(detections: Sequence[Detection], as_json: bool) -> None:
    if as_json:
        print(json.dumps([det.to_dict() for det in detections], indent=2))
        return
    for det in detections:
        x, y, w, h = det.as_xywh()
        print(f"{det.label:<20} {det.confidence:.3f}  x={x:.3f} y={y:.3f} w={w:.3f} h={h:.3f}")
    for label, count in grouped_counts(detections):
        print(f"# {label}: {count}")


def run_detect(args: argparse.Namespace) -> int:
    import cv2  # type: ignore

    cfg = resolve_config(args)
    image = cv2.imread(args.image)
    if image is None:
        print(f"Could not read image at path: {args.image}", file=sys.stderr)
        return 2

    with DetectorService(cfg) as service:
        detections = service.detect(image).result()
        if args.names:
            names = load_class_names(args.names)
            detections = [_relabel(det, names) for det in detections]

    _print_detections(detections, args.json)

    if args.output:
        from .visualize import draw_detections

        vis = draw_detections(image, detections)
        if not cv2.imwrite(args.output, vis):
            print(f"Could not write {args.output}", file=sys.stderr)
            return 2
    return 0


def _relabel(det: Detection, names: Sequence[str]) -> Detection:
    if det.class_id is not None and 0 <= det.class_id < len(names):
        return replace(det, label=names[det.class_id])
    return det


def run_models(args: argparse.Namespace) -> int:
    cfg = resolve_config(args)
    roots = [Path(r) for r in cfg.locator.search_roots]
    print("Model files:")
    for path in list_model_files(roots):
        print(f"  {path}")
    print("Load order:")
    for candidate in ModelLocator(cfg.locator).candidates():
        suffix = f"  (package {candidate.package})" if candidate.package else ""
        print(f"  {candidate.path}{suffix}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_format, args.verbose)
    try:
        if args.command == "detect":
            return run_detect(args)
        if args.command == "models":
            return run_models(args)
    except (ConfigError, FileNotFoundError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
