from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .conventions import known_conventions
from .decoder import DecoderConfig
from .errors import ConfigError
from .fallback import SCALE_MODES, FallbackConfig
from .letterbox import LetterboxConfig
from .locator import LocatorConfig
from .postprocess import YoloPostConfig
from .runtime import resolve_path


@dataclass(frozen=True)
class DetectorConfig:
    decoder: DecoderConfig = field(default_factory=DecoderConfig)
    letterbox: LetterboxConfig = field(default_factory=LetterboxConfig)
    locator: LocatorConfig = field(default_factory=LocatorConfig)
    fallback: FallbackConfig = field(default_factory=FallbackConfig)
    # Extra scalar inputs, passed only when the model declares them.
    confidence_threshold: float = 0.05
    iou_threshold: float = 0.45
    # Map direct-path boxes from the letterboxed input back to the source image.
    map_to_source: bool = True

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ConfigError("confidence_threshold must be within [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ConfigError("iou_threshold must be within [0, 1]")

    def extra_inputs(self) -> Dict[str, float]:
        return {"confidenceThreshold": self.confidence_threshold, "iouThreshold": self.iou_threshold}


def _require_object(payload: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ConfigError(f"{key} must be an object")
    return value


def _check_keys(section: str, payload: Dict[str, Any], allowed: set) -> None:
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ConfigError(f"Unknown {section} keys: {unknown}")


def _number(payload: Dict[str, Any], key: str, default: float) -> float:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{key} must be a number")
    return float(value)


def _int(payload: Dict[str, Any], key: str, default: int) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer")
    return int(value)


def _bool(payload: Dict[str, Any], key: str, default: bool) -> bool:
    value = payload.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false")
    return value


def _str_tuple(payload: Dict[str, Any], key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = payload.get(key, list(default))
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
        raise ConfigError(f"{key} must be a string or list of non-empty strings")
    return tuple(v.strip() for v in value)


def _size(payload: Dict[str, Any], key: str) -> Optional[Tuple[int, int]]:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return (value, value)
    if (
        isinstance(value, list)
        and len(value) == 2
        and all(isinstance(v, int) and not isinstance(v, bool) and v > 0 for v in value)
    ):
        return (value[0], value[1])
    raise ConfigError(f"{key} must be an integer or [width, height]")


def _decoder(payload: Dict[str, Any]) -> DecoderConfig:
    _check_keys("decoder", payload, {"min_score", "min_size", "box_format", "probe_order", "reference_size"})
    defaults = DecoderConfig()
    box_format = payload.get("box_format")
    probe_order = _str_tuple(payload, "probe_order", defaults.probe_order)
    known = set(known_conventions())
    if box_format is not None and (not isinstance(box_format, str) or box_format not in known):
        raise ConfigError(f"box_format must be one of {sorted(known)}")
    bad = [name for name in probe_order if name not in known]
    if bad:
        raise ConfigError(f"Unknown probe_order entries: {bad}")
    try:
        return DecoderConfig(
            min_score=_number(payload, "min_score", defaults.min_score),
            min_size=_number(payload, "min_size", defaults.min_size),
            box_format=box_format,
            probe_order=probe_order,
            reference_size=_number(payload, "reference_size", defaults.reference_size),
        )
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def _letterbox(payload: Dict[str, Any]) -> LetterboxConfig:
    _check_keys("letterbox", payload, {"new_shape", "color", "scaleup"})
    defaults = LetterboxConfig()
    color = payload.get("color", list(defaults.color))
    if not (isinstance(color, list) and len(color) == 3 and all(isinstance(c, int) and 0 <= c <= 255 for c in color)):
        raise ConfigError("color must be a list of three integers in [0, 255]")
    return LetterboxConfig(
        new_shape=_size(payload, "new_shape"),
        color=(color[0], color[1], color[2]),
        scaleup=_bool(payload, "scaleup", defaults.scaleup),
    )


def _locator(payload: Dict[str, Any], base_dir: Path) -> LocatorConfig:
    _check_keys("locator", payload, {"search_roots", "candidate_names", "allow_onnx"})
    defaults = LocatorConfig()
    roots = _str_tuple(payload, "search_roots", tuple(str(r) for r in defaults.search_roots))
    try:
        return LocatorConfig(
            search_roots=tuple(resolve_path(r, root=base_dir) for r in roots),
            candidate_names=_str_tuple(payload, "candidate_names", defaults.candidate_names),
            allow_onnx=_bool(payload, "allow_onnx", defaults.allow_onnx),
        )
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def _fallback(payload: Dict[str, Any]) -> FallbackConfig:
    _check_keys("fallback", payload, {"enabled", "scale_modes", "post"})
    post_payload = _require_object(payload, "post")
    _check_keys(
        "fallback.post",
        post_payload,
        {"conf_threshold", "iou_threshold", "max_detections", "apply_nms", "class_agnostic_nms", "anchors_has_objectness"},
    )
    post_defaults = YoloPostConfig()
    has_obj = post_payload.get("anchors_has_objectness")
    if has_obj is not None and not isinstance(has_obj, bool):
        raise ConfigError("anchors_has_objectness must be true, false or null")
    try:
        post = YoloPostConfig(
            conf_threshold=_number(post_payload, "conf_threshold", post_defaults.conf_threshold),
            iou_threshold=_number(post_payload, "iou_threshold", post_defaults.iou_threshold),
            max_detections=_int(post_payload, "max_detections", post_defaults.max_detections),
            apply_nms=_bool(post_payload, "apply_nms", post_defaults.apply_nms),
            class_agnostic_nms=_bool(post_payload, "class_agnostic_nms", post_defaults.class_agnostic_nms),
            anchors_has_objectness=has_obj,
        )
        return FallbackConfig(
            enabled=_bool(payload, "enabled", True),
            scale_modes=_str_tuple(payload, "scale_modes", SCALE_MODES),
            post=post,
        )
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def detector_config_from_dict(payload: Dict[str, Any], base_dir: Optional[Path] = None) -> DetectorConfig:
    """
    Build a DetectorConfig from a JSON-like mapping.

    Relative search roots resolve against `base_dir` (the config file's
    directory when loaded from disk, the working directory otherwise).
    """

    if not isinstance(payload, dict):
        raise ConfigError("Detector config must be a JSON object")
    _check_keys(
        "detector config",
        payload,
        {"decoder", "letterbox", "locator", "fallback", "confidence_threshold", "iou_threshold", "map_to_source"},
    )
    base = base_dir if base_dir is not None else Path.cwd()
    defaults = DetectorConfig()
    return DetectorConfig(
        decoder=_decoder(_require_object(payload, "decoder")),
        letterbox=_letterbox(_require_object(payload, "letterbox")),
        locator=_locator(_require_object(payload, "locator"), base),
        fallback=_fallback(_require_object(payload, "fallback")),
        confidence_threshold=_number(payload, "confidence_threshold", defaults.confidence_threshold),
        iou_threshold=_number(payload, "iou_threshold", defaults.iou_threshold),
        map_to_source=_bool(payload, "map_to_source", defaults.map_to_source),
    )


def load_detector_config(path: Path) -> DetectorConfig:
    if not path.exists():
        raise FileNotFoundError(f"Detector config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid detector config JSON: {path}") from exc
    return detector_config_from_dict(payload, base_dir=path.parent.resolve())
