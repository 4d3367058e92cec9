from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]

ClassNameTable = Tuple[str, ...]

PACKAGE_DATA_DIR = Path("Data") / "com.apple.CoreML"
CREATOR_KEY = "MLModelCreatorDefinedKey"

_QUOTED_TOKEN = re.compile(r"'([^']+)'")


def parse_names_string(names: str) -> ClassNameTable:
    """
    Parse the dict-like names string written by YOLO exporters.

        "{0: 'person', 1: 'bicycle', ...}" -> ("person", "bicycle", ...)

    Only single-quoted tokens are taken, in order of appearance.
    """

    return tuple(_QUOTED_TOKEN.findall(names))


def class_names_from_metadata(metadata: Optional[Mapping[str, Any]]) -> Optional[ClassNameTable]:
    """Class names from a model's creator-defined metadata mapping, if present."""
    if not metadata:
        return None
    names = metadata.get("names")
    if isinstance(names, str):
        table = parse_names_string(names)
        return table or None
    if isinstance(names, (list, tuple)) and all(isinstance(n, str) for n in names):
        return tuple(names) or None
    if isinstance(names, dict):
        try:
            ordered = sorted(((int(k), str(v)) for k, v in names.items()), key=lambda kv: kv[0])
        except (TypeError, ValueError):
            return None
        return tuple(v for _, v in ordered) or None
    return None


def box_format_from_metadata(metadata: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not metadata:
        return None
    value = metadata.get("box_format")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def read_package_metadata(package_path: PathLike) -> Dict[str, Any]:
    """
    Creator-defined metadata stored in `<pkg>.mlpackage/Data/com.apple.CoreML/Metadata.json`.

    Returns an empty dict when the file is missing or unreadable.
    """

    meta_path = Path(package_path) / PACKAGE_DATA_DIR / "Metadata.json"
    if not meta_path.exists():
        return {}
    try:
        payload = json.loads(meta_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        LOGGER.warning("Could not read %s: %s", meta_path, exc)
        return {}
    if not isinstance(payload, dict):
        return {}
    creator = payload.get(CREATOR_KEY)
    return creator if isinstance(creator, dict) else {}


def load_class_names(path: PathLike) -> ClassNameTable:
    """
    Load class names from a file.

    Supported formats:
    - `Metadata.json` (or any JSON with `MLModelCreatorDefinedKey.names` or `names`)
    - a `.mlpackage` directory
    - the lightweight yaml used next to exported weights:

        names:
          0: person
          1: bicycle
    """

    p = Path(path)
    if p.is_dir():
        return class_names_from_metadata(read_package_metadata(p)) or ()
    if p.suffix.lower() == ".json":
        payload = json.loads(p.read_text(encoding="utf-8"))
        if isinstance(payload, dict):
            creator = payload.get(CREATOR_KEY)
            if isinstance(creator, dict):
                return class_names_from_metadata(creator) or ()
            return class_names_from_metadata(payload) or ()
        return ()
    return _load_names_yaml(p)


def _load_names_yaml(path: Path) -> ClassNameTable:
    names: Dict[int, str] = {}
    in_names = False

    with open(path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line == "names:":
                in_names = True
                continue
            if not in_names:
                continue

            if ":" not in line:
                continue
            left, right = line.split(":", 1)
            left = left.strip()
            right = right.strip().strip("'").strip('"')
            if not left.isdigit():
                # Next top-level key ends the names block.
                if not raw.startswith((" ", "\t")):
                    break
                continue
            names[int(left)] = right

    if not names:
        return ()
    size = max(names) + 1
    return tuple(names.get(i, f"class_{i}") for i in range(size))


def resolve_label(class_index: Optional[int], names: Optional[Sequence[str]] = None) -> str:
    """
    Human-readable label for a class index.

    No index (single-score models) gives "Object"; an index missing from the
    table gives "class_<index>".
    """

    if class_index is None or class_index < 0:
        return "Object"
    if names is not None and class_index < len(names):
        return names[class_index]
    return f"class_{class_index}"
