from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

SCHEMA_VERSION = "crfcalib.brackets.v0"


class MetaValidationError(ValueError):
    pass


@dataclass(frozen=True)
class BracketImage:
    path: Path
    exposure_s: float


@dataclass(frozen=True)
class BracketGroup:
    name: str
    images: tuple[BracketImage, ...]

    @property
    def exposure_times(self) -> list[float]:
        return [im.exposure_s for im in self.images]


@dataclass(frozen=True)
class BracketManifest:
    schema_version: str
    groups: tuple[BracketGroup, ...]


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise MetaValidationError(msg)


def load_bracket_manifest(path: Path) -> BracketManifest:
    path = Path(path)
    data = json.loads(path.read_text(encoding="utf-8"))
    return parse_bracket_manifest(data, base_dir=path.parent)


def parse_bracket_manifest(data: dict[str, Any], base_dir: Path | None = None) -> BracketManifest:
    schema_version = data.get("schema_version")
    _require(schema_version == SCHEMA_VERSION, f"schema_version must be {SCHEMA_VERSION}")

    groups_raw = data.get("groups")
    _require(isinstance(groups_raw, list) and len(groups_raw) > 0, "groups must be a non-empty list")

    groups: list[BracketGroup] = []
    for g, group in enumerate(groups_raw):
        _require(isinstance(group, dict), f"groups[{g}] must be an object")
        name = str(group.get("name", f"group_{g:04d}"))
        images_raw = group.get("images")
        _require(
            isinstance(images_raw, list) and len(images_raw) > 0,
            f"groups[{g}].images must be a non-empty list",
        )
        images: list[BracketImage] = []
        for i, im in enumerate(images_raw):
            where = f"groups[{g}].images[{i}]"
            _require(isinstance(im, dict), f"{where} must be an object")
            p_raw = im.get("path")
            _require(isinstance(p_raw, str) and len(p_raw) > 0, f"{where}.path is required")
            t_raw = im.get("exposure_s")
            _require(t_raw is not None, f"{where}.exposure_s is required")
            t = float(t_raw)
            _require(t > 0.0, f"{where}.exposure_s must be > 0")
            p = Path(p_raw)
            if base_dir is not None and not p.is_absolute():
                p = Path(base_dir) / p
            images.append(BracketImage(path=p, exposure_s=t))
        groups.append(BracketGroup(name=name, images=tuple(images)))

    names = [g.name for g in groups]
    _require(len(set(names)) == len(names), "group names must be unique")
    return BracketManifest(schema_version=schema_version, groups=tuple(groups))
