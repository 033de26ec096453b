"""Read/write the per-city JSON artifacts.

Scenic-area files appear in three shapes in the wild:
  {"scenicAreas": [...], "city": ..., "province": ...}
  [...]
  {"results": [...]}
They are normalized here into one `ScenicAreaFile` and always written back in
the first shape.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

import config
from models import ScenicArea, SpotSearchResult

logger = logging.getLogger(__name__)

SCENIC_AREA_FILENAME = "scenic-area.json"
SPOTS_DIRNAME = "spots"


class ScenicAreaFile(BaseModel):
    meta: dict[str, Any] = Field(default_factory=dict)
    areas: list[ScenicArea] = Field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return {
            **self.meta,
            "scenicAreas": [a.model_dump(mode="json", by_alias=True, exclude_none=True) for a in self.areas],
        }


def write_json(path: str | Path, data: Any) -> None:
    """Write JSON via temp file + rename so a crash never leaves a truncated file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def parse_scenic_area_document(raw: Any) -> ScenicAreaFile:
    if isinstance(raw, list):
        meta, items = {}, raw
    elif isinstance(raw, dict) and isinstance(raw.get("scenicAreas"), list):
        meta = {k: v for k, v in raw.items() if k != "scenicAreas"}
        items = raw["scenicAreas"]
    elif isinstance(raw, dict) and isinstance(raw.get("results"), list):
        meta = {k: v for k, v in raw.items() if k != "results"}
        items = raw["results"]
    else:
        raise ValueError("Unrecognized scenic-area document: expected a list, 'scenicAreas' or 'results'")

    areas = []
    for item in items:
        area = ScenicArea.model_validate(item)
        # File-level city/province apply to areas that do not set their own.
        area.city = area.city or meta.get("city")
        area.province = area.province or meta.get("province")
        areas.append(area)
    return ScenicAreaFile(meta=meta, areas=areas)


def load_scenic_areas(path: str | Path) -> ScenicAreaFile:
    with open(path, "r", encoding="utf-8") as f:
        doc = parse_scenic_area_document(json.load(f))
    logger.info("Loaded %d scenic areas from %s", len(doc.areas), path)
    return doc


def save_scenic_areas(path: str | Path, doc: ScenicAreaFile) -> None:
    write_json(path, doc.to_json())
    logger.info("Saved %d scenic areas to %s", len(doc.areas), path)


def city_data_dir(province: str, city: str, assets_dir: str | None = None) -> Path:
    return Path(assets_dir or config.ASSETS_DIR) / province / city / "data"


def spots_filename(area_name: str) -> str:
    return area_name.replace("/", "_").replace(os.sep, "_") + ".json"


def write_spots_file(path: str | Path, result: SpotSearchResult) -> SpotSearchResult:
    stamped = result.model_copy(update={"timestamp": datetime.now(timezone.utc).isoformat()})
    write_json(path, stamped.model_dump(mode="json", by_alias=True, exclude_none=True))
    logger.info("Saved %d spots to %s", stamped.count, path)
    return stamped
