"""City-level batch jobs over assets/<province>/<city>/data/scenic-area.json.

Runs strictly sequentially with a fixed pause between areas. A failing area is
logged and recorded in the report; the batch always runs to the end.
"""

import asyncio
import logging
import time
from pathlib import Path

import httpx

import config
from errors import PipelineError
from geocoder import CoordinateResolver
from models import AreaOutcome, BatchResolveReport, CitySearchReport, FilterConfig, ScenicArea
from spot_search import SpotSearchClient, search_scenic_area
from storage import (
    SCENIC_AREA_FILENAME,
    SPOTS_DIRNAME,
    city_data_dir,
    load_scenic_areas,
    save_scenic_areas,
    spots_filename,
    write_spots_file,
)

logger = logging.getLogger(__name__)


async def _search_and_write(
    area: ScenicArea,
    spots_dir: Path,
    searcher: SpotSearchClient,
    resolver: CoordinateResolver | None,
    filter_config: FilterConfig | None,
    radius: int | None = None,
) -> AreaOutcome:
    filename = spots_filename(area.name)
    output_path = spots_dir / filename
    result = await search_scenic_area(area, searcher, resolver, radius=radius, filter_config=filter_config)
    write_spots_file(output_path, result)
    area.spots_file = f"{SPOTS_DIRNAME}/{filename}"
    return AreaOutcome(scenic_area=area.name, count=result.count, output_path=str(output_path))


async def search_city(
    province: str,
    city: str,
    searcher: SpotSearchClient,
    resolver: CoordinateResolver | None = None,
    filter_config: FilterConfig | None = None,
    area_delay_s: float = config.AREA_DELAY_S,
    assets_dir: str | None = None,
) -> CitySearchReport:
    data_dir = city_data_dir(province, city, assets_dir)
    scenic_path = data_dir / SCENIC_AREA_FILENAME
    if not scenic_path.exists():
        raise FileNotFoundError(f"Scenic area file not found: {scenic_path}")

    doc = load_scenic_areas(scenic_path)
    spots_dir = data_dir / SPOTS_DIRNAME
    outcomes: list[AreaOutcome] = []
    start = time.time()

    for i, area in enumerate(doc.areas):
        logger.info("Processing scenic area %d/%d: %s", i + 1, len(doc.areas), area.name)
        try:
            outcomes.append(await _search_and_write(area, spots_dir, searcher, resolver, filter_config))
        except (PipelineError, httpx.HTTPError, OSError) as e:
            logger.error("Error processing %s: %s", area.name, e)
            outcomes.append(AreaOutcome(scenic_area=area.name, error=str(e)))
        if i < len(doc.areas) - 1 and area_delay_s > 0:
            await asyncio.sleep(area_delay_s)

    save_scenic_areas(scenic_path, doc)
    failed = sum(1 for o in outcomes if o.error)
    logger.info(
        "City %s/%s done in %.0fs: %d ok, %d failed",
        province, city, time.time() - start, len(outcomes) - failed, failed,
    )
    return CitySearchReport(province=province, city=city, scenic_areas=len(doc.areas), results=outcomes)


async def search_area_in_city(
    province: str,
    city: str,
    area_name: str,
    searcher: SpotSearchClient,
    resolver: CoordinateResolver | None = None,
    filter_config: FilterConfig | None = None,
    radius: int | None = None,
    assets_dir: str | None = None,
) -> AreaOutcome:
    """Search one named area of a city file and record its spots file."""
    data_dir = city_data_dir(province, city, assets_dir)
    scenic_path = data_dir / SCENIC_AREA_FILENAME
    doc = load_scenic_areas(scenic_path)
    area = next((a for a in doc.areas if a.name == area_name), None)
    if area is None:
        raise PipelineError(f'Scenic area "{area_name}" not found in {scenic_path}')
    outcome = await _search_and_write(area, data_dir / SPOTS_DIRNAME, searcher, resolver, filter_config, radius)
    save_scenic_areas(scenic_path, doc)
    return outcome


async def update_city_coordinates(
    scenic_path: str | Path,
    resolver: CoordinateResolver,
    delay_s: float = config.GEOCODE_DELAY_S,
) -> BatchResolveReport:
    """Geocode every area of a city file into its `center` field and save the file."""
    doc = load_scenic_areas(scenic_path)
    if not doc.areas:
        logger.warning("No scenic areas found in %s", scenic_path)
    report = await resolver.resolve_all(doc.areas, delay_s)
    save_scenic_areas(scenic_path, doc)
    return report
