"""Pydantic models for scenic areas, spots, geocode results and cache records."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Coordinate(BaseModel):
    lat: float
    lng: float

    @field_validator("lat", "lng")
    @classmethod
    def _six_decimals(cls, v: float) -> float:
        return round(float(v), 6)


class ScenicArea(BaseModel):
    # Unknown keys (description, images, ...) survive a load/save round trip.
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    address: str | None = None
    city: str | None = None
    province: str | None = None
    level: str | None = None
    radius: int | None = None
    center: Coordinate | None = None
    # Legacy field; dropped once a center has been resolved.
    coordinates: Coordinate | None = None
    spots_file: str | None = Field(default=None, alias="spotsFile")

    def apply_center(self, center: Coordinate) -> None:
        """Set the authoritative center and drop any legacy coordinate field."""
        self.center = center
        self.coordinates = None

    @property
    def known_center(self) -> Coordinate | None:
        return self.center or self.coordinates


class CoordinateResult(BaseModel):
    name: str
    coordinates: Coordinate
    status: Literal["found", "fallback"]
    source: str
    query: str | None = None
    timestamp: int  # epoch ms
    formatted_address: str | None = None
    confidence: int | str | None = None
    precise: bool | None = None
    city: str | None = None
    error: str | None = None
    response_time_ms: int | None = None


class Spot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    type: str = ""
    address: str = ""
    location: Coordinate
    distance: int = 0
    tel: str = ""
    rating: float = 0.0
    photos: list[dict[str, Any]] = Field(default_factory=list)
    business_area: str = ""
    tag: str = ""
    website: str = ""
    provider: str = "amap"
    relevance_score: float | None = Field(default=None, alias="relevanceScore")


class ResultSet(BaseModel):
    """One page of a nearby search for one query."""

    query: str
    results: list[Spot]
    count: int
    total: int


class FilterConfig(BaseModel):
    enable_filtering: bool = True
    filter_strength: Literal["strict", "moderate", "loose"] | None = "loose"
    use_enhanced_queries: bool = True
    max_results: int = 50
    min_relevance_score: float = 0.1


class FilteringStats(BaseModel):
    enabled: bool
    strength: str | None
    original_count: int
    filtered_count: int
    filter_ratio: float


class ScenicAreaSummary(BaseModel):
    name: str
    center: Coordinate
    radius: int
    level: str | None = None
    address: str | None = None
    description: str | None = None


class SpotSearchResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "success"
    count: int
    total: int
    results: list[Spot]
    filtering: FilteringStats
    scenic_area: ScenicAreaSummary | None = Field(default=None, alias="scenicArea")
    timestamp: str | None = None


class AreaOutcome(BaseModel):
    """Per-area record of a city-wide batch."""

    scenic_area: str
    count: int | None = None
    output_path: str | None = None
    error: str | None = None


class CitySearchReport(BaseModel):
    status: str = "success"
    province: str
    city: str
    scenic_areas: int
    results: list[AreaOutcome]


class CityStats(BaseModel):
    total: int = 0
    found: int = 0
    fallback: int = 0


class BatchResolveReport(BaseModel):
    results: list[CoordinateResult]
    found: int
    fallback: int
    by_city: dict[str, CityStats]


class ValidationReport(BaseModel):
    is_valid: bool
    warnings: list[str]
    found_cities: int = 0
    total_scenic_areas: int = 0


class CacheEntry(BaseModel):
    key: str
    payload: Any
    timestamp: int  # epoch ms
