"""AI-assisted scenic-area listing per province, with two cache layers.

- Raw AI calls are cached for 24 h under a hash of prompt + identifier, so an
  identical request never reaches the paid API twice within a day.
- The assembled, coordinate-enriched and validated listing is cached per
  province for 4 h. When it goes stale the listing is rebuilt (re-enriched,
  re-validated) but the raw call is usually still served from cache.
"""

import hashlib
import json
import logging
import re
from abc import ABC
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

import config
from cache import CacheManager
from errors import AIResponseError, ConfigurationError
from geocoder import CoordinateResolver
from models import ScenicArea, ValidationReport
from upstream import open_client, post_json

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class AIProvider(ABC):
    """OpenAI-compatible chat-completions endpoint."""

    name: str = ""
    url: str = ""
    system_prompt: str = ""

    def __init__(self, api_key: str):
        if not api_key:
            raise ConfigurationError(f"API key for AI provider {self.name!r} is not configured")
        self.api_key = api_key
        self.model = config.AI_MODELS[self.name]
        self.max_tokens = config.AI_MAX_TOKENS[self.name]

    async def complete(self, client: httpx.AsyncClient, prompt: str) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self.max_tokens,
            "temperature": config.AI_TEMPERATURE,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        data = await post_json(client, self.url, payload, headers, timeout=config.AI_TIMEOUT_S)
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise AIResponseError(f"Unexpected {self.name} response shape: {e}") from e


class AliyunProvider(AIProvider):
    name = "aliyun"
    url = config.DASHSCOPE_CHAT_URL
    system_prompt = (
        "你是一个专业的旅游信息专家，熟悉中国各省市的景区信息。请提供准确、详细的景区数据，"
        "严格按照要求的JSON格式返回。确保包含所有重要的5A、4A、3A级景区，不要遗漏。"
    )


class OpenAIProvider(AIProvider):
    name = "openai"
    url = config.OPENAI_CHAT_URL
    system_prompt = (
        "You are a tourism expert familiar with Chinese scenic areas. Provide accurate, detailed "
        "scenic area data in the exact JSON format requested. Ensure you include all important "
        "5A, 4A, and 3A level scenic areas without omission."
    )


def create_ai_provider(name: str | None = None) -> AIProvider:
    name = (name or config.AI_PROVIDER).lower()
    if name == "aliyun":
        return AliyunProvider(config.DASHSCOPE_API_KEY)
    if name == "openai":
        return OpenAIProvider(config.OPENAI_API_KEY)
    raise ConfigurationError(f"Unsupported AI provider: {name!r}")


def ai_cache_key(prompt: str, identifier: str) -> str:
    digest = hashlib.sha256((prompt + identifier).encode("utf-8")).hexdigest()
    return f"ai_call_{digest[:16]}"


def province_cache_key(province: str) -> str:
    return f"scenic_areas_{province}"


def listed_cities(listing: dict) -> dict[str, list[dict]]:
    """City -> area dicts of an AI listing; malformed cities and entries are dropped."""
    cities = listing.get("cities")
    if not isinstance(cities, dict):
        return {}
    out = {}
    for city, areas in cities.items():
        if not isinstance(areas, list):
            logger.warning("Ignoring non-list entry for city %s", city)
            continue
        out[city] = [a for a in areas if isinstance(a, dict)]
    return out


def extract_json(text: str) -> dict:
    """First-to-last brace span of an AI reply, parsed as JSON."""
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise AIResponseError("No valid JSON found in AI response")
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AIResponseError(f"Failed to parse JSON from AI response: {e}") from e


def build_prompt(province: str, expected: dict[str, list[str]] | None = None) -> str:
    expected = config.EXPECTED_SCENIC_AREAS.get(province, {}) if expected is None else expected
    examples = ""
    if expected:
        examples = "\n\n特别注意，请确保包含以下重要景区：\n"
        examples += "".join(f"- {city}市：{'、'.join(areas)}\n" for city, areas in expected.items())

    return f"""请列出{province}省所有的5A、4A、3A、2A、1A级景区，按城市分组。{examples}

要求返回JSON格式，结构如下：
{{
  "province": "{province}",
  "cities": {{
    "城市名": [
      {{
        "name": "景区名称",
        "level": "5A",
        "address": "详细地址"
      }}
    ]
  }}
}}

请确保：
1. 数据准确，包含真实存在的景区
2. 描述简洁但信息丰富
3. 按城市正确分组
4. 包含各个等级的景区，不要遗漏
5. 只返回JSON，不要其他文字"""


def validate_listing(province: str, result: dict, expected: dict[str, list[str]] | None = None) -> ValidationReport:
    """Check an AI listing for missing cities or well-known areas (substring match either way)."""
    expected = config.EXPECTED_SCENIC_AREAS.get(province, {}) if expected is None else expected
    cities = listed_cities(result)
    if not cities:
        return ValidationReport(is_valid=False, warnings=["No cities found in response"])

    warnings = []
    for city, expected_areas in expected.items():
        listed = cities.get(city) or []
        if not listed:
            warnings.append(f"Missing city: {city}")
            continue
        names = [a["name"] for a in listed if isinstance(a.get("name"), str)]
        for wanted in expected_areas:
            if not any(wanted in n or n in wanted for n in names if n):
                warnings.append(f"Missing scenic area in {city}: {wanted}")

    return ValidationReport(
        is_valid=not warnings,
        warnings=warnings,
        found_cities=len(cities),
        total_scenic_areas=sum(len(v) for v in cities.values()),
    )


class ScenicAreaService:
    def __init__(
        self,
        provider: AIProvider,
        caches: CacheManager,
        resolver: CoordinateResolver | None = None,
        client: httpx.AsyncClient | None = None,
        enrich_delay_s: float = config.ENRICH_DELAY_S,
        log_dir: str | None = None,
    ):
        self.provider = provider
        self.caches = caches
        self.resolver = resolver
        self.client = client
        self.enrich_delay_s = enrich_delay_s
        self.log_dir = Path(log_dir or config.LOG_DIR)

    # ---- AI interaction log ----

    def log_interaction(self, identifier: str, prompt: str, raw: str, parsed: dict | None, error: Exception | None = None) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "identifier": identifier,
            "provider": self.provider.name,
            "prompt": prompt,
            "raw_response": raw,
            "parsed_result": parsed,
            "error": str(error) if error else None,
            "success": error is None,
        }
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(self.log_dir / "ai-interactions.jsonl", "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as e:
            logger.error("Failed to log AI interaction: %s", e)

    def recent_logs(self, limit: int = 10) -> list[dict]:
        path = self.log_dir / "ai-interactions.jsonl"
        if not path.exists():
            return []
        entries = []
        for line in path.read_text(encoding="utf-8").splitlines()[-limit:]:
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning("Skipping corrupt log line in %s", path)
        return entries

    # ---- Raw AI call (24 h cache) ----

    async def call_ai(self, prompt: str, identifier: str) -> dict[str, Any]:
        key = ai_cache_key(prompt, identifier)
        cached = self.caches.ai_calls.get(key)
        if cached:
            age = self.caches.ai_calls.age_ms(cached)
            logger.info("Using cached AI result for %s (%d minutes old)", identifier, age // 60_000)
            return {**cached["result"], "from_cache": True, "cache_age": age}

        logger.info("Calling %s AI for %s (cache miss)", self.provider.name, identifier)
        raw = ""
        try:
            async with open_client(self.client) as client:
                raw = await self.provider.complete(client, prompt)
            logger.info("Received %d characters from %s for %s", len(raw), self.provider.name, identifier)
            result = extract_json(raw)
        except Exception as e:
            self.log_interaction(identifier, prompt, raw, None, e)
            raise
        self.log_interaction(identifier, prompt, raw, result)

        self.caches.ai_calls.set(key, {"result": result, "identifier": identifier, "prompt_hash": key})
        return {**result, "from_cache": False, "cache_age": 0}

    # ---- Coordinate enrichment ----

    async def enrich_with_coordinates(self, listing: dict) -> dict:
        """Geocode every listed area into `center`, one request at a time."""
        cities = listed_cities(listing)
        if self.resolver is None or not cities:
            return listing

        province = listing.get("province")
        enriched: dict[str, list[dict]] = {}
        first = True
        for city, areas in cities.items():
            logger.info("Enriching %d scenic areas in %s", len(areas), city)
            out = []
            for raw_area in areas:
                item = {k: v for k, v in raw_area.items() if k != "coordinates"}
                try:
                    area = ScenicArea.model_validate({**item, "city": city, "province": province})
                except ValidationError as e:
                    logger.warning("Skipping geocode for malformed area in %s: %s", city, e.errors()[0]["msg"])
                    item["coordinate_status"] = "invalid"
                    out.append(item)
                    continue
                result = await self.resolver.resolve(area, 0 if first else self.enrich_delay_s)
                first = False
                item["center"] = result.coordinates.model_dump()
                item["coordinate_status"] = result.status
                out.append(item)
            enriched[city] = out

        return {
            **listing,
            "cities": enriched,
            "coordinates_enriched": True,
            "coordinates_enriched_at": datetime.now(timezone.utc).isoformat(),
        }

    # ---- Province listing (4 h cache) ----

    async def get_scenic_areas_by_province(self, province: str) -> dict[str, Any]:
        key = province_cache_key(province)
        cached = self.caches.provinces.get(key)
        if cached:
            age = self.caches.provinces.age_ms(cached)
            logger.info("Using cached listing for %s", province)
            return {**cached["data"], "from_cache": True, "cache_age": age}

        logger.info("Building scenic-area listing for %s", province)
        prompt = build_prompt(province)
        listing = await self.call_ai(prompt, province)
        listing = {k: v for k, v in listing.items() if k not in ("from_cache", "cache_age")}

        enriched = await self.enrich_with_coordinates(listing)
        validation = validate_listing(province, enriched)
        if not validation.is_valid:
            logger.warning("Incomplete listing for %s: %s", province, "; ".join(validation.warnings))

        final = {**enriched, "validation": validation.model_dump()}
        self.caches.provinces.set(key, {"data": final})
        return {**final, "from_cache": False, "cache_age": 0}

    async def force_refresh(self, province: str) -> dict[str, Any]:
        self.clear_cache(province)
        return await self.get_scenic_areas_by_province(province)

    def clear_cache(self, province: str | None = None, include_ai: bool = False) -> dict[str, int]:
        if province:
            cleared = {"provinces": int(self.caches.provinces.delete(province_cache_key(province)))}
        else:
            cleared = {"provinces": self.caches.provinces.clear()}
        if include_ai:
            if province:
                cleared["ai_calls"] = self.caches.ai_calls.clear(lambda _k, rec: province in (rec.get("identifier") or ""))
            else:
                cleared["ai_calls"] = self.caches.ai_calls.clear()
        return cleared

    def validation_summary(self) -> dict[str, dict]:
        summary = {}
        for key, rec in self.caches.provinces.items():
            if not key.startswith("scenic_areas_"):
                continue
            data = rec.get("data") or {}
            cities = listed_cities(data)
            summary[key[len("scenic_areas_"):]] = {
                "cached": True,
                "validation": data.get("validation"),
                "cities_count": len(cities),
                "scenic_areas_count": sum(len(v) for v in cities.values()),
                "cache_age_minutes": self.caches.provinces.age_ms(rec) // 60_000,
            }
        return summary
