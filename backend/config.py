import os
from dotenv import load_dotenv

load_dotenv()

# --- Map providers ---
MAP_PROVIDER = os.getenv("MAP_PROVIDER", "amap")

AMAP_API_KEY = os.getenv("AMAP_API_KEY", "")
AMAP_API_SECRET = os.getenv("AMAP_API_SECRET", "")
BAIDU_API_KEY = os.getenv("BAIDU_API_KEY", "")

AMAP_GEOCODE_URL = "https://restapi.amap.com/v3/geocode/geo"
AMAP_AROUND_URL = "https://restapi.amap.com/v3/place/around"
BAIDU_GEOCODE_URL = "https://api.map.baidu.com/geocoding/v3/"

HTTP_TIMEOUT_S = 15.0

# --- AI providers ---
AI_PROVIDER = os.getenv("AI_PROVIDER", "aliyun")
DASHSCOPE_API_KEY = os.getenv("DASHSCOPE_API_KEY", "") or os.getenv("VITE_DASHSCOPE_API_KEY", "")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

DASHSCOPE_CHAT_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1/chat/completions"
OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"

# --- Paths ---
CACHE_DIR = os.getenv("CACHE_DIR", "cache")
CACHE_BACKEND = os.getenv("CACHE_BACKEND", "json")  # json | libsql
LOG_DIR = os.getenv("LOG_DIR", "logs")
ASSETS_DIR = os.getenv("ASSETS_DIR", "assets")

COORDINATES_CACHE_FILE = "coordinates-cache.json"
AI_CALL_CACHE_FILE = "ai-call-cache.json"
SCENIC_AREAS_CACHE_FILE = "scenic-areas-cache.json"

# --- Admin ---
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")

# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))

# --- Cache TTLs (seconds); None = never expires ---
COORDINATE_CACHE_TTL_S = None
AI_CALL_CACHE_TTL_S = 24 * 60 * 60
PROVINCE_CACHE_TTL_S = 4 * 60 * 60

# --- Rate limiting: fixed pauses between upstream calls ---
GEOCODE_DELAY_S = 0.5      # between scenic areas in a batch geocode
QUERY_DELAY_S = 0.2        # between queries of one enhanced-query plan
AREA_DELAY_S = 1.0         # between scenic areas in a city search
ENRICH_DELAY_S = 0.5       # between geocodes while enriching an AI listing

# --- Search radius by scenic-area level (meters) ---
LEVEL_RADIUS_M: dict[str, int] = {
    "5A": 1500,
    "4A": 1000,
}
DEFAULT_RADIUS_M = 500

# --- Nearby search defaults ---
SEARCH_DEFAULT_QUERY = "景点"
SEARCH_DEFAULT_TYPES = "风景名胜"
SEARCH_PAGE_SIZE = 50      # provider maximum per page
SEARCH_EXTENSIONS = "all"

# --- Relevance filtering ---
FILTER_CONFIG = {
    "enable_filtering": True,
    "filter_strength": "loose",
    "use_enhanced_queries": True,
    "max_results": 50,
    "min_relevance_score": 0.1,
}

FILTER_STRENGTH_MIN_SCORE: dict[str, float] = {
    "strict": 0.5,
    "moderate": 0.3,
    "loose": 0.1,
}

# Scoring weights
ADDRESS_EXACT_BONUS = 0.9
NAME_EXACT_BONUS = 0.8
NAME_TERM_WEIGHT = 0.4
ADDRESS_TERM_WEIGHT = 0.3
SHARED_LOCALITY_BONUS = 0.05
MAX_DISTANCE_PENALTY = 0.1
PENALTY_DISTANCE_M = 1500.0

# Generic tourism suffixes stripped when deriving key terms
GENERIC_SUFFIXES = [
    "景区",
    "风景区",
    "旅游区",
    "度假区",
    "森林公园",
    "地质公园",
    "湿地公园",
    "国家公园",
    "自然保护区",
    "文化遗址",
    "博物馆",
    "纪念馆",
]

# --- Fallback coordinates (GCJ-02 city centers) ---
FALLBACK_CITY_COORDINATES: dict[str, dict[str, float]] = {
    "郑州": {"lat": 34.7466, "lng": 113.6253},
    "洛阳": {"lat": 34.6197, "lng": 112.4540},
    "开封": {"lat": 34.7971, "lng": 114.3074},
    "平顶山": {"lat": 33.7453, "lng": 113.1929},
    "安阳": {"lat": 36.1034, "lng": 114.3924},
    "鹤壁": {"lat": 35.7554, "lng": 114.2974},
    "新乡": {"lat": 35.3026, "lng": 113.9268},
    "焦作": {"lat": 35.2158, "lng": 113.2418},
    "濮阳": {"lat": 35.7617, "lng": 115.0290},
    "许昌": {"lat": 34.0357, "lng": 113.8516},
    "漯河": {"lat": 33.5818, "lng": 114.0164},
    "三门峡": {"lat": 34.7732, "lng": 111.2008},
    "南阳": {"lat": 32.9909, "lng": 112.5285},
    "商丘": {"lat": 34.4138, "lng": 115.6506},
    "信阳": {"lat": 32.1285, "lng": 114.0918},
    "周口": {"lat": 33.6204, "lng": 114.6965},
    "驻马店": {"lat": 32.9804, "lng": 114.0241},
    "济源": {"lat": 35.0904, "lng": 112.6016},
}

DEFAULT_CENTER = {"lat": 34.7466, "lng": 113.6253}  # Zhengzhou

# --- AI scenic-area listing ---
AI_MODELS = {
    "aliyun": "qwen-plus",
    "openai": "gpt-4o",
}
AI_MAX_TOKENS = {
    "aliyun": 8000,
    "openai": 4000,
}
AI_TEMPERATURE = 0.1
AI_TIMEOUT_S = 120.0

# Well-known areas an AI listing for a province is expected to contain
EXPECTED_SCENIC_AREAS: dict[str, dict[str, list[str]]] = {
    "河南": {
        "郑州": ["嵩山少林景区", "嵩阳书院", "中岳庙", "黄河风景名胜区"],
        "洛阳": ["龙门石窟", "白马寺", "关林庙", "洛阳博物馆"],
        "开封": ["清明上河园", "开封府", "大相国寺", "铁塔公园"],
        "安阳": ["殷墟", "红旗渠", "太行大峡谷"],
        "焦作": ["云台山", "神农山", "青天河"],
    },
    "山东": {
        "济南": ["趵突泉", "千佛山", "大明湖"],
        "青岛": ["崂山", "八大关"],
        "泰安": ["泰山"],
        "曲阜": ["孔庙孔府孔林"],
        "威海": ["刘公岛"],
    },
    "江苏": {
        "南京": ["中山陵", "明孝陵", "夫子庙"],
        "苏州": ["拙政园", "留园", "虎丘"],
        "无锡": ["鼋头渚", "灵山大佛"],
        "扬州": ["瘦西湖", "个园"],
    },
}
