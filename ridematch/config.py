"""
Environment-driven settings for the RIDEMATCH service.

Only the server reads the environment. The matching core receives an explicit
MatchConfig built from these settings (or from request overrides).
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .modules.models import MatchConfig
from .modules.route_client import GOOGLE_DIRECTIONS_URL

ROOT_DIR = Path(__file__).parent


def _float(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value not in (None, "") else default


def _int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value not in (None, "") else default


@dataclass
class Settings:
    google_maps_api_key: Optional[str] = None
    directions_base_url: str = GOOGLE_DIRECTIONS_URL
    proximity_threshold_km: float = 2.0
    time_window_min: int = 30
    min_match_score: int = 30
    max_concurrent_fetches: int = 5
    fetch_timeout_s: float = 10.0
    cache_ttl_s: float = 3600.0
    match_deadline_s: Optional[float] = None
    daily_limit: int = 2000
    minute_limit: int = 40
    cors_origins: List[str] = None

    def match_config(self) -> MatchConfig:
        return MatchConfig(
            proximity_threshold_km=self.proximity_threshold_km,
            time_window_min=self.time_window_min,
            min_match_score=self.min_match_score,
            max_concurrent_fetches=self.max_concurrent_fetches,
            fetch_timeout_s=self.fetch_timeout_s,
            cache_ttl_s=self.cache_ttl_s,
            match_deadline_s=self.match_deadline_s,
        )


def load_settings(env_file: Optional[Path] = None) -> Settings:
    load_dotenv(env_file or ROOT_DIR / '.env')

    deadline = os.environ.get('MATCH_DEADLINE_S')
    return Settings(
        google_maps_api_key=os.environ.get('GOOGLE_MAPS_API_KEY') or None,
        directions_base_url=os.environ.get('DIRECTIONS_BASE_URL', GOOGLE_DIRECTIONS_URL),
        proximity_threshold_km=_float('MATCH_PROXIMITY_KM', 2.0),
        time_window_min=_int('MATCH_TIME_WINDOW_MIN', 30),
        min_match_score=_int('MATCH_MIN_SCORE', 30),
        max_concurrent_fetches=_int('MATCH_MAX_CONCURRENT_FETCHES', 5),
        fetch_timeout_s=_float('MATCH_FETCH_TIMEOUT_S', 10.0),
        cache_ttl_s=_float('ROUTE_CACHE_TTL_S', 3600.0),
        match_deadline_s=float(deadline) if deadline else None,
        daily_limit=_int('DIRECTIONS_DAILY_LIMIT', 2000),
        minute_limit=_int('DIRECTIONS_MINUTE_LIMIT', 40),
        cors_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    )
