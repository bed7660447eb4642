import os
from dataclasses import dataclass
from typing import Dict, List


def _parse_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_capacity(raw: str) -> Dict[str, int]:
    """Parse "electrical:2,plumbing:1" into {"electrical": 2, "plumbing": 1}."""
    capacity = {}
    for item in _parse_list(raw):
        trade, _, value = item.partition(":")
        if trade and value:
            capacity[trade.strip()] = int(value)
    return capacity


@dataclass
class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./schedule_intelligence.db")
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"

    LOG_DIR: str = os.getenv("LOG_DIR", "logs")
    OUTPUT_DIR: str = os.getenv("OUTPUT_DIR", "outputs")

    # Inspection scheduling
    INSPECTION_LEAD_TIME_DAYS: int = int(os.getenv("INSPECTION_LEAD_TIME_DAYS", "1"))
    DAILY_INSPECTION_CAPACITY: int = int(os.getenv("DAILY_INSPECTION_CAPACITY", "1"))

    # Analysis runs
    ANALYSIS_TIME_BUDGET_SECONDS: float = float(os.getenv("ANALYSIS_TIME_BUDGET_SECONDS", "5.0"))
    MAX_WORKERS: int = int(os.getenv("MAX_WORKERS", "4"))
    UPCOMING_HANDOFF_DAYS: int = int(os.getenv("UPCOMING_HANDOFF_DAYS", "7"))

    DEFAULT_WORKWEEK: List[int] = None
    HOLIDAYS: List[str] = None
    TRADE_CAPACITY: Dict[str, int] = None

    APP_NAME: str = "Construction Schedule Intelligence"
    APP_VERSION: str = "1.0.0"

    def __post_init__(self):
        if self.DEFAULT_WORKWEEK is None:
            self.DEFAULT_WORKWEEK = [0, 1, 2, 3, 4]
        if self.HOLIDAYS is None:
            self.HOLIDAYS = _parse_list(os.getenv("HOLIDAYS", ""))
        if self.TRADE_CAPACITY is None:
            self.TRADE_CAPACITY = _parse_capacity(os.getenv("TRADE_CAPACITY", ""))

    def ensure_directories(self):
        for directory in [self.LOG_DIR, self.OUTPUT_DIR]:
            os.makedirs(directory, exist_ok=True)


settings = Settings()
