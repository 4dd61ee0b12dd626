"""Quiz-related constants shared across the core and API layers."""

from pathlib import Path

DEFAULT_TIME_LIMIT_SECONDS: int = 3600
REVIEW_TIME_LIMIT_SECONDS: int = 3600
TICK_INTERVAL_SECONDS: float = 1.0

MIN_OPTIONS: int = 2
MAX_OPTIONS: int = 4

DEFAULT_TEMPLATE_TIME_LIMIT_MINUTES: int = 60
DEFAULT_TEMPLATE_TOTAL_QUESTIONS: int = 20

HEARTBEAT_INTERVAL_SECONDS: float = 30.0

SEARCH_RESULT_LIMIT: int = 3
SEARCH_MIN_SIMILARITY: float = 0.15

LEADERBOARD_SIZE: int = 10
RESULTS_FILE_PATH: Path = Path("data") / "results.json"

SUBMITTED_SESSION_RETENTION: int = 200

USERS_PER_PAGE: int = 10
