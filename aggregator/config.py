"""
Pageview Aggregator — Configuration via environment variables.
"""

from pathlib import Path

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """All settings read from env / .env file."""

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./aggregator.db",
        description="Async SQLAlchemy DB URL",
    )
    table_prefix: str = Field(
        default="analytics_",
        description="Prefix for every per-domain statistics table",
    )
    db_echo: bool = Field(default=False, description="Log every SQL statement")
    db_pool_size: int = Field(default=5, description="Connection pool size (server databases only)")
    db_max_overflow: int = Field(default=10)
    db_pool_recycle: int = Field(default=300, description="Seconds before a pooled connection is recycled")

    # Paths
    var_dir: str = Field(default="./var", description="Directory holding buffer files")
    blocklist_path: str = Field(
        default="", description="Referrer blocklist file (falls back to <var_dir>/blocklist.txt)"
    )
    session_dir: str = Field(
        default="", description="Collector session files (falls back to <var_dir>/sessions)"
    )

    @property
    def blocklist_file(self) -> Path:
        if self.blocklist_path:
            return Path(self.blocklist_path)
        return Path(self.var_dir) / "blocklist.txt"

    @property
    def session_path(self) -> Path:
        if self.session_dir:
            return Path(self.session_dir)
        return Path(self.var_dir) / "sessions"

    # Aggregation
    timezone: str = Field(default="UTC", description="Timezone used to pick the statistics date")
    realtime_window_hours: int = Field(default=3)
    upsert_batch_size: int = Field(default=500, description="Max rows per multi-row upsert")
    atomic_commit: bool = Field(
        default=False,
        description="Commit site/page/referrer/realtime writes in a single transaction",
    )
    skip_malformed_lines: bool = Field(
        default=False,
        description="Skip undecodable buffer lines instead of aborting the run",
    )
    session_max_age_hours: int = Field(default=6)

    # Scheduling
    aggregation_interval: int = Field(
        default=60, description="Seconds between periodic aggregation sweeps"
    )

    # Logging
    log_level: str = Field(default="INFO")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
