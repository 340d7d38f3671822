"""Tracker configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class TrackerSettings(BaseSettings):
    """Tracker settings, read from ``ANALYTICS_*`` environment variables.

    These mirror the globals the embeddable script reads from ``window``
    (``ANALYTICS_API_URL``, ``ANALYTICS_TRACKING_ID``, ...).
    """

    model_config = SettingsConfigDict(
        env_prefix="ANALYTICS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_url: str = "http://localhost:4000"
    tracking_id: str | None = None
    debug: bool = False
    auto_track: bool = True
    # Loyalty widgets are served elsewhere; the flag is carried for them.
    loyalty_enabled: bool = True

    # Seconds of scroll inactivity before scroll depth is evaluated
    scroll_debounce: float = 0.25

    @property
    def track_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/track"
