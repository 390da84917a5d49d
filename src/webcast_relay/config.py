"""
Runtime settings, loaded from WEBCAST_* environment variables or a .env file.
"""

from functools import lru_cache
from pathlib import Path
from typing import ClassVar

from pydantic import Field, PositiveFloat, PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_COOKIE_ALLOW_LIST = (
    "ttwid",
    "tt_chain_token",
    "odin_tt",
    "sid_guard",
    "uid_tt",
    "bm_sv",
    "msToken",
)

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:128.0) Gecko/20100101 Firefox/128.0"


class WebcastSettings(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="WEBCAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Upstream websocket
    origin: str = "https://www.tiktok.com"
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = "en-US,en;q=0.5"
    forced_query_params: dict[str, str] = Field(
        default_factory=lambda: {"browser_version": "5.0 (Windows)"},
        description="Query parameters overwritten on every socket URL.",
    )
    cookie_allow_list: tuple[str, ...] = DEFAULT_COOKIE_ALLOW_LIST
    ping_interval: PositiveFloat = 10.0
    open_timeout: PositiveFloat = 15.0

    # Supervisor
    credential_timeout: PositiveFloat = 60.0
    reconnect_base_delay: PositiveFloat = 5.0
    reconnect_max_exponent: int = Field(default=4, ge=0)
    max_reconnect_attempts: PositiveInt = 10
    stream_end_actions: frozenset[int] = Field(
        default=frozenset({3, 4}),
        description="Control action codes that mean the broadcast has ended.",
    )

    # REST lookups
    room_info_url: str = "https://www.tiktok.com/api-live/user/room/"
    gift_list_url: str = "https://webcast.tiktok.com/webcast/gift/list/"
    app_language: str = "en-US"
    http_timeout: PositiveFloat = 30.0

    # Saved connection parameters, see `webcast credentials`
    credentials_file: Path = Path.home() / ".webcast" / "credentials.json"

    # Relay server
    relay_host: str = "127.0.0.1"
    relay_port: PositiveInt = 8080


@lru_cache
def get_settings() -> WebcastSettings:
    return WebcastSettings()
