# =============================================================================
# File: guildsync/config/discord_config.py
# Description: Discord bot configuration (token, intents, web-app links)
# =============================================================================

from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import SettingsConfigDict

from guildsync.common.base.base_config import BaseConfig


# noinspection PyMethodParameters
class DiscordConfig(BaseConfig):
    """
    Discord bot configuration.

    The token is only read by the worker when it logs the client in;
    everything else is safe to log.
    """

    model_config = SettingsConfigDict(
        **{**BaseConfig.model_config, 'env_prefix': 'DISCORD_'},
    )

    # =========================================================================
    # Bot Credentials
    # =========================================================================

    token: SecretStr = Field(
        default=SecretStr(""),
        description="Bot token from the Discord developer portal"
    )

    client_id: Optional[str] = Field(
        default=None,
        description="Application (client) ID, used for invite links"
    )

    # =========================================================================
    # Behaviour
    # =========================================================================

    web_app_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the web app, used in task and project links"
    )

    request_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout applied to every Discord API call"
    )

    enable_members_intent: bool = Field(
        default=True,
        description="Request the privileged GUILD_MEMBERS intent"
    )

    archive_category_name: str = Field(
        default="Arkiv",
        description="Category archived project channels are moved into"
    )

    custom_id_max_length: int = Field(
        default=100,
        description="Discord component custom_id length limit"
    )

    @field_validator('web_app_url')
    def strip_trailing_slash(cls, v):
        return v.rstrip('/')

    def has_token(self) -> bool:
        return bool(self.token.get_secret_value())


@lru_cache(maxsize=1)
def get_discord_config() -> DiscordConfig:
    """Get Discord configuration singleton (cached)."""
    return DiscordConfig()


def reset_discord_config() -> None:
    """Reset config singleton (for testing)."""
    get_discord_config.cache_clear()
