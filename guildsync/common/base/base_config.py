# =============================================================================
# File: guildsync/common/base/base_config.py
# Description: Shared pydantic-settings base for every GuildSync config
# =============================================================================
# Each config subclasses BaseConfig with its own env prefix and exposes a
# cached getter plus a reset_* function for tests:
#
#     class SyncConfig(BaseConfig):
#         model_config = SettingsConfigDict(**BaseConfig.model_config, env_prefix="SYNC_")
#
#     @lru_cache(maxsize=1)
#     def get_sync_config() -> SyncConfig:
#         return SyncConfig()
# =============================================================================

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """
    Values come from the environment (or ``.env``), case-insensitively.
    Nested values use ``__`` (``SYNC_ROLE_MAPPINGS__ADMIN__NAME``).
    Tokens and passwords are ``SecretStr`` and only unwrapped at the call site.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    def __repr__(self) -> str:
        fields = []
        for name in type(self).model_fields:
            value = getattr(self, name)
            shown = "SecretStr('**********')" if isinstance(value, SecretStr) else repr(value)
            fields.append(f"{name}={shown}")
        return f"{type(self).__name__}({', '.join(fields)})"
