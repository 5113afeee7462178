from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from trendwatcher.config import DEFAULT_EMAIL_SENDER, DEFAULT_SOURCES, LOOKBACK_HOURS, split_list


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    OPENAI_API_KEY: str = ""
    REDDIT_CLIENT_ID: str = ""
    REDDIT_CLIENT_SECRET: str = ""
    BREVO_API_KEY: str = ""
    EMAIL_SENDER: str = DEFAULT_EMAIL_SENDER
    EMAIL_RECIPIENTS: str = ""  # comma-separated
    SUBREDDITS: str = ",".join(DEFAULT_SOURCES)  # comma-separated
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""
    LOOKBACK_HOURS: int = LOOKBACK_HOURS

    @property
    def source_names(self) -> list[str]:
        return split_list(self.SUBREDDITS) or list(DEFAULT_SOURCES)

    @property
    def recipients(self) -> list[str]:
        return split_list(self.EMAIL_RECIPIENTS)

    @property
    def has_reddit_credentials(self) -> bool:
        return bool(self.REDDIT_CLIENT_ID and self.REDDIT_CLIENT_SECRET)

    @property
    def has_supabase(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_SERVICE_ROLE_KEY)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
