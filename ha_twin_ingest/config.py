from functools import lru_cache

from pydantic_settings import BaseSettings

from ha_twin_ingest.errors import ConfigurationError


class Settings(BaseSettings):
    # Azure Digital Twins endpoint, e.g. https://my-adt.api.neu.digitaltwins.azure.net
    ADT_INSTANCE_URL: str = ""

    # Logging
    DEBUG: bool = False

    class Config:
        env_file = ".env"
        extra = "ignore"

    def require_adt_instance_url(self) -> str:
        url = self.ADT_INSTANCE_URL.strip()
        if not url:
            raise ConfigurationError(
                "CRITICAL: Required setting 'ADT_INSTANCE_URL' is missing or empty"
            )
        return url


@lru_cache
def get_settings() -> Settings:
    return Settings()
