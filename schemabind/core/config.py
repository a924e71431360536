from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    SQL_ECHO: bool = False
    POOL_PRE_PING: bool = True

    SCHEMA_SUFFIX: str = ".json"
    CUSTOMIZATION_SUFFIX: str = ".py"
    CUSTOMIZATION_ENTRYPOINT: str = "customize"

    # SCHEMABIND_SQL_ECHO=1 and friends, from the environment or a local .env
    model_config = SettingsConfigDict(
        env_prefix="SCHEMABIND_", env_file=".env", extra="ignore"
    )


# Process-wide defaults; a connector profile overrides them per data source
settings = Settings()
