from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices
from typing import Optional


class Settings(BaseSettings):
    """Service configuration using Pydantic v2 settings.

    - Reads environment from APP_ENV or ENVIRONMENT
    - Comma-separated lists for CORS origins and exposed tables
    - Ignores unknown env keys
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "DataTables SSP API"
    environment: str = Field(default="dev", validation_alias=AliasChoices("APP_ENV", "ENVIRONMENT"))
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL"))

    # CORS (comma-separated string)
    cors_origins: str = Field(default="http://localhost:3000,http://127.0.0.1:3000")

    # Database served by the HTTP API
    database_url: str = Field(default="sqlite:///.data/datatables.sqlite", validation_alias=AliasChoices("DATABASE_URL"))
    database_schema: Optional[str] = Field(default=None, validation_alias=AliasChoices("DATABASE_SCHEMA"))

    # Tables reachable through /api/tables/{table}; "*" exposes every table
    exposed_tables: str = Field(default="", validation_alias=AliasChoices("DATATABLES_TABLES"))

    # Column treated as primary key when the caller does not name one
    primary_key: str = Field(default="id", validation_alias=AliasChoices("DATATABLES_PRIMARY_KEY"))
    # Keyed-object rows (DT_RowId/DT_RowClass) instead of positional arrays
    return_as_object: bool = Field(default=False, validation_alias=AliasChoices("DATATABLES_RETURN_AS_OBJECT"))

    @property
    def cors_origins_list(self) -> list[str]:
        return [x.strip() for x in str(self.cors_origins).split(",") if x.strip()]

    @property
    def exposed_tables_list(self) -> list[str]:
        return [x.strip() for x in str(self.exposed_tables).split(",") if x.strip()]


settings = Settings()
