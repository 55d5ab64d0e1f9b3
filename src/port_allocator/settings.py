from __future__ import annotations
import logging
from pydantic_settings import BaseSettings
from pydantic import Field
from urllib.parse import quote_plus, urlparse

logger = logging.getLogger("port-allocator")

class Settings(BaseSettings):
    # Prefer a full DATABASE_URL; or supply PG* parts and we'll build it.
    database_url: str | None = Field(default=None, alias="DATABASE_URL")

    pg_host: str | None = Field(default=None, alias="PGHOST")
    pg_port: int = Field(default=5432, alias="PGPORT")
    pg_user: str | None = Field(default=None, alias="PGUSER")
    pg_password: str | None = Field(default=None, alias="PGPASSWORD")
    pg_db: str | None = Field(default=None, alias="PGDATABASE")

    # Principal that passes every role check and may grant roles.
    contract_owner: str = Field(default="port-authority", alias="CONTRACT_OWNER")

    # Allocation tuning, all in logical-clock ticks unless noted.
    base_wait_time: int = Field(default=60, alias="BASE_WAIT_TIME")
    near_term_window: int = Field(default=144, alias="NEAR_TERM_WINDOW")
    max_container_weight: int = Field(default=30480, alias="MAX_CONTAINER_WEIGHT")  # kg
    max_equipment_units: int = Field(default=500, alias="MAX_EQUIPMENT_UNITS")
    clock_start: int = Field(default=0, alias="CLOCK_START")

    allow_origins: str = Field(default="*", alias="ALLOW_ORIGINS")

    model_config = {"env_file": ".env", "extra": "ignore", "populate_by_name": True}

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            parsed = urlparse(self.database_url)

            # Log parsed components (without password)
            logger.info(f"DB target → scheme={parsed.scheme} host={parsed.hostname} db={parsed.path.lstrip('/')}")
            logger.info("DB config source → DATABASE_URL")

            # Re-encode the password to handle special characters
            if parsed.password:
                encoded_password = quote_plus(parsed.password)
                port = f":{parsed.port}" if parsed.port else ""
                query = f"?{parsed.query}" if parsed.query else ""
                return f"{parsed.scheme}://{parsed.username}:{encoded_password}@{parsed.hostname}{port}{parsed.path}{query}"

            return self.database_url

        # Build from components if DATABASE_URL not provided
        if self.pg_host and self.pg_user and self.pg_password and self.pg_db:
            logger.info(f"DB target → user={self.pg_user} host={self.pg_host} port={self.pg_port} db={self.pg_db}")
            logger.info("DB config source → PG* environment variables")

            encoded_password = quote_plus(self.pg_password)
            encoded_user = quote_plus(self.pg_user)

            return (
                f"postgresql+psycopg://{encoded_user}:{encoded_password}"
                f"@{self.pg_host}:{self.pg_port}/{self.pg_db}?sslmode=require"
            )

        logger.info("DB config source → local SQLite fallback")
        return "sqlite:///./port_allocator.db"

    @property
    def origins(self) -> list[str]:
        return [o.strip() for o in self.allow_origins.split(",") if o.strip()] or ["*"]

settings = Settings()
