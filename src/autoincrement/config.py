from pydantic_settings import BaseSettings


class Config(BaseSettings):
    """Configuration loaded from environment variables."""

    database_url: str  # e.g. mongodb://127.0.0.1/autoincrement
    debug: bool = False
    counters_collection: str = "identitycounters"  # Collection holding one record per (model, field)

    model_config = {
        "env_file": [".env"],
        "env_prefix": "AUTOINCREMENT_",
        "extra": "ignore",
    }
