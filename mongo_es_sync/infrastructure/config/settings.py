"""Pydantic settings for mongo-es-sync.toml configuration."""

import os
import tomllib
from pathlib import Path
from typing import Any

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator

from ...domain.errors import ConfigurationError
from ...domain.models.mapping import CollectionMapping
DEFAULT_CONFIG_PATH = "mongo-es-sync.toml"


def _load_dotenv() -> None:
    # nearest .env from the working directory upwards; set variables win
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path, override=False)


class MongoSettings(BaseModel):
    """MongoDB connection settings."""

    url: str = "mongodb://localhost:27017"
    database: str = "test"
    resume_token_collection: str | None = None  # Store resume tokens in this collection instead of files

    def __init__(self, **data: Any) -> None:
        """Initialize with environment variable precedence."""
        _load_dotenv()

        # Environment variables take precedence over TOML values
        env_url = os.getenv("MONGO_URL")
        if env_url is not None:
            data["url"] = env_url

        env_database = os.getenv("MONGO_DATABASE")
        if env_database is not None:
            data["database"] = env_database

        super().__init__(**data)


class ElasticsearchSettings(BaseModel):
    """Elasticsearch connection settings."""

    url: str = "http://localhost:9200"
    api_key: str = ""
    bulk_size: int = Field(default=500, ge=1)
    request_timeout: float = 30.0

    def __init__(self, **data: Any) -> None:
        """Initialize with environment variable precedence."""
        _load_dotenv()

        env_url = os.getenv("ELASTICSEARCH_URL")
        if env_url is not None:
            data["url"] = env_url

        env_api_key = os.getenv("ELASTICSEARCH_API_KEY")
        if env_api_key is not None:
            data["api_key"] = env_api_key
        elif "api_key" not in data:
            data["api_key"] = ""

        super().__init__(**data)


class CheckpointSettings(BaseModel):
    """Checkpoint file locations."""

    dump_progress_path: Path = Path("dumpProgress.json")
    resume_token_dir: Path = Path("resumeTokens")

    @field_validator("dump_progress_path", "resume_token_dir", mode="before")
    @classmethod
    def validate_path(cls, v: Any) -> Path:
        """Convert string to Path."""
        if isinstance(v, str):
            return Path(v)
        return v


class CollectionSettings(BaseModel):
    """Index mapping for one replicated collection."""

    index: str | None = None  # Defaults to the collection name
    type: str | None = None
    parent_id: str | None = None

    def to_mapping(self, collection: str) -> CollectionMapping:
        return CollectionMapping(
            index=self.index or collection,
            doc_type=self.type,
            parent_field=self.parent_id,
        )


class Settings(BaseModel):
    """Main settings loaded from mongo-es-sync.toml."""

    mongo: MongoSettings = Field(default_factory=MongoSettings)
    elasticsearch: ElasticsearchSettings = Field(default_factory=ElasticsearchSettings)
    checkpoints: CheckpointSettings = Field(default_factory=CheckpointSettings)
    collections: dict[str, CollectionSettings] = Field(default_factory=dict)

    @classmethod
    def from_toml(cls, toml_path: Path | str | None = None) -> "Settings":
        """
        Load settings from a TOML file with environment variable precedence.

        Environment variables (system env > .env file) override TOML values.

        Args:
            toml_path: Path to the TOML file (default: $MONGO_ES_SYNC_CONFIG or mongo-es-sync.toml)

        Returns:
            Settings instance with loaded configuration

        Raises:
            ConfigurationError: If the file cannot be parsed
        """
        _load_dotenv()

        toml_path = Path(toml_path or os.getenv("MONGO_ES_SYNC_CONFIG") or DEFAULT_CONFIG_PATH)

        if not toml_path.exists():
            # Return defaults if file doesn't exist
            return cls()

        try:
            with toml_path.open("rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {toml_path}: {e}") from e

        collections: dict[str, CollectionSettings] = {}
        for name, collection_data in data.get("collections", {}).items():
            if isinstance(collection_data, dict):
                collections[name] = CollectionSettings(**collection_data)

        return cls(
            mongo=MongoSettings(**data.get("mongo", {})),
            elasticsearch=ElasticsearchSettings(**data.get("elasticsearch", {})),
            checkpoints=CheckpointSettings(**data.get("checkpoints", {})),
            collections=collections,
        )

    def collection_names(self) -> list[str]:
        return list(self.collections)

    def get_collection(self, name: str) -> CollectionSettings:
        """
        Get collection settings by name.

        Raises:
            ConfigurationError: If collection not configured
        """
        if name not in self.collections:
            available = ", ".join(self.collections.keys())
            raise ConfigurationError(
                f"Collection '{name}' not configured",
                hint=f"Available collections: {available}",
            )
        return self.collections[name]

    def collection_mappings(self) -> dict[str, CollectionMapping]:
        return {name: collection.to_mapping(name) for name, collection in self.collections.items()}
