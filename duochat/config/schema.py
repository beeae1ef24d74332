"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict


class Base(BaseModel):
    """Base model that accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StoreConfig(Base):
    """Document store backend selection."""
    backend: Literal["memory", "file"] = "memory"
    path: str = "~/.duochat/store.json"  # Only used by the file backend
    write_retries: int = Field(default=5, ge=1)  # Replays of a write that lost to another process
    poll_interval: float = Field(default=0.5, gt=0)  # Seconds between checks for other processes' writes

    @property
    def store_path(self) -> Path:
        """Get expanded store file path."""
        return Path(self.path).expanduser()


class CollectionsConfig(Base):
    """Collection names of the persisted layout.

    Defaults match the documents written by the legacy client, so an
    existing database can be read without migration.
    """
    rooms: str = "ChatRooms"
    user_rooms: str = "UsersChat"
    messages: str = "messages"  # Nested under each room document


class RoomsConfig(Base):
    """Room lifecycle behaviour."""
    # Retract index entries when a room document is hard-removed.
    # Turn off to keep the legacy never-pruned index.
    prune_index_on_remove: bool = True


class LoggingConfig(Base):
    """Console / file logging."""
    level: str = "SUCCESS"
    log_file: Optional[str] = None
    verbose: bool = False
    rotation: str = "10 MB"
    retention: str = "1 week"


class Config(BaseSettings):
    """Root configuration for duochat."""
    store: StoreConfig = Field(default_factory=StoreConfig)
    collections: CollectionsConfig = Field(default_factory=CollectionsConfig)
    rooms: RoomsConfig = Field(default_factory=RoomsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="DUOCHAT_",
        env_nested_delimiter="__",
        populate_by_name=True,
    )
