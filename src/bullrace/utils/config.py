"""
Global configurations
"""

import logging
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Self

import anyio
from pydantic import BaseModel, Field, ValidationError

from bullrace.utils.logging import generate_default_config

DEFAULT_CONFIG_FILE = Path("config.json")


_logger = logging.getLogger(__name__)


class _WebserverConfig(BaseModel):
    host: str = "localhost"
    http_port: int = 5000


class _GeneralConfig(BaseModel):
    last_modified_time: datetime = Field(default_factory=datetime.now)


class _DatabaseConfig(BaseModel):
    engine: str = "tortoise.backends.sqlite"
    credentials: dict = Field(
        default_factory=partial(dict, (("file_path", "bullrace.db"),))
    )


class _RaceConfig(BaseModel):
    tick_interval_ms: int = Field(default=10, gt=0)
    """Sampling interval of the race clock"""
    distance_tolerance_m: float = Field(default=0.01, ge=0)
    """Distance difference treated as equal when ranking"""


class BullRaceConfig(BaseModel):
    """
    The server configs
    """

    webserver: _WebserverConfig = Field(default_factory=_WebserverConfig)
    general: _GeneralConfig = Field(default_factory=_GeneralConfig)
    database: _DatabaseConfig = Field(default_factory=_DatabaseConfig)
    race: _RaceConfig = Field(default_factory=_RaceConfig)
    logging: dict = Field(default_factory=generate_default_config)

    @classmethod
    def from_file(cls, filepath: Path) -> Self:
        """
        Loads a config from a filepath

        :param filepath: The filepath to load the config from
        """
        try:
            with filepath.open("rb") as file:
                return cls.model_validate_json(file.read())

        except ValidationError:
            _logger.error("Invalid server config file. Using defaults.")
            return cls()

        except FileNotFoundError:
            _logger.info("Config file not found. Loading defaults")
            return cls()

    def write_config_to_file(self, filepath: Path) -> None:
        """
        Writes the current config to a file

        :param filepath: The filepath to save the config to
        """
        self.general.last_modified_time = datetime.now()

        with filepath.open("w", encoding="utf-8") as file:
            file.write(self.model_dump_json(indent=4))

    async def write_config_to_file_async(self, filepath: Path) -> None:
        """
        Writes the current config to a file

        :param filepath: The filepath to save the config to
        """
        self.general.last_modified_time = datetime.now()

        async with await anyio.open_file(filepath, "w", encoding="utf-8") as file:
            await file.write(self.model_dump_json(indent=4))
