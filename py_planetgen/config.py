"""Configuration management."""

import os
from pathlib import Path

from dotenv import dotenv_values
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env for local runs only where the environment does not already define a value
BASE_DIR = Path(__file__).resolve().parent.parent
env_file = BASE_DIR / ".env"

if env_file.exists():
    file_env = dotenv_values(env_file)
    for key, value in file_env.items():
        if key not in os.environ and value is not None:
            os.environ[key] = value


class Settings(BaseSettings):
    """Generator settings pulled from environment variables."""

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log renderer: json or console")

    # Generation defaults
    default_subdivisions: int = Field(default=20, description="Icosahedron subdivision degree")
    default_distortion_level: float = Field(
        default=1.0, description="Distortion level in [0, 1], mapped to an edge flip rate"
    )
    default_plate_count: int = Field(default=20, description="Number of tectonic plates")
    default_oceanic_rate: float = Field(default=0.7, description="Chance a plate is oceanic")
    default_heat_level: float = Field(default=1.0, description="Heat budget multiplier")
    default_moisture_level: float = Field(default=0.3, description="Moisture budget multiplier")
    max_subdivisions: int = Field(default=100, description="Largest accepted subdivision degree")

    class Config:
        env_file = ".env"
        env_prefix = "PLANETGEN_"


settings = Settings()
