"""Configuration settings and data models."""

import json
import shutil
from typing import Literal

from pydantic import BaseModel, Field, field_validator
import yaml
from pathlib import Path

YAML_SUFFIXES = (".yaml", ".yml")


class DialogueConfig(BaseModel):
    """Limits applied to every dialogue session."""

    max_turns: int = Field(default=5, ge=1, description="Turns available to each actor")
    max_challenges: int = Field(
        default=15, ge=0, description="Challenge moves available to each actor"
    )
    max_rebuttals: int = Field(
        default=5, ge=0, description="Rebuttal moves available to each actor"
    )
    turn_seconds: float = Field(
        default=90.0, description="Seconds per turn before it is skipped (0 disables)"
    )
    timer_tick_seconds: float = Field(
        default=1.0, gt=0, description="Countdown resolution in seconds"
    )


class StoreConfig(BaseModel):
    """Content store and rebuttal sink configuration."""

    provider: str = Field(default="http", description="Store provider (http, memory)")
    base_url: str = Field(
        default="http://localhost:8081/api", description="Argument backend API base URL"
    )
    timeout: float = Field(default=10.0, description="Request timeout in seconds")
    max_retries: int = Field(
        default=2, ge=0, description="Retries for transport failures and 5xx responses"
    )
    seed_file: str | None = Field(
        default=None, description="YAML seed file for the memory store"
    )

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        valid_providers = {"http", "memory"}
        if v not in valid_providers:
            raise ValueError(f"Provider must be one of: {valid_providers}")
        return v


class SystemConfig(BaseModel):
    """System-wide configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    host: str = Field(default="0.0.0.0", description="Interface the web server binds")
    port: int = Field(default=8000, ge=1, le=65535)


class AppConfig(BaseModel):
    """Complete application configuration."""

    dialogue: DialogueConfig
    store: StoreConfig
    system: SystemConfig

    @classmethod
    def load_from_file(cls, config_path: Path) -> "AppConfig":
        """Load configuration from a JSON or YAML file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            if config_path.suffix in YAML_SUFFIXES:
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)

        # Validate required sections
        required_sections = ["dialogue", "store", "system"]
        missing_sections = [
            section for section in required_sections if section not in data
        ]
        if missing_sections:
            raise ValueError(f"Missing required config sections: {missing_sections}")

        return cls(**data)

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration as YAML or JSON, chosen by the file suffix."""
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(mode="json")
        with open(config_path, "w", encoding="utf-8") as f:
            if config_path.suffix in YAML_SUFFIXES:
                yaml.dump(data, f, default_flow_style=False, indent=2)
            else:
                json.dump(data, f, indent=2)


def get_default_config(config_path: Path = Path("dialogue_config.json")) -> AppConfig:
    """Load default configuration from dialogue_config.json, creating it if needed."""
    if not config_path.exists():
        # Auto-create from dialogue_config.example.json if it exists
        example_path = config_path.with_name("dialogue_config.example.json")
        if example_path.exists():
            shutil.copy2(example_path, config_path)
        else:
            # Fallback to template config
            get_template_config().save_to_file(config_path)
    return AppConfig.load_from_file(config_path)


def get_template_config() -> AppConfig:
    """Get template configuration for config file generation."""
    return AppConfig(
        dialogue=DialogueConfig(
            max_turns=5,
            max_challenges=15,
            max_rebuttals=5,
            turn_seconds=90.0,
            timer_tick_seconds=1.0,
        ),
        store=StoreConfig(
            provider="memory",
            base_url="http://localhost:8081/api",
            timeout=10.0,
            max_retries=2,
            seed_file="data/sample_topics.yaml",
        ),
        system=SystemConfig(
            log_level="INFO",
            host="0.0.0.0",
            port=8000,
        ),
    )
