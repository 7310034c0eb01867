"""Configuration settings and data models."""

import json
import os
import shutil
from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


class DebateConfig(BaseModel):
    """Debate loop pacing, budgets and timeouts."""

    max_turns: int = Field(default=40, description="Participant turns before voting")
    roster_size: int = Field(default=4, description="Models per debate")
    history_window: int = Field(
        default=10, description="Most recent turns included in argument prompts"
    )
    max_reply_words: int = Field(default=100, description="Word limit per reply")
    turn_delay_seconds: float = Field(
        default=4.0, description="Pause between turns to keep the cadence readable"
    )
    pause_poll_seconds: float = Field(
        default=10.0, description="Interval between pause flag checks"
    )
    first_token_timeout_seconds: float = Field(
        default=300.0, description="Seconds to wait for a model's first fragment"
    )
    content_flush_seconds: float = Field(
        default=1.0, description="Minimum interval between partial content writes"
    )
    max_skipped_turns: int = Field(
        default=3, description="Model timeouts tolerated before the debate errors out"
    )
    loop_iteration_multiplier: int = Field(
        default=3, description="Safety ceiling on loop iterations, as a multiple of max_turns"
    )
    stale_after_minutes: float = Field(
        default=15.0, description="Inactivity after which an active debate is stale"
    )

    @field_validator("roster_size")
    @classmethod
    def validate_roster_size(cls, v: int) -> int:
        if v < 2:
            raise ValueError("roster_size must be at least 2")
        return v


class OpenRouterConfig(BaseModel):
    """OpenRouter-specific configuration."""

    api_key: Optional[str] = Field(
        default=None, description="OpenRouter API key (can also be set via OPENROUTER_API_KEY env var)"
    )
    base_url: str = Field(
        default="https://openrouter.ai/api/v1", description="OpenRouter API base URL"
    )
    site_url: Optional[str] = Field(
        default=None, description="Your site URL for OpenRouter referrer tracking"
    )
    app_name: Optional[str] = Field(
        default="Debate Arena", description="App name for OpenRouter tracking"
    )
    timeout: float = Field(
        default=60.0, description="Deadline in seconds for the request to start streaming"
    )
    free_suffix: str = Field(
        default=":free", description="Model id suffix marking a free-tier variant"
    )

    def resolve_api_key(self) -> Optional[str]:
        return self.api_key or os.getenv("OPENROUTER_API_KEY")


class RelayConfig(BaseModel):
    """Streaming relay endpoint used in front of the gateway."""

    url: Optional[str] = Field(
        default=None, description="Relay endpoint URL; the gateway is called directly when unset"
    )
    timeout: float = Field(default=30.0, description="Relay request deadline in seconds")


class SystemConfig(BaseModel):
    """System-wide configuration."""

    database_path: str = Field(default="debates.db", description="SQLite database file")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    server_token: Optional[str] = Field(
        default=None, description="Shared bearer token (can also be set via SERVER_TOKEN env var)"
    )
    openrouter: OpenRouterConfig = Field(
        default_factory=OpenRouterConfig, description="OpenRouter-specific settings"
    )
    relay: RelayConfig = Field(
        default_factory=RelayConfig, description="Streaming relay settings"
    )

    def resolve_server_token(self) -> Optional[str]:
        return self.server_token or os.getenv("SERVER_TOKEN")


class CategoryPool(BaseModel):
    """Candidate models and topics for one debate category."""

    models: List[str]
    topics: List[str]
    split_halves: bool = Field(
        default=False,
        description="Draw half the roster from each half of the model list",
    )


class SchedulerConfig(BaseModel):
    """Pools the scheduler draws new debates from."""

    pools: Dict[str, CategoryPool] = Field(default_factory=dict)


class AppConfig(BaseModel):
    """Complete application configuration."""

    debate: DebateConfig
    system: SystemConfig
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    @classmethod
    def load_from_file(cls, config_path: Path) -> "AppConfig":
        """Load configuration from JSON file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        required_sections = ["debate", "system"]
        missing_sections = [
            section for section in required_sections if section not in data
        ]
        if missing_sections:
            raise ValueError(f"Missing required config sections: {missing_sections}")

        return cls(**data)

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(exclude_unset=True),
                f,
                default_flow_style=False,
                indent=2,
            )


def get_default_config() -> AppConfig:
    """Load default configuration from debate_config.json, creating it if needed."""
    config_path = Path(os.environ.get("DEBATE_CONFIG", "debate_config.json"))
    if not config_path.exists():
        # Auto-create from debate_config.example.json if it exists
        example_path = Path("debate_config.example.json")
        if example_path.exists():
            shutil.copy2(example_path, config_path)
        else:
            template_config = get_template_config()
            with open(config_path, "w", encoding="utf-8") as f:
                json.dump(template_config.model_dump(), f, indent=2)
    return AppConfig.load_from_file(config_path)


def get_template_config() -> AppConfig:
    """Get template configuration for config file generation."""
    return AppConfig(
        debate=DebateConfig(),
        system=SystemConfig(
            database_path="debates.db",
            log_level="INFO",
            server_token=None,  # Set SERVER_TOKEN in the environment instead
            openrouter=OpenRouterConfig(),
            relay=RelayConfig(),
        ),
        scheduler=SchedulerConfig(
            pools={
                "American v. Chinese": CategoryPool(
                    models=[
                        "openai/gpt-4.1",
                        "google/gemini-2.5-pro-preview",
                        "google/gemini-2.5-flash-preview",
                        "openai/chatgpt-4o-latest",
                        "anthropic/claude-3.7-sonnet",
                        "meta-llama/llama-4-maverick:free",
                        "qwen/qwen2.5-vl-32b-instruct:free",
                        "qwen/qwq-32b:free",
                        "deepseek/deepseek-chat:free",
                        "01-ai/yi-large",
                        "deepseek/deepseek-prover-v2:free",
                        "qwen/qwen3-30b-a3b:free",
                    ],
                    topics=[
                        "Who will reach AGI first, America or China?",
                        "Which country leads in AI safety research, America or China?",
                        "Is American or Chinese AI policy more effective?",
                    ],
                    split_halves=True,
                ),
                "Open Source Showdown": CategoryPool(
                    models=[
                        "meta-llama/llama-4-maverick:free",
                        "qwen/qwq-32b:free",
                        "deepseek/deepseek-chat:free",
                        "mistralai/mistral-small-3.1-24b-instruct:free",
                        "google/gemma-3-27b-it:free",
                    ],
                    topics=[
                        "Will open source or closed source AI dominate the future?",
                        "Are open source models safer than closed source models?",
                    ],
                ),
            }
        ),
    )
