#!/usr/bin/env python3
"""
Configuration management for ChatLens.

Uses YAML for human-readable defaults with Pydantic for validation.
Environment variables can override any setting.
"""

import os
from pathlib import Path
from typing import Optional
from pydantic import BaseModel
import yaml


ENV_PREFIX = "CHATLENS_"


class ProviderConfig(BaseModel):
    """One OpenAI-compatible chat-completions endpoint."""
    base_url: str
    model: str
    api_key_env: str
    temperature: float = 0.3
    max_tokens: int = 8192
    timeout_seconds: int = 120


class ProvidersConfig(BaseModel):
    """Provider per pipeline stage."""
    classification: ProviderConfig
    summarization: ProviderConfig
    deep_analysis: ProviderConfig
    simple_analysis: ProviderConfig


class SegmentationConfig(BaseModel):
    """Session segmenter batch sizes."""
    target_size: int = 2000
    max_size: int = 2200


class RetryConfig(BaseModel):
    """Retry policy for classification and summarization calls."""
    attempts: int = 3
    rate_limit_wait_seconds: float = 5.0
    retry_wait_seconds: float = 1.0


class PipelineConfig(BaseModel):
    """Pacing and sampling for the orchestrator."""
    classification_spacing_seconds: float = 1.0
    summary_cooldown_seconds: float = 60.0
    deep_analysis_spacing_seconds: float = 60.0
    medium_prompt_limit: int = 500
    medium_candidate_limit: int = 300
    simple_recent_sample: int = 200
    simple_history_sample: int = 50
    max_insights: int = 6


class BudgetConfig(BaseModel):
    """Token budget for one deep-analysis call."""
    total_tokens: int = 150000
    medium_cap_tokens: int = 20000
    chars_per_token: float = 2.5


class ServerConfig(BaseModel):
    """HTTP server settings."""
    host: str = "127.0.0.1"
    port: int = 8000


class RelationshipConfig(BaseModel):
    """Defaults applied when a request leaves relationship fields blank."""
    default_type: str = "연인"


class AppConfig(BaseModel):
    """Main application configuration."""
    providers: ProvidersConfig
    segmentation: SegmentationConfig
    retry: RetryConfig
    pipeline: PipelineConfig
    budget: BudgetConfig
    server: ServerConfig
    relationship: RelationshipConfig = RelationshipConfig()
    debug_dir: Optional[str] = None

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to config.yaml (defaults to ./config.yaml)

        Returns:
            Validated AppConfig instance
        """
        if config_path is None:
            config_path = Path(__file__).parent / "config.yaml"

        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create config.yaml in the project root."
            )

        with open(config_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        # Format: CHATLENS_PIPELINE_SUMMARY_COOLDOWN_SECONDS=0
        data = cls._apply_env_overrides(data, os.environ)

        return cls(**data)

    @staticmethod
    def _apply_env_overrides(data: dict, environ) -> dict:
        """
        Apply environment variable overrides.

        Environment variable format: CHATLENS_SECTION_SUBSECTION_KEY
        Examples:
            CHATLENS_BUDGET_TOTAL_TOKENS=120000
            CHATLENS_PROVIDERS_DEEP_ANALYSIS_MODEL=anthropic/claude-sonnet-4

        Key names may contain underscores, so each level matches the
        longest existing key that prefixes the remaining parts.
        """
        for key, value in environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            parts = key[len(ENV_PREFIX):].lower().split("_")
            current = data
            while parts:
                if not isinstance(current, dict):
                    break
                for size in range(len(parts), 0, -1):
                    candidate = "_".join(parts[:size])
                    if candidate in current:
                        break
                else:
                    break

                parts = parts[size:]
                if parts:
                    current = current[candidate]
                    continue

                original_value = current[candidate]
                if isinstance(original_value, dict):
                    break
                if isinstance(original_value, bool):
                    current[candidate] = value.lower() in ('true', '1', 'yes')
                elif isinstance(original_value, int):
                    current[candidate] = int(value)
                elif isinstance(original_value, float):
                    current[candidate] = float(value)
                else:
                    current[candidate] = value

        return data


# Singleton instance - load once at module import
try:
    config = AppConfig.load()
except FileNotFoundError as e:
    print(f"ERROR: {e}")
    print("Run ChatLens from the project root directory.")
    raise
