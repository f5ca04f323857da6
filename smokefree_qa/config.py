"""Configuration loader for the smoke-free regulations Q&A application."""

import os
import re
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

# GEMINI_API_KEY, GEMINI_API_KEY_1, GEMINI_API_KEY_2, ...
API_KEY_ENV_PATTERN = re.compile(r"^GEMINI_API_KEY(?:_(\d+))?$")
API_KEY_PLACEHOLDER = "YOUR_GEMINI_API_KEY_HERE"


class AppInfo(BaseModel):
    """Application metadata."""

    name: str = "금연구역 규정 Q&A"
    version: str = "1.0.0"
    language: str = "ko"


class ChunkingConfig(BaseModel):
    """Text chunking configuration (character based)."""

    chunk_size: int = 1000
    overlap: int = 150
    sentence_snap_ratio: float = 0.7


class RetrievalConfig(BaseModel):
    """Context selection configuration."""

    top_k: int = 5
    # None keeps zero-scored chunks eligible to fill top_k
    min_score: float | None = None


class GenerationConfig(BaseModel):
    """LLM generation configuration."""

    provider: str = "gemini"
    model: str = "gemini-2.5-flash"
    analysis_model: str = "gemini-2.5-flash"
    temperature: float = 0.2
    max_history_messages: int = 10


class QuotaConfig(BaseModel):
    """Per-key daily request quota and rotation settings."""

    max_per_day: int = 250
    max_consecutive_failures: int = 3
    key_prefix: str = "AIza"
    min_key_length: int = 20
    storage_key: str = "gemini_rpd_stats"


class RetryConfig(BaseModel):
    """Retry policy for outbound provider calls."""

    max_retries: int = 3
    base_delay_ms: int = 1000


class StorageConfig(BaseModel):
    """Storage paths configuration."""

    corpus_path: str = "./data/processed-pdfs.json"
    pdf_dir: str = "./data/pdf"
    sqlite_path: str = "./db/app.db"


class DefaultSource(BaseModel):
    """Inline source document used when no corpus can be loaded."""

    title: str
    content: str = ""


class AppConfig(BaseModel):
    """Root application configuration."""

    app: AppInfo = Field(default_factory=AppInfo)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    quota: QuotaConfig = Field(default_factory=QuotaConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    default_sources: list[DefaultSource] = Field(default_factory=list)

    # API keys loaded from environment
    gemini_api_keys: list[str] = Field(default_factory=list)


def load_api_keys(environ: dict[str, str] | None = None) -> list[str]:
    """Collect Gemini API keys from the environment.

    ``GEMINI_API_KEY`` comes first, followed by ``GEMINI_API_KEY_<n>`` in
    ascending numeric order. Blank values and the template placeholder are
    skipped, as are duplicates.

    Args:
        environ: Mapping to read from. Defaults to ``os.environ``.

    Returns:
        Ordered list of key strings (possibly empty).
    """
    env = os.environ if environ is None else environ

    found: list[tuple[int, str]] = []
    for name, value in env.items():
        match = API_KEY_ENV_PATTERN.match(name)
        if not match:
            continue
        order = int(match.group(1)) if match.group(1) else -1
        found.append((order, value.strip()))

    keys: list[str] = []
    for _, value in sorted(found):
        if value and value != API_KEY_PLACEHOLDER and value not in keys:
            keys.append(value)
    return keys


def load_config(config_path: str | Path = "config.yaml") -> AppConfig:
    """Load configuration from YAML file and environment variables.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Fully populated AppConfig instance.
    """
    load_dotenv()

    yaml_data: dict = {}
    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file, encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f) or {}

    config = AppConfig(**yaml_data)

    # Override API keys from environment
    config.gemini_api_keys = load_api_keys()

    return config
