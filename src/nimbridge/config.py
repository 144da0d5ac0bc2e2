"""Configuration handling for the nimbridge proxy."""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

load_dotenv()

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config.yaml"

DEFAULT_MODEL_MAPPING = {
    "gpt-4": "meta/llama-3.3-70b-instruct",
    "gpt-4-turbo": "meta/llama-3.3-70b-instruct",
    "gpt-4o": "deepseek-ai/deepseek-v3.2",
    "claude-3.5-sonnet": "deepseek-ai/deepseek-v3.2",
    "gpt-3.5-turbo": "meta/llama-3.3-70b-instruct",
    "claude-3-sonnet": "meta/llama-3.3-70b-instruct",
    "o1-preview": "deepseek-ai/deepseek-r1",
    "o1-mini": "meta/llama-3.3-70b-instruct",
    "gemini-pro": "meta/llama-3.3-70b-instruct",
    "gpt-4o-mini": "meta/llama-3.3-70b-instruct",
}


class FallbackModels(BaseModel):
    """Backend ids used when a requested model has no mapping."""

    model_config = ConfigDict(frozen=True)

    large: str = "deepseek-ai/deepseek-v3.2"
    medium: str = "meta/llama-3.3-70b-instruct"
    small: str = "meta/llama-3.1-8b-instruct"


class ProxyConfig(BaseModel):
    """
    Process-wide proxy settings.

    Built once at startup and handed to every component explicitly; instances
    are frozen so request handlers can share one without coordination.
    """

    model_config = ConfigDict(frozen=True)

    api_base: str = "https://integrate.api.nvidia.com/v1"
    api_key: Optional[str] = None
    timeout: float = 300.0
    show_reasoning: bool = True
    enable_thinking_mode: bool = True
    model_mapping: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_MODEL_MAPPING)
    )
    fallback_models: FallbackModels = Field(default_factory=FallbackModels)
    reasoning_families: List[str] = Field(default_factory=lambda: ["deepseek"])
    min_reasoning_tokens: int = 16384
    default_max_tokens: int = 4096
    default_temperature: float = 0.6
    max_log_entries: int = 100
    host: str = "0.0.0.0"
    port: int = 3000


def load_config(path: Optional[Union[str, Path]] = None) -> ProxyConfig:
    """
    Load configuration from a config.yaml file and the environment.

    The file location defaults to NIMBRIDGE_CONFIG, then config.yaml at the
    project root. The credential always comes from NIM_API_KEY, and
    NIM_API_BASE / PORT override the file when set.
    """
    if path is None:
        path = os.environ.get("NIMBRIDGE_CONFIG") or DEFAULT_CONFIG_PATH

    settings = {}
    try:
        config_yaml = Path(path).read_text()
        settings = yaml.safe_load(config_yaml) or {}
        logger.info(f"Successfully loaded configuration from {path}")
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error loading {path}: {str(e)}")

    api_key = os.environ.get("NIM_API_KEY")
    if api_key:
        settings["api_key"] = api_key

    api_base = os.environ.get("NIM_API_BASE")
    if api_base:
        settings["api_base"] = api_base

    port = os.environ.get("PORT")
    if port:
        settings["port"] = int(port)

    if "api_base" in settings and not settings["api_base"]:
        settings.pop("api_base")
        logger.warning("Backend URL not set in config.yaml, using default value")

    return ProxyConfig(**settings)
