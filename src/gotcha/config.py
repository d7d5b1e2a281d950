"""Configuration for gotcha.

Config discovery (first match wins):
  1. ``--config`` flag
  2. ``./gotcha.yaml``
  3. ``~/.config/gotcha/config.yaml``
  4. Built-in defaults

Environment variables (optionally loaded from ``./.env``) override
whatever the YAML file says.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-5-mini-2025-08-07"
DEFAULT_BASE_URL = "https://api.openai.com"

# Checked in order; the first non-empty value becomes the outbound proxy.
_PROXY_ENV_VARS = (
    "PROXY_URL",
    "HTTPS_PROXY",
    "https_proxy",
    "HTTP_PROXY",
    "http_proxy",
    "ALL_PROXY",
    "all_proxy",
)


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class ReasoningPreset:
    """A selectable reasoning level shown by ``/model``."""

    name: str
    description: str
    effort: str  # "" means the provider default (minimal)


REASONING_PRESETS: list[ReasoningPreset] = [
    ReasoningPreset("minimal", "fastest responses with limited reasoning", ""),
    ReasoningPreset("low", "balances speed with some reasoning", "low"),
    ReasoningPreset(
        "medium", "provides a solid balance of reasoning depth and latency", "medium",
    ),
    ReasoningPreset(
        "high", "maximizes reasoning depth for complex or ambiguous problems", "high",
    ),
]


def find_preset(name: str) -> ReasoningPreset | None:
    name = name.strip().lower()
    for preset in REASONING_PRESETS:
        if preset.name == name:
            return preset
    return None


@dataclass
class LLMSettings:
    """Model provider settings."""

    provider: str = "openai"
    model: str = DEFAULT_MODEL
    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    max_tokens: int = 1500
    temperature: float = 0.2
    timeout: float = 60


@dataclass
class AppConfig:
    """Top-level config for gotcha."""

    app_name: str = "gotcha"
    llm: LLMSettings = field(default_factory=LLMSettings)
    proxy_url: str = ""
    prompt_path: str = ""
    reasoning_effort: str = "low"
    reasoning_summary: str = "auto"
    web_search: bool = True
    history_path: str = "~/.config/gotcha/history"

    def system_prompt(self) -> str:
        """Return the system prompt, read from ``prompt_path`` if set."""
        if self.prompt_path:
            path = Path(self.prompt_path).expanduser()
            try:
                text = path.read_text(encoding="utf-8").strip()
            except OSError as e:
                _logger.warning("Cannot read prompt file %s: %s", path, e)
            else:
                if text:
                    return text
        return DEFAULT_SYSTEM_PROMPT


DEFAULT_SYSTEM_PROMPT = """\
You are an AI assistant helping users through a terminal interface.

Role & Capabilities
- Help with various tasks, answer questions, and provide information
- You have access to web search and reasoning capabilities

When to Search the Web
- Current events, recent developments, or time-sensitive information
- Verifying facts, statistics, or specific claims
- The user explicitly asks you to search or "look up" something

When to Think/Reason
- The user explicitly requests thinking (think, analyze, etc.)
- Complex problems requiring multi-step analysis or trade-offs

Do NOT think for simple greetings or basic factual questions.

Response Style
- Keep replies concise and high-signal
- Use bullet points and short paragraphs
- Include citations when presenting web-sourced information

When thinking, write natural thoughts without special formatting or
meta-commentary."""


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./gotcha.yaml"),
    Path.home() / ".config" / "gotcha" / "config.yaml",
]


def _env_or(key: str, default: str) -> str:
    return os.environ.get(key) or default


def _int_env_or(key: str, default: int) -> int:
    value = os.environ.get(key)
    if value:
        try:
            return int(value)
        except ValueError:
            _logger.warning("Ignoring non-integer %s=%r", key, value)
    return default


def _float_env_or(key: str, default: float) -> float:
    value = os.environ.get(key)
    if value:
        try:
            return float(value)
        except ValueError:
            _logger.warning("Ignoring non-numeric %s=%r", key, value)
    return default


def _first_env(*keys: str) -> str:
    for key in keys:
        value = os.environ.get(key)
        if value:
            return value
    return ""


def _parse_llm(raw: dict[str, Any] | None) -> LLMSettings:
    if not raw:
        return LLMSettings()
    base = LLMSettings()
    return LLMSettings(
        provider=raw.get("provider", base.provider),
        model=raw.get("model", base.model),
        api_key=raw.get("api_key", base.api_key),
        base_url=raw.get("base_url", base.base_url),
        max_tokens=int(raw.get("max_tokens", base.max_tokens)),
        temperature=float(raw.get("temperature", base.temperature)),
        timeout=float(raw.get("timeout", base.timeout)),
    )


def _apply_env(config: AppConfig) -> AppConfig:
    llm = config.llm
    config.app_name = _env_or("GOTCHA_APP_NAME", config.app_name)
    llm.provider = _env_or("LLM_PROVIDER", llm.provider)
    llm.model = _env_or("LLM_MODEL", llm.model)
    llm.api_key = _env_or("OPENAI_API_KEY", llm.api_key)
    llm.base_url = _env_or("OPENAI_BASE_URL", llm.base_url)
    llm.max_tokens = _int_env_or("LLM_MAX_TOKENS", llm.max_tokens)
    llm.temperature = _float_env_or("LLM_TEMPERATURE", llm.temperature)
    config.proxy_url = _first_env(*_PROXY_ENV_VARS) or config.proxy_url
    return config


def load_config(
    path: str | Path | None = None,
    *,
    dotenv_path: str | Path | None = ".env",
) -> AppConfig:
    """Load configuration from YAML, ``.env`` and the environment.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.
    dotenv_path:
        ``.env`` file to load into the environment first (existing
        variables win).  *None* disables it.

    Returns
    -------
    AppConfig
    """
    if dotenv_path is not None and Path(dotenv_path).exists():
        load_dotenv(dotenv_path, override=False)

    config_path: Path | None = None
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s — using defaults", path)
            config_path = None
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found — using defaults")
        return _apply_env(AppConfig())

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    defaults = AppConfig()
    config = AppConfig(
        app_name=raw.get("app_name", defaults.app_name),
        llm=_parse_llm(raw.get("llm")),
        proxy_url=raw.get("proxy_url", defaults.proxy_url) or "",
        prompt_path=raw.get("prompt_path", defaults.prompt_path) or "",
        reasoning_effort=raw.get("reasoning_effort", defaults.reasoning_effort),
        reasoning_summary=raw.get("reasoning_summary", defaults.reasoning_summary),
        web_search=bool(raw.get("web_search", defaults.web_search)),
        history_path=raw.get("history_path", defaults.history_path),
    )
    return _apply_env(config)
