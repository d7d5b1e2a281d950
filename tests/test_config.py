"""Tests for gotcha configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from gotcha.config import (
    DEFAULT_MODEL,
    DEFAULT_SYSTEM_PROMPT,
    REASONING_PRESETS,
    AppConfig,
    LLMSettings,
    find_preset,
    load_config,
)


@pytest.fixture
def workdir(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    clean_env.chdir(tmp_path)
    clean_env.setattr("gotcha.config._SEARCH_PATHS", [tmp_path / "gotcha.yaml"])
    return tmp_path


class TestDefaults:
    def test_llm_settings(self):
        s = LLMSettings()
        assert s.model == DEFAULT_MODEL == "gpt-5-mini-2025-08-07"
        assert s.base_url == "https://api.openai.com"
        assert s.max_tokens == 1500
        assert s.temperature == 0.2
        assert s.timeout == 60

    def test_app_config(self):
        cfg = AppConfig()
        assert cfg.app_name == "gotcha"
        assert cfg.reasoning_effort == "low"
        assert cfg.web_search
        assert cfg.system_prompt() == DEFAULT_SYSTEM_PROMPT

    def test_no_file(self, workdir: Path):
        cfg = load_config()
        assert cfg.llm.model == DEFAULT_MODEL
        assert cfg.llm.api_key == ""
        assert cfg.proxy_url == ""

    def test_missing_explicit_path_uses_defaults(self, workdir: Path):
        cfg = load_config(workdir / "nope.yaml")
        assert cfg.llm.max_tokens == 1500


class TestYaml:
    def test_values_loaded(self, workdir: Path):
        (workdir / "gotcha.yaml").write_text(yaml.dump({
            "app_name": "ask",
            "llm": {"model": "gpt-4o", "max_tokens": 800, "temperature": 0.5},
            "reasoning_effort": "high",
            "web_search": False,
        }))
        cfg = load_config()
        assert cfg.app_name == "ask"
        assert cfg.llm.model == "gpt-4o"
        assert cfg.llm.max_tokens == 800
        assert cfg.llm.temperature == 0.5
        assert cfg.llm.base_url == "https://api.openai.com"
        assert cfg.reasoning_effort == "high"
        assert not cfg.web_search

    def test_empty_file(self, workdir: Path):
        path = workdir / "empty.yaml"
        path.write_text("")
        cfg = load_config(path)
        assert cfg.llm.model == DEFAULT_MODEL


class TestEnvironment:
    def test_env_overrides_yaml(self, workdir: Path, clean_env: pytest.MonkeyPatch):
        (workdir / "gotcha.yaml").write_text(yaml.dump({"llm": {"model": "from-yaml"}}))
        clean_env.setenv("LLM_MODEL", "from-env")
        clean_env.setenv("OPENAI_API_KEY", "sk-env")
        clean_env.setenv("OPENAI_BASE_URL", "https://proxy.local")
        clean_env.setenv("LLM_MAX_TOKENS", "42")
        clean_env.setenv("LLM_TEMPERATURE", "0.9")
        clean_env.setenv("GOTCHA_APP_NAME", "renamed")

        cfg = load_config()

        assert cfg.llm.model == "from-env"
        assert cfg.llm.api_key == "sk-env"
        assert cfg.llm.base_url == "https://proxy.local"
        assert cfg.llm.max_tokens == 42
        assert cfg.llm.temperature == 0.9
        assert cfg.app_name == "renamed"

    def test_bad_numbers_keep_defaults(self, workdir: Path, clean_env: pytest.MonkeyPatch):
        clean_env.setenv("LLM_MAX_TOKENS", "lots")
        clean_env.setenv("LLM_TEMPERATURE", "warm")
        cfg = load_config()
        assert cfg.llm.max_tokens == 1500
        assert cfg.llm.temperature == 0.2

    def test_proxy_order(self, workdir: Path, clean_env: pytest.MonkeyPatch):
        clean_env.setenv("ALL_PROXY", "http://all:1")
        clean_env.setenv("HTTPS_PROXY", "http://https:1")
        assert load_config().proxy_url == "http://https:1"

        clean_env.setenv("PROXY_URL", "http://explicit:1")
        assert load_config().proxy_url == "http://explicit:1"

    def test_dotenv_loaded_without_overriding(
        self, workdir: Path, clean_env: pytest.MonkeyPatch,
    ):
        (workdir / ".env").write_text("OPENAI_API_KEY=sk-dotenv\nLLM_MODEL=dotenv-model\n")
        clean_env.setenv("LLM_MODEL", "shell-model")
        # Registered so monkeypatch removes what load_dotenv sets
        clean_env.setenv("OPENAI_API_KEY", "placeholder")
        clean_env.delenv("OPENAI_API_KEY")

        cfg = load_config()

        assert cfg.llm.api_key == "sk-dotenv"
        assert cfg.llm.model == "shell-model"

    def test_dotenv_disabled(self, workdir: Path):
        (workdir / ".env").write_text("OPENAI_API_KEY=sk-dotenv\n")
        cfg = load_config(dotenv_path=None)
        assert cfg.llm.api_key == ""


class TestPrompt:
    def test_prompt_file(self, tmp_path: Path):
        path = tmp_path / "prompt.txt"
        path.write_text("  Be brief.  \n")
        assert AppConfig(prompt_path=str(path)).system_prompt() == "Be brief."

    def test_unreadable_prompt_falls_back(self, tmp_path: Path):
        cfg = AppConfig(prompt_path=str(tmp_path / "missing.txt"))
        assert cfg.system_prompt() == DEFAULT_SYSTEM_PROMPT


class TestPresets:
    def test_levels(self):
        assert [p.name for p in REASONING_PRESETS] == ["minimal", "low", "medium", "high"]
        assert find_preset("minimal").effort == ""

    def test_lookup_is_case_insensitive(self):
        assert find_preset(" HIGH ").effort == "high"
        assert find_preset("extreme") is None
