"""
Configuration Management for the Knowledge Extractor

Loads configuration from ~/.chatwork-knowledge/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import ConfigError

logger = logging.getLogger("extractor.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".chatwork-knowledge"
CONFIG_PATH = CONFIG_DIR / "config.json"
CACHE_DIR = CONFIG_DIR / "cache"
TEAM_PROFILES_PATH = CONFIG_DIR / "team-profiles.json"

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

# Symbol-only, filler and emoji-only messages. Skipped at any length.
DEFAULT_NOISE_PATTERNS = [
    r"^[!！?？。、,，.・…ー〜~\-_=*#\s]+$",
    r"^[wWｗＷ]+$",
    r"^(草)+$",
    r"^(笑)+$",
    r"^[\U0001F300-\U0001FAFF\u2600-\u27BF\u2B50\uFE0F\u200D\s]+$",
]

# Greetings, acknowledgements and short status updates.
# Only applied below FilterConfig.boilerplate_threshold.
DEFAULT_BOILERPLATE_PATTERNS = [
    r"^了解",
    r"^承知",
    r"^かしこまりました",
    r"^確認(します|しました|です)",
    r"^ok(?![a-z])",
    r"^ありがと",
    r"^お疲れ様",
    r"^おつかれ",
    r"^よろしくお願い",
    r"^おはようございます",
    r"^はい",
    r"^いいえ",
    r"^そうですね",
    r"^そうします",
    r"^(対応|作業)(中|完了)",
    r"^完了(です|しました)",
    r"^(thanks|thank you|understood|got it|noted|good morning|hello|hi)(?![a-z])",
]


@dataclass
class ChatworkConfig:
    """Chatwork API configuration"""
    api_token: str = ""
    room_ids: List[str] = field(default_factory=list)
    base_url: str = "https://api.chatwork.com/v2"
    timeout: float = 30.0


@dataclass
class LLMConfig:
    """LLM provider configuration"""
    provider: str = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = DEFAULT_MODEL
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash"

    @property
    def model(self) -> str:
        """Model id for the active provider"""
        if self.provider == "openai":
            return self.openai_model
        if self.provider == "google":
            return self.google_model
        return self.anthropic_model


@dataclass
class AnalyzerConfig:
    """Classification orchestrator configuration"""
    mode: str = "batch"  # "batch" or "realtime"
    max_tokens: int = 2048
    concurrency: int = 5
    poll_interval: float = 10.0
    soft_timeout: float = 3600.0  # warn once, keep polling
    max_wait: Optional[float] = None  # hard limit; None waits for the provider window


@dataclass
class FilterConfig:
    """Pre-classification message filter configuration"""
    min_length: int = 3
    max_length: int = 500
    boilerplate_threshold: int = 50
    noise_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_NOISE_PATTERNS))
    boilerplate_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_BOILERPLATE_PATTERNS))
    truncation_suffix: str = "…（以下省略）"


@dataclass
class SelectionPolicy:
    """Which analysis records are handed on as knowledge"""
    exclude_categories: List[str] = field(default_factory=lambda: ["excluded"])
    exclude_versatility: List[str] = field(default_factory=lambda: ["exclude"])


@dataclass
class ExtractorConfig:
    """Main extractor configuration"""
    chatwork: ChatworkConfig = field(default_factory=ChatworkConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    analyzer: AnalyzerConfig = field(default_factory=AnalyzerConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    selection: SelectionPolicy = field(default_factory=SelectionPolicy)
    cache_dir: str = str(CACHE_DIR)
    team_profiles_path: str = str(TEAM_PROFILES_PATH)
    extract_from: str = ""  # "YYYY-MM-DD" or a number of days
    debug: bool = False
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _split_ids(value) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [v.strip() for v in str(value or "").split(",") if v.strip()]


def _section(data: dict, name: str) -> dict:
    """A config-file section; null counts as absent"""
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{name}' must be an object, got {type(section).__name__}")
    return section


def _parse_chatwork_config(data: dict) -> ChatworkConfig:
    """Parse chatwork section from config dict"""
    chatwork_data = _section(data, "chatwork")
    return ChatworkConfig(
        api_token=chatwork_data.get("api_token", ""),
        room_ids=_split_ids(chatwork_data.get("room_ids", [])),
        base_url=chatwork_data.get("base_url", "https://api.chatwork.com/v2"),
        timeout=chatwork_data.get("timeout", 30.0),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = _section(data, "llm")
    return LLMConfig(
        provider=llm_data.get("provider", "anthropic"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", DEFAULT_MODEL),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4o-mini"),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", "gemini-2.0-flash"),
    )


def _parse_analyzer_config(data: dict) -> AnalyzerConfig:
    """Parse analyzer section from config dict"""
    analyzer_data = _section(data, "analyzer")
    return AnalyzerConfig(
        mode=analyzer_data.get("mode", "batch"),
        max_tokens=analyzer_data.get("max_tokens", 2048),
        concurrency=analyzer_data.get("concurrency", 5),
        poll_interval=analyzer_data.get("poll_interval", 10.0),
        soft_timeout=analyzer_data.get("soft_timeout", 3600.0),
        max_wait=analyzer_data.get("max_wait"),
    )


def _parse_filter_config(data: dict) -> FilterConfig:
    """Parse filter section from config dict"""
    filter_data = _section(data, "filter")
    return FilterConfig(
        min_length=filter_data.get("min_length", 3),
        max_length=filter_data.get("max_length", 500),
        boilerplate_threshold=filter_data.get("boilerplate_threshold", 50),
        noise_patterns=filter_data.get("noise_patterns", list(DEFAULT_NOISE_PATTERNS)),
        boilerplate_patterns=filter_data.get("boilerplate_patterns", list(DEFAULT_BOILERPLATE_PATTERNS)),
        truncation_suffix=filter_data.get("truncation_suffix", "…（以下省略）"),
    )


def _parse_selection_policy(data: dict) -> SelectionPolicy:
    """Parse selection section from config dict"""
    selection_data = _section(data, "selection")
    return SelectionPolicy(
        exclude_categories=selection_data.get("exclude_categories", ["excluded"]),
        exclude_versatility=selection_data.get("exclude_versatility", ["exclude"]),
    )


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str) -> int:
    value = os.getenv(name)
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def load_config() -> ExtractorConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.chatwork-knowledge/config.json)
    3. Default values
    """
    config = ExtractorConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ConfigError(f"Config file {CONFIG_PATH} must contain a JSON object")

            config.chatwork = _parse_chatwork_config(data)
            config.llm = _parse_llm_config(data)
            config.analyzer = _parse_analyzer_config(data)
            config.filter = _parse_filter_config(data)
            config.selection = _parse_selection_policy(data)
            config.cache_dir = data.get("cache_dir", str(CACHE_DIR))
            config.team_profiles_path = data.get("team_profiles_path", str(TEAM_PROFILES_PATH))
            config.extract_from = str(data.get("extract_from", ""))
            config.debug = bool(data.get("debug", False))
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file: %s", e)

    # Environment variable overrides
    if os.getenv("CHATWORK_API_TOKEN"):
        config.chatwork.api_token = os.getenv("CHATWORK_API_TOKEN")
        config._env_sourced_keys.add("chatwork_api_token")
    if os.getenv("CHATWORK_ROOM_ID"):
        config.chatwork.room_ids = _split_ids(os.getenv("CHATWORK_ROOM_ID"))

    _env_llm_map = {
        "CLAUDE_API_KEY": "anthropic_api_key",
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "EXTRACTOR_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    if os.getenv("ANALYSIS_MODE"):
        config.analyzer.mode = os.getenv("ANALYSIS_MODE").lower()
    if os.getenv("MAX_TOKENS"):
        config.analyzer.max_tokens = _env_int("MAX_TOKENS")

    # DAYS_TO_EXTRACT is the older spelling of EXTRACT_FROM
    extract_from = os.getenv("EXTRACT_FROM") or os.getenv("DAYS_TO_EXTRACT")
    if extract_from:
        config.extract_from = extract_from

    if os.getenv("CACHE_DIR"):
        config.cache_dir = os.getenv("CACHE_DIR")
    if os.getenv("TEAM_PROFILES_PATH"):
        config.team_profiles_path = os.getenv("TEAM_PROFILES_PATH")
    if os.getenv("DEBUG_MODE"):
        config.debug = _env_flag(os.getenv("DEBUG_MODE"))

    return config


def save_config(config: ExtractorConfig) -> None:
    """Save configuration to file.

    Secrets that were sourced from environment variables are written as
    empty strings so that they are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
    }
    for key in ("anthropic_api_key", "openai_api_key", "google_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "chatwork": {
            "api_token": "" if "chatwork_api_token" in env_sourced else config.chatwork.api_token,
            "room_ids": config.chatwork.room_ids,
            "base_url": config.chatwork.base_url,
            "timeout": config.chatwork.timeout,
        },
        "llm": llm_section,
        "analyzer": {
            "mode": config.analyzer.mode,
            "max_tokens": config.analyzer.max_tokens,
            "concurrency": config.analyzer.concurrency,
            "poll_interval": config.analyzer.poll_interval,
            "soft_timeout": config.analyzer.soft_timeout,
            "max_wait": config.analyzer.max_wait,
        },
        "filter": {
            "min_length": config.filter.min_length,
            "max_length": config.filter.max_length,
            "boilerplate_threshold": config.filter.boilerplate_threshold,
            "noise_patterns": config.filter.noise_patterns,
            "boilerplate_patterns": config.filter.boilerplate_patterns,
            "truncation_suffix": config.filter.truncation_suffix,
        },
        "selection": {
            "exclude_categories": config.selection.exclude_categories,
            "exclude_versatility": config.selection.exclude_versatility,
        },
        "cache_dir": config.cache_dir,
        "team_profiles_path": config.team_profiles_path,
        "extract_from": config.extract_from,
        "debug": config.debug,
    }

    with open(CONFIG_PATH, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories(config: Optional[ExtractorConfig] = None) -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    cache_dir = Path(config.cache_dir) if config else CACHE_DIR
    cache_dir.mkdir(parents=True, exist_ok=True)
