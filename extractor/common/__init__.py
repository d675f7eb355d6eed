"""
Extractor Common Module

Shared infrastructure for the cache, analyzer and pipeline layers.
"""

from .config import ExtractorConfig, load_config
from .errors import ExtractorError
from .llm_client import LLMClient
from .team_profiles import TeamProfiles

__all__ = [
    "ExtractorConfig",
    "load_config",
    "ExtractorError",
    "LLMClient",
    "TeamProfiles",
]
