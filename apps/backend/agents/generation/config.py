"""
Configuration management for the storyline engine.

Centralized configuration with:
- Environment variable support (.env loaded through python-dotenv)
- Validation
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Any

from dotenv import load_dotenv

from config.rate_limits import REGENERATION_BACKOFF, USAGE_PROFILES
from agents.generation.exceptions import ConfigurationError

load_dotenv()


def _backoff_value(key: str) -> Any:
    profile = USAGE_PROFILES.get(os.getenv('REGENERATION_BACKOFF_PROFILE', 'balanced'), REGENERATION_BACKOFF)
    return profile.get(key, REGENERATION_BACKOFF[key])


@dataclass
class AgentServiceConfig:
    """External agent service configuration"""
    base_url: str = field(default_factory=lambda: os.getenv('AI_API_BASE_URL', 'http://localhost:8080'))
    api_key: str = field(default_factory=lambda: os.getenv('AI_API_KEY', ''))
    slide_agent_id: str = field(default_factory=lambda: os.getenv('AI_SLIDE_AGENT_ID', 'slide-agent'))
    design_agent_id: str = field(default_factory=lambda: os.getenv('AI_MARKET_SIZING_DESIGN_AGENT_ID', 'market-sizing-design-agent'))
    regeneration_agent_id: str = field(default_factory=lambda: os.getenv('AI_STORYLINE_AGENT_ID', 'storyline-agent'))
    request_timeout: float = field(default_factory=lambda: float(os.getenv('AI_REQUEST_TIMEOUT', '120')))


@dataclass
class RegenerationConfig:
    """Backoff applied to rate-limited regeneration requests"""
    max_retries: int = field(default_factory=lambda: int(os.getenv('REGEN_MAX_RETRIES', str(_backoff_value('max_retries')))))
    base_delay: float = field(default_factory=lambda: float(os.getenv('REGEN_BASE_DELAY', str(_backoff_value('base_delay')))))
    max_delay: float = field(default_factory=lambda: float(os.getenv('REGEN_MAX_DELAY', str(_backoff_value('max_delay')))))
    jitter: float = field(default_factory=lambda: float(os.getenv('REGEN_JITTER', str(REGENERATION_BACKOFF['jitter']))))


@dataclass
class PersistenceConfig:
    """Storyline persistence API configuration"""
    base_url: str = field(default_factory=lambda: os.getenv('STORYLINE_API_BASE_URL', 'http://localhost:3000'))
    max_retries: int = field(default_factory=lambda: int(os.getenv('STORYLINE_SAVE_RETRIES', '3')))
    retry_delay: float = field(default_factory=lambda: float(os.getenv('STORYLINE_SAVE_RETRY_DELAY', '0.5')))


@dataclass
class LogConfig:
    """Logging configuration"""
    level: str = field(default_factory=lambda: os.getenv('LOG_LEVEL', 'INFO'))
    log_agent_payloads: bool = field(default_factory=lambda: os.getenv('LOG_AGENT_PAYLOADS', 'false').lower() == 'true')


@dataclass
class Config:
    """Master configuration"""
    agents: AgentServiceConfig = field(default_factory=AgentServiceConfig)
    regeneration: RegenerationConfig = field(default_factory=RegenerationConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    logging: LogConfig = field(default_factory=LogConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization (secrets omitted)"""
        return {
            'agents': {
                'base_url': self.agents.base_url,
                'slide_agent_id': self.agents.slide_agent_id,
                'design_agent_id': self.agents.design_agent_id,
                'regeneration_agent_id': self.agents.regeneration_agent_id,
                'request_timeout': self.agents.request_timeout
            },
            'regeneration': {
                'max_retries': self.regeneration.max_retries,
                'base_delay': self.regeneration.base_delay,
                'max_delay': self.regeneration.max_delay
            },
            'persistence': {
                'base_url': self.persistence.base_url,
                'max_retries': self.persistence.max_retries
            },
            'logging': {
                'level': self.logging.level
            }
        }

    def validate(self) -> None:
        """Validate configuration values"""
        if self.regeneration.max_retries < 0:
            raise ConfigurationError(f"REGEN_MAX_RETRIES must be >= 0, got {self.regeneration.max_retries}")

        if self.regeneration.base_delay < 0 or self.regeneration.max_delay < self.regeneration.base_delay:
            raise ConfigurationError(
                f"Invalid backoff window: base={self.regeneration.base_delay}, max={self.regeneration.max_delay}"
            )

        if self.agents.request_timeout <= 0:
            raise ConfigurationError(f"AI_REQUEST_TIMEOUT must be positive, got {self.agents.request_timeout}")

        if self.persistence.max_retries < 1:
            raise ConfigurationError(f"STORYLINE_SAVE_RETRIES must be at least 1, got {self.persistence.max_retries}")


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Get singleton configuration instance"""
    config = Config()
    config.validate()
    return config


def get_agent_config() -> AgentServiceConfig:
    """Get agent service configuration"""
    return get_config().agents


def get_regeneration_config() -> RegenerationConfig:
    """Get regeneration backoff configuration"""
    return get_config().regeneration
