"""
Configuration Management
========================

Centralized configuration for the item import pipeline.

Values come from the environment (a `.env` file next to the working directory
is loaded first). The pricing subset is kept separate so the Price Engine can
be used without any of the browser/LLM settings.
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional

from dotenv import load_dotenv


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


def _env_positive_ms(name: str, default_seconds: float) -> float:
    """Read a millisecond env var and return seconds; non-positive values fall back."""
    value = _env_float(name, 0)
    return value / 1000.0 if value > 0 else default_seconds


@dataclass(frozen=True)
class PricingConfig:
    """Inputs of the landed price formula."""
    markup_factor: float = 1.20
    rounding_step: int = 250
    air_rate_per_kg: float = 15400
    air_minimum_fee: float = 0
    sea_rate_per_cbm: float = 182000
    sea_minimum_fee: float = 500
    padding_cm: float = 5

    def __post_init__(self):
        if self.rounding_step <= 0:
            raise ValueError("rounding_step must be positive")
        if self.markup_factor <= 0:
            raise ValueError("markup_factor must be positive")


@dataclass
class PipelineConfig:
    """Application configuration for one pipeline run."""

    pricing: PricingConfig = field(default_factory=PricingConfig)

    # Translation / enrichment
    chunk_size: int = 20
    max_attempts: int = 3
    retry_delay_s: float = 1.5
    ai_timeout_s: float = 180.0
    primary_model: str = "google/gemma-3-12b-it"
    fallback_model: str = "google/gemma-3-27b-it"
    llm_provider: str = "openai"
    llm_base_url: Optional[str] = "https://api.deepinfra.com/v1/openai"

    # Input caps for prompts
    title_cap: int = 220
    description_cap: int = 600
    price_text_cap: int = 50
    review_limit: int = 8
    review_cap: int = 300

    # Pricing inputs the caller owns
    currency_rate: float = 1.0
    domestic_fee: float = 0
    default_weight_kg: float = 0.5
    skip_restricted: bool = False

    # Page driver
    transition_attempts: int = 3
    min_delay_ms: int = 1000
    max_delay_ms: int = 3000
    page_load_timeout_ms: int = 60000
    headless: bool = True

    # Persistence
    database_path: str = "data/products.db"
    persistence_timeout_s: float = 30.0
    embedding_timeout_s: float = 10.0

    @classmethod
    def from_env(cls, env_path: Optional[str] = None) -> 'PipelineConfig':
        """Build a config from environment variables (after loading .env)."""
        load_dotenv(env_path)

        pricing = PricingConfig(
            markup_factor=_env_float('MARKUP_FACTOR', 1.20),
            rounding_step=_env_int('ROUNDING_STEP', 250),
            air_rate_per_kg=_env_float('AIR_SHIPPING_RATE', 15400),
            air_minimum_fee=_env_float('AIR_SHIPPING_MIN_FEE', 0),
            sea_rate_per_cbm=_env_float('SEA_SHIPPING_RATE', 182000),
            sea_minimum_fee=_env_float('SEA_SHIPPING_MIN_FEE', 500),
            padding_cm=_env_float('PACKAGING_PADDING_CM', 5),
        )

        return cls(
            pricing=pricing,
            chunk_size=max(1, _env_int('TRANSLATION_CHUNK_SIZE', 20)),
            max_attempts=max(1, _env_int('AI_MAX_ATTEMPTS', 3)),
            retry_delay_s=_env_positive_ms('AI_BASE_RETRY_DELAY_MS', 1.5),
            ai_timeout_s=_env_positive_ms('AI_TIMEOUT_MS', 180.0),
            primary_model=os.getenv('AI_MODEL', "google/gemma-3-12b-it"),
            fallback_model=os.getenv('AI_FALLBACK_MODEL', "google/gemma-3-27b-it"),
            llm_provider=os.getenv('LLM_PROVIDER', 'openai').lower(),
            llm_base_url=os.getenv('LLM_BASE_URL', "https://api.deepinfra.com/v1/openai"),
            currency_rate=_env_float('SOURCE_CURRENCY_RATE', 1.0),
            domestic_fee=_env_float('DOMESTIC_SHIPPING_FEE', 0),
            default_weight_kg=_env_float('DEFAULT_WEIGHT_KG', 0.5),
            skip_restricted=os.getenv('SKIP_RESTRICTED', 'false').lower() == 'true',
            transition_attempts=max(1, _env_int('TRANSITION_ATTEMPTS', 3)),
            min_delay_ms=_env_int('HUMAN_DELAY_MIN_MS', 1000),
            max_delay_ms=_env_int('HUMAN_DELAY_MAX_MS', 3000),
            headless=os.getenv('HEADLESS', 'true').lower() == 'true',
            database_path=os.getenv('PRODUCT_DB_PATH', 'data/products.db'),
            persistence_timeout_s=_env_float('PERSISTENCE_TIMEOUT_S', 30.0),
            embedding_timeout_s=_env_float('EMBEDDING_TIMEOUT_S', 10.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary"""
        return asdict(self)
