"""
Storefront Item Import Pipeline

Captures a single product from a JavaScript-rendered storefront, translates and
enriches it with an LLM, prices it for landed retail, reconciles its variants
and persists it once.
"""

from .config import PipelineConfig, PricingConfig
from .models import ItemResult, ItemStatus, ShippingMethod
from .pipeline import ItemPipeline

__all__ = [
    'PipelineConfig',
    'PricingConfig',
    'ItemResult',
    'ItemStatus',
    'ShippingMethod',
    'ItemPipeline',
]
