"""
Enrichment Prompts
==================

Prompt builders and the pydantic models their JSON replies must satisfy.
Target language is Arabic; source text is mostly Chinese.
"""

import json
from typing import Dict, List

from pydantic import BaseModel, Field, field_validator


class MarketingPayload(BaseModel):
    synonyms: List[str] = Field(default_factory=list, description="3-5 alternative names")
    market_tags: List[str] = Field(default_factory=list, description="3-5 search tags")
    category_suggestion: str = Field(default="", description="Category path")

    @field_validator('synonyms', 'market_tags', mode='before')
    @classmethod
    def _listify(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(v) for v in value if v is not None]

    @field_validator('category_suggestion', mode='before')
    @classmethod
    def _stringify(cls, value):
        return '' if value is None else str(value)


class EnrichmentPayload(BaseModel):
    """Reply to the product enrichment prompt."""
    product_name_ar: str = Field(min_length=1)
    is_edible: bool = False
    product_details_ar: Dict[str, str] = Field(default_factory=dict)
    aiMetadata: MarketingPayload = Field(default_factory=MarketingPayload)

    @field_validator('product_details_ar', mode='before')
    @classmethod
    def _details(cls, value):
        # Models sometimes return the table as a string or with non-string values
        if not isinstance(value, dict):
            return {}
        return {str(k): str(v) for k, v in value.items() if v not in (None, '')}


class LabelTranslation(BaseModel):
    """Reply to the option-label prompt: {original: translated}."""
    translations: Dict[str, str]


class ReviewItem(BaseModel):
    c: str = ""


class ReviewTranslation(BaseModel):
    """Reply to the review prompt, one item per input review, same order."""
    items: List[ReviewItem]

    @field_validator('items', mode='before')
    @classmethod
    def _accept_strings(cls, value):
        if isinstance(value, list):
            return [{'c': v} if isinstance(v, str) else v for v in value]
        return value


def get_enrichment_prompt(title: str, description: str, price: str) -> str:
    """
    Build the product enrichment prompt.

    Inputs must already be capped by the caller.
    """
    return f"""You are a product data enrichment assistant for an Iraqi e-commerce site.

Original Product Title (Chinese): "{title}"
Product Description: "{description}"
Price: "{price}"

Task:
1. Translate the product name to ARABIC accurately (Iraqi dialect or MSA).
   - Remove marketing fluff like "hot sale", "new arrival", "2024", "ready stock".
   - Only keep a brand name if it is a well-known international brand.
   - Never output placeholder text such as "اسم غير متوفر" or "اسم المنتج بالعربية".
2. Extract "product_details_ar" as a key-value JSON object in ARABIC.
   - Exclude return policy, refund, shipping and guarantee information.
   - Exclude any price or cost information.
   - Do not include keys with empty values.
   - Do not include any Chinese characters.
3. Generate "aiMetadata" from the title and description:
   - "synonyms": 3-5 alternative Arabic names for this product.
   - "market_tags": 3-5 relevant Arabic tags.
   - "category_suggestion": a specific Arabic category path.
4. Set "is_edible": true if the product is food, drink, snacks, ingredients, supplements, vitamins or medicine.
   "Food container" is NOT edible. If in doubt, set true.

Return ONLY a valid JSON object with this structure (no markdown):
{{
    "product_name_ar": "...",
    "is_edible": false,
    "product_details_ar": {{"المادة": "..."}},
    "aiMetadata": {{
        "synonyms": ["..."],
        "market_tags": ["..."],
        "category_suggestion": "..."
    }}
}}
"""


def get_labels_prompt(labels: List[str]) -> str:
    """Prompt for translating one chunk of option labels (colors/sizes)."""
    return f"""Translate these product option names (colors/sizes) to Arabic.
Keep numbers and units (cm, mm, kg) as they are.
"图片色" or "默认" means "كما في الصورة".
Remove return-policy words such as "包退" or "包换".
Return ONLY a JSON object where keys are the original text and values are the translated text.
Example: {{"红色": "أحمر", "XL": "XL"}}
Input: {json.dumps(labels, ensure_ascii=False)}
"""


def get_reviews_prompt(reviews: List[str]) -> str:
    """Prompt for translating review texts; reply must keep length and order."""
    return f"""Translate these product review comments to Arabic.
Return ONLY a JSON array, same length and order.
Each item: {{"c": "translated comment"}}
Input: {json.dumps(reviews, ensure_ascii=False)}
"""
