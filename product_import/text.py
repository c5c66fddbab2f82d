"""
Text helpers: source-script detection/stripping, option label cleanup,
placeholder detection and the restricted-goods keyword check.
"""

import re
from typing import Optional, Iterable, Dict

# Source script (CJK unified ideographs)
SOURCE_SCRIPT_RE = re.compile(r'[一-龥]')
_SOURCE_RUN_RE = re.compile(r'[一-龥]+')
# Full-width punctuation that only makes sense next to source-script text
_SOURCE_PUNCT_RE = re.compile(r'[【】「」『』《》（）¥￥，。：；！？、]')

_WHITESPACE_RE = re.compile(r'\s+')
_TRAILING_LINE_RE = re.compile(r'\n.*$', re.DOTALL)
_BRACKET_TAG_RE = re.compile(r'【.*?】')
_JIN_RANGE_RE = re.compile(r'(\d+(?:\.\d+)?)\s*[-~～]\s*(\d+(?:\.\d+)?)\s*斤')
_JIN_SINGLE_RE = re.compile(r'(\d+(?:\.\d+)?)\s*斤')

# Strings a model emits when it did not actually translate
PLACEHOLDER_NAMES = [
    'اسم غير متوفر',
    'name not available',
    'name unavailable',
    'اسم المنتج بالعربيه',
    'اسم المنتج بالعربية',
    'put translated name here',
    'arabic name',
    'ترجمة اسم المنتج',
    'translation pending',
]

# Edible / supplement terms that mark an item restricted without asking the model
RESTRICTED_KEYWORDS = [
    '食品', '零食', '坚果', '罐头', '饮料', '糖果', '饼干', '调料', '茶叶', '酒水',
    '鲜肉', '鸡蛋', '牛奶', '食用油', '大米', '面粉', '果冻', '巧克力', '咖啡豆',
    '保健品', '维生素', '钙片', '酵素', '益生菌',
    'food', 'snack', 'nuts', 'canned', 'beverage', 'candy', 'biscuit', 'seasoning',
    'tea leaves', 'liquor', 'fresh meat', 'eggs', 'milk powder', 'cooking oil',
    'rice flour', 'jelly', 'chocolate', 'coffee beans', 'supplement', 'vitamin',
    'calcium tablet', 'enzyme', 'probiotic',
]


def has_source_script(text: Optional[str]) -> bool:
    return bool(text) and bool(SOURCE_SCRIPT_RE.search(text))


def strip_source_script(text: Optional[str]) -> str:
    """Remove every source-script run and leftover full-width punctuation."""
    if not text:
        return ''
    cleaned = _SOURCE_RUN_RE.sub(' ', str(text))
    cleaned = _SOURCE_PUNCT_RE.sub(' ', cleaned)
    return collapse_whitespace(cleaned)


def collapse_whitespace(text: Optional[str]) -> str:
    return _WHITESPACE_RE.sub(' ', text or '').strip()


def convert_jin(text: str) -> str:
    """Convert 斤 (0.5 kg) weights to kilograms: '160-175斤' -> '80-87.5kg'."""
    def _fmt(value: float) -> str:
        return f"{value:g}"

    text = _JIN_RANGE_RE.sub(
        lambda m: f"{_fmt(float(m.group(1)) / 2)}-{_fmt(float(m.group(2)) / 2)}kg", text)
    return _JIN_SINGLE_RE.sub(lambda m: f"{_fmt(float(m.group(1)) / 2)}kg", text)


def clean_label(label: Optional[str]) -> str:
    """
    Normalize a raw option label.

    Drops anything after the first newline (stock hints like '\\n快要断码'),
    removes 【...】 tags, converts 斤 weights and collapses whitespace.
    """
    if not label:
        return ''
    text = str(label).strip()
    text = _TRAILING_LINE_RE.sub('', text)
    text = _BRACKET_TAG_RE.sub('', text)
    text = convert_jin(text)
    return collapse_whitespace(text)


def is_placeholder(name: Optional[str]) -> bool:
    """True for empty names and known untranslated placeholders."""
    if not name or not str(name).strip():
        return True
    lowered = str(name).lower()
    return any(p in lowered for p in PLACEHOLDER_NAMES)


def find_restricted_keyword(*texts: Optional[str]) -> Optional[str]:
    """Return the first restricted keyword found in any of texts, else None."""
    haystack = ' '.join(t for t in texts if t).lower()
    if not haystack:
        return None
    for keyword in RESTRICTED_KEYWORDS:
        if keyword in haystack:
            return keyword
    return None


def clean_translated_table(table: Dict[str, str]) -> Dict[str, str]:
    """
    Post-filter a translated key/value table.

    Source-script substrings are stripped from keys and values; entries whose
    key or value becomes empty are dropped.
    """
    cleaned = {}
    for key, value in (table or {}).items():
        if value is None:
            continue
        new_key = strip_source_script(str(key))
        new_value = strip_source_script(str(value))
        if new_key and new_value:
            cleaned[new_key] = new_value
    return cleaned


def clean_translated_list(values: Iterable[str]) -> list:
    """Strip source script from each value, dropping empties and duplicates."""
    seen = set()
    result = []
    for value in values or []:
        text = strip_source_script(str(value))
        if text and text not in seen:
            seen.add(text)
            result.append(text)
    return result


def truncate(text: Optional[str], limit: int) -> str:
    return str(text or '')[:limit]
