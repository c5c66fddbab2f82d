"""
Raw extraction: in-page snapshots plus ordered fallback strategies.
"""

from .base import PageSnapshot, first_success, clean_image_urls, is_valid_image_url, normalize_image_url
from .extractor import RawExtractor
from .options import OptionsCapture, parse_sku_table
