"""
Description-image strategies.
"""

from typing import List

from .base import PageSnapshot, clean_image_urls

MIN_CONTAINER_IMAGES = 3


def description_from_container(snapshot: PageSnapshot) -> List[str]:
    """Images of the dedicated description container."""
    return clean_image_urls(snapshot.get('container', []))


def description_from_image_block(snapshot: PageSnapshot) -> List[str]:
    """First container holding at least three large valid images."""
    for candidate in snapshot.get('candidates', []):
        urls = clean_image_urls(candidate)
        if len(urls) >= MIN_CONTAINER_IMAGES:
            return urls
    return []


DESCRIPTION_IMAGE_STRATEGIES = [description_from_container, description_from_image_block]
