"""
Review strategies.
"""

from typing import Any, Dict, List

from ..models import Review
from ..text import collapse_whitespace
from .base import PageSnapshot, normalize_image_url

MAX_REVIEWS = 8


def _to_reviews(items: List[Dict[str, Any]], limit: int = MAX_REVIEWS) -> List[Review]:
    reviews = []
    for item in items or []:
        text = collapse_whitespace(item.get('content', ''))
        author = collapse_whitespace(item.get('name', ''))
        if not text and not author:
            continue
        photos = []
        for url in item.get('photos') or []:
            normalized = normalize_image_url(url)
            if normalized and normalized not in photos:
                photos.append(normalized)
        reviews.append(Review(
            author=author,
            text=text,
            photo_urls=tuple(photos),
            meta=collapse_whitespace(item.get('meta', '')),
        ))
        if len(reviews) >= limit:
            break
    return reviews


def reviews_from_comment_nodes(snapshot: PageSnapshot) -> List[Review]:
    """Structured comment cards of the reviews overlay."""
    return _to_reviews(snapshot.get('structured', []))


def reviews_from_generic_items(snapshot: PageSnapshot) -> List[Review]:
    """Any comment/review/rate list item."""
    return [r for r in _to_reviews(snapshot.get('generic', [])) if r.text]


REVIEW_STRATEGIES = [reviews_from_comment_nodes, reviews_from_generic_items]
