"""
TranslationClient - turns raw captured text into target-language text.

Contract for every request:
    - primary model first; a busy/rate-limit signal retries once on the fallback model
    - a hard timeout propagates immediately (no fallback, no further attempts)
    - the reply must parse as JSON and validate; anything else is a failed attempt
    - up to max_attempts attempts with linear backoff (delay * attempt)

Option labels are translated in fixed-size chunks. A failing chunk is bisected
and each half retried on its own until single labels either succeed or are
dropped.
"""

import asyncio
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from ..bounded_json import parse_llm_json
from ..config import PipelineConfig
from ..errors import ModelBusyError, PipelineError, TranslationError, TranslationExhausted, TranslationTimeout
from ..logger import get_component_logger
from ..models import EnrichedProduct, MarketingMetadata, RawProductCapture, Review
from ..text import (
    clean_translated_list, clean_translated_table, find_restricted_keyword, has_source_script,
    is_placeholder, strip_source_script, truncate,
)
from .client import ChatClient, classify_llm_error
from .prompts import (
    EnrichmentPayload, LabelTranslation, ReviewTranslation,
    get_enrichment_prompt, get_labels_prompt, get_reviews_prompt,
)

log = get_component_logger('translate')

_WORD_RE = re.compile(r'[A-Za-z]+')
_SIZE_LETTERS = set('XSMLxsml')


def needs_translation(label: str) -> bool:
    """
    False for labels that are already target-safe: numbers, units and size
    letters ('XL', '2XL', '80kg', '36-37'). Anything with source script or a
    real word goes to the model.
    """
    if has_source_script(label):
        return True
    for word in _WORD_RE.findall(label or ''):
        if len(word) >= 3 and not set(word) <= _SIZE_LETTERS and word.lower() not in ('cm', 'mm', 'kg'):
            return True
    return False


class TranslationClient:
    """
    Args:
        chat: ChatClient used for every request
        config: Attempts, backoff, models and input caps
        sleep: Coroutine used for backoff pauses (asyncio.sleep by default)
    """

    def __init__(
        self,
        chat: ChatClient,
        config: Optional[PipelineConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.chat = chat
        self.config = config or PipelineConfig()
        self._sleep = sleep

    # -- transport ------------------------------------------------------

    async def _request(self, model: str, prompt: str) -> str:
        try:
            return await asyncio.wait_for(self.chat.request(model, prompt), timeout=self.config.ai_timeout_s)
        except PipelineError:
            raise
        except Exception as e:
            raise classify_llm_error(e) from e

    async def _complete(self, prompt: str) -> str:
        """One attempt: primary model, then the fallback model once if the primary is busy."""
        try:
            return await self._request(self.config.primary_model, prompt)
        except ModelBusyError as e:
            log.warning(f"{self.config.primary_model} busy ({e}), falling back to {self.config.fallback_model}")
            return await self._request(self.config.fallback_model, prompt)

    async def _with_retries(self, prompt: str, parse: Callable[[str], Any], label: str) -> Any:
        """
        Run attempts until parse() accepts a reply.

        Raises:
            TranslationTimeout: on a hard timeout, immediately
            TranslationExhausted: when every attempt failed
        """
        attempts = max(1, self.config.max_attempts)
        last_error = ''
        for attempt in range(1, attempts + 1):
            try:
                text = await self._complete(prompt)
                return parse(text)
            except TranslationTimeout:
                log.warning(f"{label}: hard timeout, not retrying")
                raise
            except TranslationError as e:
                last_error = str(e)
                log.warning(f"{label}: attempt {attempt}/{attempts} failed: {last_error}")
                if attempt < attempts:
                    await self._sleep(self.config.retry_delay_s * attempt)
        raise TranslationExhausted(attempts, last_error)

    # -- product fields -------------------------------------------------

    def _parse_enrichment(self, text: str) -> EnrichmentPayload:
        data = parse_llm_json(text, expect=dict)
        if data is None:
            raise TranslationError("reply is not a JSON object")
        try:
            payload = EnrichmentPayload.model_validate(data)
        except ValidationError as e:
            raise TranslationError(f"invalid enrichment payload: {e.error_count()} errors")

        if is_placeholder(payload.product_name_ar):
            raise TranslationError(f"placeholder name returned: {payload.product_name_ar!r}")
        name = strip_source_script(payload.product_name_ar)
        if not name or is_placeholder(name):
            raise TranslationError("name is empty after removing untranslated text")
        payload.product_name_ar = name
        return payload

    async def enrich(self, capture: RawProductCapture) -> EnrichedProduct:
        """
        Translate title/description into an EnrichedProduct.

        Raises:
            TranslationTimeout, TranslationExhausted: the item must be skipped
        """
        restricted_hit = find_restricted_keyword(capture.title, capture.description_text)
        if restricted_hit:
            log.info(f"restricted keyword '{restricted_hit}' in {capture.url}")

        prompt = get_enrichment_prompt(
            truncate(capture.title, self.config.title_cap),
            truncate(capture.description_text, self.config.description_cap),
            truncate(capture.price_text, self.config.price_text_cap),
        )
        payload = await self._with_retries(prompt, self._parse_enrichment, 'enrich')

        metadata = payload.aiMetadata
        return EnrichedProduct(
            name_translated=payload.product_name_ar,
            attribute_table=clean_translated_table(payload.product_details_ar),
            marketing=MarketingMetadata(
                synonyms=clean_translated_list(metadata.synonyms),
                tags=clean_translated_list(metadata.market_tags),
                category_suggestion=strip_source_script(metadata.category_suggestion),
            ),
            # The model may add a restriction, never lift the keyword hit
            is_restricted=bool(restricted_hit) or payload.is_edible,
        )

    # -- option labels --------------------------------------------------

    def _label_parser(self, chunk: Sequence[str]) -> Callable[[str], Dict[str, str]]:
        def parse(text: str) -> Dict[str, str]:
            data = parse_llm_json(text, expect=dict)
            if data is None:
                raise TranslationError("label reply is not a JSON object")
            try:
                translations = LabelTranslation(translations=data).translations
            except ValidationError:
                raise TranslationError("label reply has non-string values")

            result = {}
            for label in chunk:
                value = strip_source_script(translations.get(label, ''))
                if not value:
                    raise TranslationError(f"no usable translation for {label!r}")
                result[label] = value
            return result
        return parse

    async def _translate_chunk(self, chunk: List[str]) -> Dict[str, str]:
        """Translate one chunk; bisect on failure. Single labels that fail are dropped."""
        if not chunk:
            return {}
        prompt = get_labels_prompt(chunk)
        parse = self._label_parser(chunk)

        if len(chunk) == 1:
            try:
                return await self._with_retries(prompt, parse, f"label {chunk[0]!r}")
            except TranslationExhausted:
                log.warning(f"dropping untranslatable label {chunk[0]!r}")
                return {}

        try:
            return parse(await self._complete(prompt))
        except TranslationTimeout:
            raise
        except TranslationError as e:
            log.debug(f"chunk of {len(chunk)} failed ({e}), bisecting")

        middle = len(chunk) // 2
        result = await self._translate_chunk(chunk[:middle])
        result.update(await self._translate_chunk(chunk[middle:]))
        return result

    async def translate_labels(self, labels: Sequence[str]) -> Dict[str, str]:
        """
        Translate option labels.

        Returns:
            {original: translated}. Labels that could not be translated are
            absent from the mapping.
        """
        unique = []
        for label in labels:
            if label and label not in unique:
                unique.append(label)

        result = {label: label for label in unique if not needs_translation(label)}
        pending = [label for label in unique if label not in result]

        size = max(1, self.config.chunk_size)
        for start in range(0, len(pending), size):
            result.update(await self._translate_chunk(pending[start:start + size]))

        log.info(f"labels: {len(result)}/{len(unique)} translated")
        return result

    # -- reviews --------------------------------------------------------

    async def translate_reviews(self, reviews: Sequence[Review]) -> List[Review]:
        """
        Translate up to review_limit reviews in one request.

        Failure is not fatal: an empty list is returned and untranslated
        reviews are never kept.
        """
        selected = [r for r in reviews if r.text][:self.config.review_limit]
        if not selected:
            return []

        texts = [truncate(r.text, self.config.review_cap) for r in selected]

        def parse(text: str) -> List[str]:
            data = parse_llm_json(text, expect=list)
            if data is None:
                raise TranslationError("review reply is not a JSON array")
            try:
                items = ReviewTranslation(items=data).items
            except ValidationError:
                raise TranslationError("review reply has invalid items")
            if len(items) != len(texts):
                raise TranslationError(f"expected {len(texts)} reviews, got {len(items)}")
            return [item.c for item in items]

        try:
            translated = await self._with_retries(get_reviews_prompt(texts), parse, 'reviews')
        except (TranslationExhausted, TranslationTimeout) as e:
            log.warning(f"review translation failed, dropping reviews: {e}")
            return []

        result = []
        for review, text in zip(selected, translated):
            clean = strip_source_script(text)
            if not clean:
                continue
            result.append(Review(
                author=strip_source_script(review.author),
                text=clean,
                photo_urls=review.photo_urls,
                meta=strip_source_script(review.meta),
            ))
        return result
