"""
SKU map strategies.

Output is an OptionsCapture: composite key (color/size) -> raw price text,
plus color -> thumbnail URL. Labels are normalized here so keys are stable
before translation.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..bounded_json import extract_bounded_object, unwrap_jsonp
from ..models import make_composite_key
from ..text import clean_label
from .base import PageSnapshot, normalize_image_url, soup_scripts

# Property id the big marketplaces use for the color axis
COLOR_PROPERTY_ID = '1627207'

COLOR_AXIS_WORDS = ['颜色', '色', 'color', 'colour', '款式', '款']
SIZE_AXIS_WORDS = ['尺码', '尺寸', '码', 'size', '身高', '体重', '重量', '规格', '型号']


@dataclass
class OptionsCapture:
    sku_entries: Dict[str, str] = field(default_factory=dict)
    variant_images: Dict[str, str] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.sku_entries


def _is_color_axis(name: str) -> bool:
    lowered = (name or '').lower()
    return any(w in lowered for w in COLOR_AXIS_WORDS)


def _is_size_axis(name: str) -> bool:
    lowered = (name or '').lower()
    return any(w in lowered for w in SIZE_AXIS_WORDS)


def _format_cents(cents: Any) -> str:
    value = float(cents) / 100
    return ('%.2f' % value).rstrip('0').rstrip('.')


# -- (a) options overlay -------------------------------------------------

def options_from_overlay(snapshot: PageSnapshot) -> OptionsCapture:
    """Prices read by clicking through the options overlay."""
    overlay = snapshot.get('overlay', {}) or {}
    axes = overlay.get('axes') or []
    entries = overlay.get('entries') or []
    if not axes or not entries:
        return OptionsCapture()

    names = [a.get('name', '') for a in axes]
    if len(names) >= 2:
        # Color axis is whichever is named like one, else the first
        color_index = 1 if (_is_color_axis(names[1]) and not _is_color_axis(names[0])) else 0
        size_index = 1 - color_index
    else:
        only_size = _is_size_axis(names[0]) and not _is_color_axis(names[0])
        color_index, size_index = (None, 0) if only_size else (0, None)

    capture = OptionsCapture()
    for entry in entries:
        values = entry.get('values') or []
        color = clean_label(values[color_index]) if color_index is not None and color_index < len(values) else ''
        size = clean_label(values[size_index]) if size_index is not None and size_index < len(values) else None
        if not color and not size:
            continue
        capture.sku_entries[make_composite_key(color, size)] = (entry.get('price') or '').strip()

    images = overlay.get('images') or {}
    if color_index is not None:
        for label, url in images.items():
            normalized = normalize_image_url(url)
            if normalized:
                capture.variant_images[clean_label(label)] = normalized
    return capture


# -- (b)/(c) structured SKU tables --------------------------------------

def parse_sku_table(sku_base: Dict[str, Any], sku2info: Optional[Dict[str, Any]]) -> OptionsCapture:
    """
    Build composite keys from skuBase.props + skuBase.skus.

    propPath is "pid:vid;pid:vid". Prices come from sku2info[skuId]
    (priceMoney in cents first, then priceText); an SKU without its own price
    gets an empty price text rather than the item's default price.
    """
    capture = OptionsCapture()
    if not isinstance(sku_base, dict):
        return capture
    props = sku_base.get('props') or []
    skus = sku_base.get('skus') or []
    if not props or not skus:
        return capture
    sku2info = sku2info or {}

    # pid -> (name, {vid: (label, image)})
    tables: Dict[str, Tuple[str, Dict[str, Tuple[str, str]]]] = {}
    for prop in props:
        pid = str(prop.get('pid', ''))
        values = {}
        for value in prop.get('values') or []:
            values[str(value.get('vid', ''))] = (clean_label(value.get('name', '')), value.get('image') or '')
        tables[pid] = (prop.get('name', ''), values)

    color_pid = None
    if COLOR_PROPERTY_ID in tables:
        color_pid = COLOR_PROPERTY_ID
    else:
        for pid, (name, values) in tables.items():
            if _is_color_axis(name) or any(image for _, image in values.values()):
                color_pid = pid
                break
    other_pids = [pid for pid in tables if pid != color_pid]

    for sku in skus:
        pairs = {}
        for part in str(sku.get('propPath', '')).split(';'):
            if ':' in part:
                pid, vid = part.split(':', 1)
                pairs[pid] = vid

        color = ''
        if color_pid and color_pid in pairs:
            color, image = tables[color_pid][1].get(pairs[color_pid], ('', ''))
            if color and image and color not in capture.variant_images:
                capture.variant_images[color] = normalize_image_url(image)

        size_parts = [tables[pid][1].get(pairs[pid], ('', ''))[0] for pid in other_pids if pid in pairs]
        size = ' / '.join(p for p in size_parts if p) or None
        if not color and not size:
            continue

        info = sku2info.get(str(sku.get('skuId', ''))) or {}
        price = info.get('price') or {}
        if price.get('priceMoney') not in (None, ''):
            price_text = _format_cents(price['priceMoney'])
        else:
            price_text = str(price.get('priceText') or '').strip()

        capture.sku_entries[make_composite_key(color, size)] = price_text

    return capture


def options_from_globals(snapshot: PageSnapshot) -> OptionsCapture:
    """skuBase / sku2info exposed by page globals or inline scripts."""
    globals_ = snapshot.get('globals', {}) or {}
    sku_base = globals_.get('skuBase')
    sku2info = globals_.get('sku2info')

    if not sku_base:
        for script in soup_scripts(snapshot.html):
            if '"skuBase"' not in script:
                continue
            sku_base = extract_bounded_object(script, '"skuBase"', openers='{')
            if sku2info is None and '"sku2info"' in script:
                sku2info = extract_bounded_object(script, '"sku2info"', openers='{')
            if sku_base:
                break

    return parse_sku_table(sku_base, sku2info)


def _api_stack_payloads(body: Any) -> List[Dict[str, Any]]:
    """Decode the JSON-in-a-string values of an mtop apiStack."""
    payloads = []
    data = body.get('data') if isinstance(body.get('data'), dict) else {}
    stack = data.get('apiStack') or body.get('apiStack') or []
    for entry in stack if isinstance(stack, list) else []:
        value = (entry or {}).get('value')
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                continue
        if isinstance(value, dict):
            payloads.append(value)
    return payloads


def _find_sku2info(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for path in (('skuCore', 'sku2info'), ('data', 'skuCore', 'sku2info'), ('global', 'data', 'skuCore', 'sku2info')):
        node: Any = payload
        for key in path:
            node = node.get(key) if isinstance(node, dict) else None
        if isinstance(node, dict):
            return node
    return None


def options_from_intercepted(snapshot: PageSnapshot) -> OptionsCapture:
    """SKU tables found in intercepted JSON/JSONP API responses."""
    sku_base = (snapshot.get('globals', {}) or {}).get('skuBase')
    sku2info: Dict[str, Any] = {}

    for _, text in snapshot.responses:
        try:
            body = json.loads(unwrap_jsonp(text))
        except ValueError:
            continue
        if not isinstance(body, dict):
            continue
        for payload in [body] + _api_stack_payloads(body):
            found = _find_sku2info(payload)
            if found:
                sku2info.update(found)
            candidate = payload.get('skuBase')
            if not candidate and isinstance(payload.get('data'), dict):
                candidate = payload['data'].get('skuBase')
            if not sku_base and isinstance(candidate, dict) and candidate.get('props'):
                sku_base = candidate

    if not sku2info or not sku_base:
        return OptionsCapture()
    return parse_sku_table(sku_base, sku2info)


OPTION_STRATEGIES = [options_from_overlay, options_from_globals, options_from_intercepted]
