#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Cross-checks between what the browser reports and what HTTP carried."""

from __future__ import annotations
import ipaddress
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

import geoip2.database
import geoip2.errors

logger = logging.getLogger(__name__)

SIZE_TOLERANCE_PX = 20
OSM_BBOX_DELTA = 0.001

_RE_SIZE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*[×xX]\s*(\d+(?:\.\d+)?)\s*$")

# CSS pixels, portrait orientation.
DEVICE_PRESETS: List[Dict[str, Any]] = [
    {"group": "Phones", "name": "Small phone", "width": 360, "height": 640, "dpr_min": 2, "dpr_max": 3},
    {"group": "Phones", "name": "iPhone SE / mini class", "width": 375, "height": 667, "dpr_min": 2, "dpr_max": 2},
    {"group": "Phones", "name": "Modern iPhone", "width": 390, "height": 844, "dpr_min": 3, "dpr_max": 3},
    {"group": "Phones", "name": "Large iPhone Pro Max", "width": 430, "height": 932, "dpr_min": 3, "dpr_max": 3},
    {"group": "Phones", "name": "Android compact", "width": 360, "height": 800, "dpr_min": 2, "dpr_max": 3},
    {"group": "Phones", "name": "Android large", "width": 412, "height": 915, "dpr_min": 3, "dpr_max": 3},
    {"group": "Tablets", "name": "Small tablet", "width": 768, "height": 1024, "dpr_min": 2, "dpr_max": 2},
    {"group": "Tablets", "name": "iPad 10-11\"", "width": 820, "height": 1180, "dpr_min": 2, "dpr_max": 2},
    {"group": "Tablets", "name": "iPad Pro 12.9\"", "width": 1024, "height": 1366, "dpr_min": 2, "dpr_max": 2},
    {"group": "Tablets", "name": "Android tablet", "width": 800, "height": 1280, "dpr_min": 2, "dpr_max": 2},
    {"group": "Mac laptops", "name": "Older MacBook", "width": 1280, "height": 800, "dpr_min": 2, "dpr_max": 2},
    {"group": "Mac laptops", "name": "MacBook Air", "width": 1440, "height": 900, "dpr_min": 2, "dpr_max": 2},
    {"group": "Mac laptops", "name": "MacBook Pro 14\"", "width": 1512, "height": 982, "dpr_min": 2, "dpr_max": 2},
    {"group": "Mac laptops", "name": "MacBook Pro 16\"", "width": 1728, "height": 1117, "dpr_min": 2, "dpr_max": 2},
    {"group": "Mac laptops", "name": "More space mode", "width": 1680, "height": 1050, "dpr_min": 2, "dpr_max": 2},
    {"group": "Windows laptops", "name": "1366 x 768 @ 100%", "width": 1366, "height": 768, "dpr_min": 1, "dpr_max": 1},
    {"group": "Windows laptops", "name": "1536 x 864 @ 125%", "width": 1536, "height": 864, "dpr_min": 1, "dpr_max": 1},
    {"group": "Windows laptops", "name": "1920 x 1080 @ 100%", "width": 1920, "height": 1080, "dpr_min": 1, "dpr_max": 1},
    {"group": "Windows laptops", "name": "2560 x 1440 @ 150%", "width": 2560, "height": 1440, "dpr_min": 1, "dpr_max": 1},
    {"group": "Desktops", "name": "1080p monitor", "width": 1920, "height": 1080, "dpr_min": 1, "dpr_max": 1},
    {"group": "Desktops", "name": "1440p monitor", "width": 2560, "height": 1440, "dpr_min": 1, "dpr_max": 1},
    {"group": "Desktops", "name": "4K @ 100%", "width": 3840, "height": 2160, "dpr_min": 1, "dpr_max": 1},
    {"group": "Desktops", "name": "4K @ 150%", "width": 2560, "height": 1440, "dpr_min": 1, "dpr_max": 1},
    {"group": "Desktops", "name": "macOS scaled 4K", "width": 3008, "height": 1692, "dpr_min": 2, "dpr_max": 2},
    {"group": "iMac", "name": "iMac 24\"", "width": 2240, "height": 1260, "dpr_min": 2, "dpr_max": 2},
]

# ----------------------------- Language / device -----------------------------

def compare_language_lists(js_list: Sequence[str], http_list: Sequence[str]) -> str:
    """'yes' if the shared prefix matches case-insensitively, 'no' if not, 'unknown' if either is empty."""
    if not js_list or not http_list: return "unknown"
    for js_tag, http_tag in zip(js_list, http_list):
        if js_tag.lower() != http_tag.lower(): return "no"
    return "yes"

def infer_device_class(size: Optional[str], dpr: Optional[float],
                       presets: Optional[Sequence[Dict[str, Any]]] = None) -> Optional[Dict[str, Any]]:
    if presets is None: presets = DEVICE_PRESETS
    if not size or dpr is None: return None
    m = _RE_SIZE.match(size)
    if not m: return None
    w, h = float(m.group(1)), float(m.group(2))
    if not w or not h: return None
    sw, sh = min(w, h), max(w, h)
    best, best_delta = None, float("inf")
    for preset in presets:
        pw = min(preset["width"], preset["height"]); ph = max(preset["width"], preset["height"])
        delta = abs(sw - pw) + abs(sh - ph)
        if delta <= SIZE_TOLERANCE_PX and preset["dpr_min"] <= dpr <= preset["dpr_max"] and delta < best_delta:
            best, best_delta = preset, delta
    return best

# ----------------------------- Geo -----------------------------

def osm_embed_url(lat: float, lon: float) -> str:
    bbox = "%2C".join(str(v) for v in (lon - OSM_BBOX_DELTA, lat - OSM_BBOX_DELTA,
                                        lon + OSM_BBOX_DELTA, lat + OSM_BBOX_DELTA))
    return f"https://www.openstreetmap.org/export/embed.html?bbox={bbox}&marker={lat}%2C{lon}&layer=mapnik"

def geoip_lookup(ip_txt: Optional[str], mmdb_path: Optional[str]) -> Optional[Dict[str, Any]]:
    """City + ASN record from a MaxMind database, or None."""
    if not ip_txt or not mmdb_path: return None
    try:
        if not ipaddress.ip_address(ip_txt).is_global: return None
    except ValueError:
        return None
    try:
        with geoip2.database.Reader(mmdb_path) as reader:
            city = reader.city(ip_txt)
            asn = None
            try:
                asn = reader.asn(ip_txt)
            except (TypeError, geoip2.errors.GeoIP2Error):
                pass
    except (OSError, ValueError, TypeError, RuntimeError, geoip2.errors.GeoIP2Error) as e:
        logger.debug("geoip lookup for %s failed: %s", ip_txt, e)
        return None
    lat = getattr(city.location, "latitude", None)
    lon = getattr(city.location, "longitude", None)
    network = getattr(asn, "network", None) or getattr(city.traits, "network", None)
    return {
        "country": getattr(city.country, "iso_code", None),
        "city": getattr(city.city, "name", None),
        "asn": getattr(asn, "autonomous_system_number", None) if asn else None,
        "org": getattr(asn, "autonomous_system_organization", None) if asn else None,
        "network": str(network) if network else None,
        "location": {"lat": lat, "lon": lon},
        "map_url": osm_embed_url(lat, lon) if lat is not None and lon is not None else None,
    }
