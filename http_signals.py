#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

HeaderMap = Mapping[str, str]

# Transport fields that never appear under the HTTP_ prefix.
_ENVIRON_CONTENT_FIELDS = (("CONTENT_TYPE", "content-type"), ("CONTENT_LENGTH", "content-length"))

_RE_Q_PARAM = re.compile(r"q=([0-9.]+)", re.IGNORECASE)

# ----------------------------- Header normalizer -----------------------------

def headers_from_environ(environ: Mapping[str, Any]) -> Dict[str, str]:
    """Rebuild header pairs from HTTP_* transport keys."""
    out: Dict[str, str] = {}
    for k, v in environ.items():
        if isinstance(k, str) and k.startswith("HTTP_"):
            out[k[5:].lower().replace("_", "-")] = str(v)
    return out

def normalize_headers(items: Optional[Iterable[Tuple[str, str]]] = None,
                      environ: Optional[Mapping[str, Any]] = None) -> HeaderMap:
    """Return a read-only header map with lowercase names in ascending order.

    ``items`` are the pairs delivered by the native accessor; when it is None the
    headers are rebuilt from ``environ``. Content-Type and Content-Length are taken
    from the transport fields if the accessor left them out.
    """
    merged: Dict[str, str] = {}
    if items is None:
        merged.update(headers_from_environ(environ or {}))
    else:
        for name, value in items:
            merged[name.lower()] = value
    if environ:
        for env_key, name in _ENVIRON_CONTENT_FIELDS:
            val = environ.get(env_key)
            if name not in merged and val not in (None, ""):
                merged[name] = str(val)
    return MappingProxyType({k: merged[k] for k in sorted(merged)})

# ----------------------------- Weighted lists -----------------------------

@dataclass(frozen=True)
class WeightedToken:
    token: str
    weight: float = 1.0

def _parse_q(params: str) -> float:
    m = _RE_Q_PARAM.search(params)
    if not m: return 1.0
    try:
        q = float(m.group(1))
    except ValueError:
        return 1.0
    return q if 0.0 <= q <= 1.0 else 1.0

def parse_weighted_header(value: Optional[str]) -> List[WeightedToken]:
    """Parse ``en-US,en;q=0.9`` style values, highest weight first.

    Equal weights keep the order they were sent in.
    """
    if not value: return []
    out: List[WeightedToken] = []
    for part in value.split(","):
        part = part.strip()
        if not part: continue
        token, weight = part, 1.0
        if ";" in part:
            token, params = (s.strip() for s in part.split(";", 1))
            weight = _parse_q(params)
        if not token: continue
        out.append(WeightedToken(token, weight))
    return sorted(out, key=lambda t: t.weight, reverse=True)

def _dedupe_tokens(items: Iterable[WeightedToken]) -> List[str]:
    seen = set()
    out: List[str] = []
    for item in items:
        key = item.token.lower()
        if key in seen: continue
        seen.add(key)
        out.append(item.token)
    return out

def parse_accept_language(value: Optional[str]) -> List[str]:
    return _dedupe_tokens(parse_weighted_header(value))

def parse_accept_encoding(value: Optional[str]) -> List[str]:
    return _dedupe_tokens(parse_weighted_header(value))

# ----------------------------- User-Agent -----------------------------

@dataclass(frozen=True)
class UserAgentInfo:
    browser: Optional[str] = None
    os: Optional[str] = None

Extractor = Callable[["re.Match[str]"], str]
Rule = Tuple["re.Pattern[str]", Extractor]

def _labelled(prefix: str) -> Extractor:
    return lambda m: f"{prefix} {m.group(1)}"

def _dotted(prefix: str) -> Extractor:
    return lambda m: f"{prefix} {m.group(1).replace('_', '.')}"

def _fixed(label: str) -> Extractor:
    return lambda m: label

# Order matters: Edge, Opera and Chrome UAs also carry "Safari/".
BROWSER_RULES: Tuple[Rule, ...] = (
    (re.compile(r"Edg/([\d.]+)"), _labelled("Edge")),
    (re.compile(r"OPR/([\d.]+)"), _labelled("Opera")),
    (re.compile(r"Chrome/([\d.]+)"), _labelled("Chrome")),
    (re.compile(r"Firefox/([\d.]+)"), _labelled("Firefox")),
    (re.compile(r"Version/([\d.]+).*Safari"), _labelled("Safari")),
)

OS_RULES: Tuple[Rule, ...] = (
    (re.compile(r"Windows NT 10\.0"), _fixed("Windows 10/11")),
    (re.compile(r"Windows NT 6\.3"), _fixed("Windows 8.1")),
    (re.compile(r"Windows NT 6\.2"), _fixed("Windows 8")),
    (re.compile(r"Windows NT 6\.1"), _fixed("Windows 7")),
    (re.compile(r"Android ([\d.]+)"), _labelled("Android")),
    (re.compile(r"iPhone OS ([\d_]+)"), _dotted("iOS")),
    (re.compile(r"iPad.*OS ([\d_]+)"), _dotted("iPadOS")),
    (re.compile(r"Mac OS X ([\d_]+)"), _dotted("macOS")),
    (re.compile(r"Linux"), _fixed("Linux")),
)

def first_match(rules: Iterable[Rule], text: str) -> Optional[str]:
    for pattern, extract in rules:
        m = pattern.search(text)
        if m: return extract(m)
    return None

def parse_user_agent(ua: Optional[str]) -> UserAgentInfo:
    """Label browser and OS from a User-Agent; heuristic, not a UA grammar."""
    if not ua: return UserAgentInfo()
    return UserAgentInfo(browser=first_match(BROWSER_RULES, ua), os=first_match(OS_RULES, ua))
