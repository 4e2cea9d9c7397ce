#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Proxy/VPN and Tor exit heuristics computed from one request.

Neither heuristic ever says "no": absence of forwarding headers or of a Tor exit
listing is not evidence of a direct connection.
"""

from __future__ import annotations
import ipaddress
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import dns.exception
import dns.resolver

logger = logging.getLogger(__name__)

TOR_EXITLIST_ZONE = "ip-port.exitlist.torproject.org"
DEFAULT_TOR_DNS_TIMEOUT = 1.5

FORWARDING_HEADERS = (
    "x-forwarded-for", "x-real-ip", "forwarded", "via", "cf-connecting-ip",
    "true-client-ip", "x-forwarded-proto", "x-forwarded-port", "x-remote-ip",
)

_RE_FORWARDED_FOR = re.compile(r"for=((?P<q>\"[^\"]*\")|(?P<t>[^;,\s]+))", re.IGNORECASE)

CGNAT_CIDR = ipaddress.ip_network("100.64.0.0/10")


class Signal(str, Enum):
    UNKNOWN = "unknown"
    MAYBE = "maybe"
    YES = "yes"
    NO = "no"


class TorDnsOutcome(str, Enum):
    LISTED = "listed"
    NOT_LISTED = "not_listed"
    INVALID_INPUT = "invalid_input"
    TIMEOUT = "timeout"
    ERROR = "error"
    DISABLED = "disabled"

    @property
    def definitive(self) -> bool:
        return self in (TorDnsOutcome.LISTED, TorDnsOutcome.NOT_LISTED)

# ----------------------------- IP helpers -----------------------------

def scope_label(ip: ipaddress._BaseAddress) -> str:
    if ip.is_loopback: return "loopback"
    if ip.is_link_local: return "link_local"
    if ip in CGNAT_CIDR: return "cgnat"
    if ip.is_private: return "private"
    if ip.is_multicast: return "multicast"
    if ip.is_reserved: return "reserved"
    return "public"

def clean_token_to_ip(token: Optional[str]) -> Optional[ipaddress._BaseAddress]:
    if not token: return None
    t = token.strip().strip('"').strip("'")
    if t.startswith("[") and "]" in t:
        t = t[1:t.index("]")]
    elif t.count(":") == 1:
        host, maybe_port = t.split(":", 1)
        if maybe_port.isdigit(): t = host
    try:
        return ipaddress.ip_address(t)
    except ValueError:
        return None

# ----------------------------- Forwarding / VPN -----------------------------

@dataclass(frozen=True)
class VpnSignal:
    status: Signal = Signal.UNKNOWN
    evidence_headers: List[str] = field(default_factory=list)
    forwarded_chain: List[Dict[str, Any]] = field(default_factory=list)

def parse_forwarded_for(val: Optional[str]) -> List[str]:
    if not val: return []
    return [(m.group("q") or m.group("t")).strip('"') for m in _RE_FORWARDED_FOR.finditer(val)]

def parse_xff_list(val: Optional[str]) -> List[str]:
    if not val: return []
    return [t for t in (item.strip() for item in val.split(",")) if t]

def forwarded_chain(headers: Mapping[str, str]) -> List[Dict[str, Any]]:
    """Addresses claimed by Forwarded and X-Forwarded-For, in header order."""
    hops: List[Dict[str, Any]] = []
    sources = (("forwarded", parse_forwarded_for(headers.get("forwarded"))),
               ("x-forwarded-for", parse_xff_list(headers.get("x-forwarded-for"))))
    for source, tokens in sources:
        for token in tokens:
            ip = clean_token_to_ip(token)
            hops.append({"source": source, "ip": ip.compressed if ip else token,
                         "scope": scope_label(ip) if ip else "invalid"})
    return hops

def detect_forwarding(headers: Mapping[str, str]) -> VpnSignal:
    present = [h for h in FORWARDING_HEADERS if headers.get(h)]
    status = Signal.MAYBE if present else Signal.UNKNOWN
    return VpnSignal(status=status, evidence_headers=present, forwarded_chain=forwarded_chain(headers))

# ----------------------------- Tor -----------------------------

@dataclass(frozen=True)
class TorDnsResult:
    outcome: TorDnsOutcome
    query: Optional[str] = None

    @property
    def listed(self) -> Optional[bool]:
        """True/False for a definitive answer, None when indeterminate."""
        if not self.outcome.definitive: return None
        return self.outcome is TorDnsOutcome.LISTED

@dataclass(frozen=True)
class TorSignal:
    status: Signal
    dns_outcome: TorDnsOutcome
    dns_query: Optional[str] = None
    ua_match: bool = False

    @property
    def dns_status(self) -> str:
        return "success" if self.dns_outcome.definitive else "failed"

def reverse_ipv4(ip: Optional[str]) -> Optional[str]:
    if not ip: return None
    try:
        addr = ipaddress.IPv4Address(ip.strip())
    except ValueError:
        return None
    return ".".join(reversed(str(addr).split(".")))

def _positive_port(port: Any) -> Optional[int]:
    try:
        p = int(port)
    except (TypeError, ValueError):
        return None
    return p if 0 < p <= 65535 else None

def tor_exit_query_name(client_ip: Optional[str], server_ip: Optional[str], server_port: Any) -> Optional[str]:
    client_rev = reverse_ipv4(client_ip)
    server_rev = reverse_ipv4(server_ip)
    port = _positive_port(server_port)
    if not client_rev or not server_rev or port is None: return None
    return f"{client_rev}.{port}.{server_rev}.{TOR_EXITLIST_ZONE}"

def lookup_tor_exit(client_ip: Optional[str], server_ip: Optional[str], server_port: Any,
                    timeout: float = DEFAULT_TOR_DNS_TIMEOUT, resolver: Any = None) -> TorDnsResult:
    """Ask the Tor exit list whether client_ip exits to server_ip:server_port.

    The query is bounded by ``timeout`` seconds; an expired lookup is reported as
    TIMEOUT rather than raised.
    """
    name = tor_exit_query_name(client_ip, server_ip, server_port)
    if name is None:
        return TorDnsResult(TorDnsOutcome.INVALID_INPUT)
    try:
        if resolver is None:
            resolver = dns.resolver.Resolver()
            resolver.timeout = timeout
            resolver.lifetime = timeout
        answer = resolver.resolve(name, "A")
        outcome = TorDnsOutcome.LISTED if len(answer) else TorDnsOutcome.NOT_LISTED
    except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
        outcome = TorDnsOutcome.NOT_LISTED
    except dns.exception.Timeout:
        outcome = TorDnsOutcome.TIMEOUT
    except dns.exception.DNSException as e:
        logger.debug("tor exit lookup for %s failed: %s", name, e)
        outcome = TorDnsOutcome.ERROR
    logger.debug("tor exit lookup %s -> %s", name, outcome.value)
    return TorDnsResult(outcome, name)

def tor_exit_dns_check(client_ip: Optional[str], server_ip: Optional[str], server_port: Any,
                       timeout: float = DEFAULT_TOR_DNS_TIMEOUT, resolver: Any = None) -> Optional[bool]:
    return lookup_tor_exit(client_ip, server_ip, server_port, timeout, resolver).listed

def is_tor_browser_ua(ua: Optional[str]) -> bool:
    if not ua: return False
    low = ua.lower()
    return "torbrowser" in low or "tor browser" in low

def classify_tor(dns_result: TorDnsResult, ua_match: bool) -> TorSignal:
    if dns_result.outcome is TorDnsOutcome.LISTED:
        status = Signal.YES
    elif ua_match:
        status = Signal.MAYBE
    else:
        status = Signal.UNKNOWN
    return TorSignal(status=status, dns_outcome=dns_result.outcome, dns_query=dns_result.query, ua_match=ua_match)
