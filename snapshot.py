#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from http_signals import (HeaderMap, UserAgentInfo, normalize_headers, parse_accept_encoding,
                          parse_accept_language, parse_user_agent)
from net_heuristics import (DEFAULT_TOR_DNS_TIMEOUT, TorDnsOutcome, TorDnsResult, TorSignal, VpnSignal,
                            classify_tor, detect_forwarding, is_tor_browser_ua, lookup_tor_exit)


@dataclass(frozen=True)
class RequestContext:
    """Raw request metadata handed over by the transport."""
    remote_addr: Optional[str] = None
    remote_port: Optional[int] = None
    server_addr: Optional[str] = None
    server_name: Optional[str] = None
    server_port: Optional[int] = None
    https: bool = False
    method: Optional[str] = None
    request_uri: Optional[str] = None
    query_string: Optional[str] = None
    protocol: Optional[str] = None
    header_items: Optional[Tuple[Tuple[str, str], ...]] = None
    environ: Mapping[str, Any] = field(default_factory=dict)

    @property
    def effective_server_port(self) -> int:
        if self.server_port: return self.server_port
        return 443 if self.https else 80


@dataclass(frozen=True)
class RequestSnapshot:
    timestamp: datetime
    context: RequestContext
    headers: HeaderMap
    language_tags: List[str]
    encoding_tags: List[str]
    user_agent: UserAgentInfo
    vpn: VpnSignal
    tor: TorSignal

    @property
    def has_zstd(self) -> bool:
        return any(tag.lower() == "zstd" for tag in self.encoding_tags)

    @property
    def timestamp_iso(self) -> str:
        return self.timestamp.astimezone(timezone.utc).isoformat(timespec="seconds")

    def to_dict(self) -> Dict[str, Any]:
        ctx = self.context
        return {
            "timestamp_server_utc": self.timestamp_iso,
            "remote_addr": ctx.remote_addr,
            "remote_port": ctx.remote_port,
            "server_name": ctx.server_name,
            "https": ctx.https,
            "method": ctx.method,
            "request_uri": ctx.request_uri,
            "query_string": ctx.query_string,
            "protocol": ctx.protocol,
            "headers": dict(self.headers),
            "language_tags": list(self.language_tags),
            "encoding_tags": list(self.encoding_tags),
            "has_zstd": self.has_zstd,
            "ua_browser": self.user_agent.browser,
            "ua_os": self.user_agent.os,
            "vpn_status": self.vpn.status.value,
            "vpn_evidence_headers": list(self.vpn.evidence_headers),
            "forwarded_chain": [dict(h) for h in self.vpn.forwarded_chain],
            "tor_status": self.tor.status.value,
            "tor_dns_status": self.tor.dns_status,
            "tor_dns_outcome": self.tor.dns_outcome.value,
            "tor_ua_match": self.tor.ua_match,
        }


def build_snapshot(ctx: RequestContext, *, tor_dns_enabled: bool = True,
                   tor_dns_timeout: float = DEFAULT_TOR_DNS_TIMEOUT, resolver: Any = None,
                   now: Optional[datetime] = None) -> RequestSnapshot:
    headers = normalize_headers(ctx.header_items, ctx.environ)
    user_agent = headers.get("user-agent")
    if tor_dns_enabled:
        dns_result = lookup_tor_exit(ctx.remote_addr, ctx.server_addr, ctx.effective_server_port,
                                     timeout=tor_dns_timeout, resolver=resolver)
    else:
        dns_result = TorDnsResult(TorDnsOutcome.DISABLED)
    return RequestSnapshot(
        timestamp=now or datetime.now(timezone.utc),
        context=ctx,
        headers=headers,
        language_tags=parse_accept_language(headers.get("accept-language")),
        encoding_tags=parse_accept_encoding(headers.get("accept-encoding")),
        user_agent=parse_user_agent(user_agent),
        vpn=detect_forwarding(headers),
        tor=classify_tor(dns_result, is_tor_browser_ua(user_agent)),
    )
