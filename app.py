#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations
import ipaddress
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from flask import Flask, Response, jsonify, make_response, render_template, request

from client_signals import compare_language_lists, geoip_lookup, infer_device_class
from http_signals import normalize_headers, parse_accept_language
from net_heuristics import DEFAULT_TOR_DNS_TIMEOUT
from snapshot import RequestContext, RequestSnapshot, build_snapshot
from visit_log import VisitLog

# ----------------------------- Base paths -----------------------------
BASE_DIR = Path(__file__).resolve().parent
SERVICE_VERSION = "2026-10-19.r1"

app = Flask(__name__, template_folder=str(BASE_DIR / "templates"), static_folder=str(BASE_DIR / "static"))
logger = logging.getLogger(__name__)

CLI_MARKERS = ('curl/', 'wget/', 'httpie', 'python-requests', 'aiohttp', 'okhttp', 'node-fetch', 'axios',
               'postman', 'insomnia', 'powershell', 'go-http-client', 'libcurl', 'dart')

# ----------------------------- Config -----------------------------

def _env_flag(name: str, default: str) -> bool:
    return (os.getenv(name, default) or default) == "1"

def _tor_dns_timeout() -> float:
    raw = os.getenv("TOR_DNS_TIMEOUT_MS", "")
    try:
        ms = int(raw) if raw else int(DEFAULT_TOR_DNS_TIMEOUT * 1000)
    except ValueError:
        ms = int(DEFAULT_TOR_DNS_TIMEOUT * 1000)
    return max(ms, 1) / 1000.0

# ----------------------------- Request context -----------------------------

def _int_or_none(val: Any) -> Optional[int]:
    s = str(val if val is not None else "")
    return int(s) if s.isdigit() else None

def _server_ip(val: Optional[str]) -> Optional[str]:
    """A concrete server address for the exit-list query; wildcard and loopback binds are not."""
    if not val: return None
    try:
        ip = ipaddress.ip_address(val.strip())
    except ValueError:
        return None
    if ip.is_unspecified or ip.is_loopback: return None
    return ip.compressed

def request_context(req) -> RequestContext:
    env = req.environ
    https = bool(req.is_secure or (str(env.get("HTTPS") or "").lower() not in ("", "off")))
    server_addr = _server_ip(os.getenv("SERVER_PUBLIC_IP") or env.get("SERVER_ADDR"))
    return RequestContext(
        remote_addr=req.remote_addr,
        remote_port=_int_or_none(env.get("REMOTE_PORT")),
        server_addr=server_addr,
        server_name=env.get("SERVER_NAME"),
        server_port=_int_or_none(env.get("SERVER_PORT")),
        https=https,
        method=req.method,
        request_uri=env.get("REQUEST_URI") or (req.full_path if req.query_string else req.path),
        query_string=req.query_string.decode("latin-1"),
        protocol=env.get("SERVER_PROTOCOL"),
        header_items=tuple(req.headers.items()),
        environ=env,
    )

def take_snapshot(req) -> RequestSnapshot:
    snap = build_snapshot(request_context(req),
                          tor_dns_enabled=_env_flag("ENABLE_TOR_DNS", "1"),
                          tor_dns_timeout=_tor_dns_timeout())
    log_dir = os.getenv("VISIT_LOG_DIR", "")
    if log_dir:
        VisitLog(log_dir).append(snap)
    logger.debug("snapshot %s vpn=%s tor=%s/%s", snap.context.remote_addr, snap.vpn.status.value,
                 snap.tor.status.value, snap.tor.dns_outcome.value)
    return snap

# ----------------------------- Format negotiation -----------------------------

def _preferred_format() -> str:
    fmt = (request.args.get('format') or '').lower()
    if fmt in ('json', 'html'): return fmt
    accept = request.headers.get('Accept', '')
    ua = (request.headers.get('User-Agent', '') or '').lower()
    if any(m in ua for m in CLI_MARKERS): return 'json'
    if 'application/json' in accept and 'text/html' not in accept: return 'json'
    if 'text/html' in accept or any(b in ua for b in ('mozilla', 'safari', 'chrome', 'edg')): return 'html'
    return 'json'

def _finish(resp: Response) -> Response:
    resp.headers['Cache-Control'] = 'no-store'
    resp.headers['Server'] = 'fingerprint-inspector'
    resp.headers['Content-Security-Policy'] = "default-src 'self'; script-src 'none'; style-src 'self'"
    return resp

def _render(payload: Dict[str, Any], fmt: str) -> Response:
    if fmt == 'html':
        raw_json = json.dumps(payload, ensure_ascii=False, indent=2)
        return _finish(make_response(render_template("inspector.html", snap=payload, raw_json=raw_json,
                                                     service_version=SERVICE_VERSION)))
    return _finish(make_response(jsonify(payload)))

# ----------------------------- Endpoints -----------------------------

@app.route("/", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"])
def root():
    payload = take_snapshot(request).to_dict()
    fmt = _preferred_format() if request.method == 'GET' else 'json'
    return _render(payload, fmt)

@app.route('/json', methods=['GET', 'POST'])
def only_json():
    return _render(take_snapshot(request).to_dict(), 'json')

@app.route('/html', methods=['GET'])
def only_html():
    return _render(take_snapshot(request).to_dict(), 'html')

@app.route('/ip', methods=['GET'])
def client_ip():
    return _finish(Response((request.remote_addr or '') + "\n", mimetype='text/plain'))

@app.route('/headers', methods=['GET'])
def headers_plain():
    headers = normalize_headers(request.headers.items(), request.environ)
    lines = [f"{k}: {v}" for k, v in headers.items()]
    return _finish(Response("\n".join(lines) + "\n", mimetype='text/plain'))

@app.route('/geo', methods=['GET'])
def geo():
    ip = request.remote_addr
    record = geoip_lookup(ip, os.getenv("GEOIP_MMDB", ""))
    return _finish(make_response(jsonify({"ip": ip, "available": record is not None, "geo": record})))

@app.route('/compare', methods=['POST'])
def compare():
    body = request.get_json(silent=True)
    if not isinstance(body, dict): body = {}
    langs = body.get("languages")
    js_langs: List[str] = [s for s in langs if isinstance(s, str)] if isinstance(langs, list) else []
    try:
        dpr = float(body["dpr"]) if body.get("dpr") is not None else None
    except (TypeError, ValueError):
        dpr = None
    screen = body.get("screen") if isinstance(body.get("screen"), str) else None
    http_langs = parse_accept_language(request.headers.get("Accept-Language"))
    return _finish(make_response(jsonify({
        "language_match": compare_language_lists(js_langs, http_langs),
        "js_languages": js_langs,
        "http_languages": http_langs,
        "device_class": infer_device_class(screen, dpr),
    })))

@app.route("/healthz", methods=["GET", "HEAD"])
def healthz():
    return Response("ok", mimetype="text/plain")

if __name__ == "__main__":
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(),
                        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    port = int(os.environ.get("PORT", "80"))
    app.run(host="0.0.0.0", port=port)
