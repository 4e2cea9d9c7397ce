#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations
import fcntl
import logging
import re
from pathlib import Path
from typing import Optional, Union

from snapshot import RequestSnapshot

logger = logging.getLogger(__name__)

_RE_LINE_BREAKERS = re.compile(r"[\t\r\n]")


def sanitize_log_field(value: Optional[str]) -> str:
    return _RE_LINE_BREAKERS.sub("", value or "")


class VisitLog:
    """Append-only, one file per UTC day, tab-separated."""

    def __init__(self, directory: Union[str, Path], prefix: str = "visits"):
        self.directory = Path(directory)
        self.prefix = prefix

    def path_for(self, snap: RequestSnapshot) -> Path:
        return self.directory / f"{self.prefix}-{snap.timestamp_iso[:10]}.log"

    def format_line(self, snap: RequestSnapshot) -> str:
        fields = (snap.timestamp_iso, snap.context.remote_addr, snap.headers.get("user-agent"))
        return "\t".join(sanitize_log_field(f) for f in fields) + "\n"

    def append(self, snap: RequestSnapshot) -> bool:
        """Write one line; any failure is logged and reported as False."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(self.path_for(snap), "a", encoding="utf-8") as fh:
                fcntl.flock(fh, fcntl.LOCK_EX)
                try:
                    fh.write(self.format_line(snap))
                    fh.flush()
                finally:
                    fcntl.flock(fh, fcntl.LOCK_UN)
        except OSError as e:
            logger.debug("visit log write failed: %s", e)
            return False
        return True
