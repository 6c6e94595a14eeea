from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Union

from django.conf import settings

logger = logging.getLogger(__name__)

# One lock per process: every sampler appends to the same file
_append_lock = threading.Lock()


def _reject_constant(name: str):
    raise ValueError(f"non-standard JSON constant {name}")


def _raw_json_text(body: str) -> str:
    """JSON text to embed for ``body``: the body itself when it is strict JSON, else a string.

    Line breaks in valid JSON only occur as whitespace between tokens, so they are
    folded to spaces to keep one record per line; every token stays verbatim.
    """
    try:
        json.loads(body, parse_constant=_reject_constant)
    except ValueError:
        return json.dumps(body, ensure_ascii=False)
    return body.strip().replace("\r", " ").replace("\n", " ")


class ResponseAuditLog:
    """Append-only JSON-lines record of raw offer-search responses.

    Failures are logged and never raised; auditing must not break pricing.
    """

    def __init__(self, path: Union[str, Path, None]):
        self.path = Path(path) if path else None

    @classmethod
    def from_settings(cls) -> "ResponseAuditLog":
        return cls(getattr(settings, 'PRICE_TRACK_AUDIT_PATH', None))

    def append(self, *, origin: str, destination: str, departure_date: str, raw_body: str) -> bool:
        if self.path is None:
            return False
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "origin": origin,
            "destination": destination,
            "departure_date": departure_date,
        }
        try:
            fields = json.dumps(entry, ensure_ascii=False)
            line = f'{fields[:-1]}, "raw_response": {_raw_json_text(raw_body)}}}'
            with _append_lock:
                with self.path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Failed to append audit record to %s: %s", self.path, exc)
            return False
        logger.debug("Audited %s-%s %s response to %s", origin, destination, departure_date, self.path)
        return True
