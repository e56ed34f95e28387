"""
In-process log of actions taken against findings, keyed by (tenant, finding id, action type).
Finding ids are deterministic, so an action recorded today matches the same finding tomorrow.

Memory is bounded: each key keeps its newest `action_log_max_per_key` records, and once
`action_log_max_keys` keys exist the least recently written key is dropped.
"""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict, deque
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from .config_loader import get
from .observability.logger import log_action_taken

logger = logging.getLogger(__name__)

ACTION_TYPES = ("applied", "dismissed", "snoozed", "reviewed")


class ActionRecord(BaseModel):
    tenant_id: str
    finding_id: str
    action_type: str
    actor: Optional[str] = None
    note: Optional[str] = None
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ActionLog:
    def __init__(self, max_per_key: Optional[int] = None, max_keys: Optional[int] = None) -> None:
        self._lock = threading.Lock()
        self._records: OrderedDict[tuple[str, str, str], deque[ActionRecord]] = OrderedDict()
        self._max_per_key = max_per_key
        self._max_keys = max_keys

    def _limits(self) -> tuple[int, int]:
        per_key = self._max_per_key if self._max_per_key is not None else int(get("action_log_max_per_key", 100))
        keys = self._max_keys if self._max_keys is not None else int(get("action_log_max_keys", 10000))
        return max(per_key, 1), max(keys, 1)

    def record(
        self,
        tenant_id: str,
        finding_id: str,
        action_type: str,
        actor: Optional[str] = None,
        note: Optional[str] = None,
    ) -> ActionRecord:
        entry = ActionRecord(tenant_id=tenant_id, finding_id=finding_id, action_type=action_type, actor=actor, note=note)
        per_key, max_keys = self._limits()
        key = (tenant_id, finding_id, action_type)
        with self._lock:
            q = self._records.get(key)
            if q is None or q.maxlen != per_key:
                q = deque(q or (), maxlen=per_key)
                self._records[key] = q
            q.append(entry)
            self._records.move_to_end(key)
            while len(self._records) > max_keys:
                evicted, _ = self._records.popitem(last=False)
                logger.debug("Action log full | evicted key=%s", evicted)
        log_action_taken(tenant_id, finding_id, action_type, actor)
        return entry

    def list(self, tenant_id: str, finding_id: str, action_type: Optional[str] = None) -> list[ActionRecord]:
        with self._lock:
            out = [
                r
                for (t, f, a), records in self._records.items()
                if t == tenant_id and f == finding_id and (action_type is None or a == action_type)
                for r in records
            ]
        return sorted(out, key=lambda r: r.recorded_at)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(q) for q in self._records.values())

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


_log = ActionLog()


def get_action_log() -> ActionLog:
    return _log
