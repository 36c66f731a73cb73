# sitegen/core/job_status.py
"""
Job Status Registry: progress log, cancellation flag and completion payload per job.

State lives in a KeyValueStore with per-entry TTLs. The store sweeps expired
entries on every access, so no background cleanup thread is needed. Keys:

    <job>:progress      list of progress messages        (progress TTL)
    <job>:cancelled     flag read by the workflow        (progress TTL)
    <job>:cancel-notice one-shot flag consumed by poll   (progress TTL)
    <job>:completion    {"event": ..., "payload": ...}   (completion TTL)
    <job>:failure       terminal error message           (completion TTL)
"""
import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from sitegen.core.errors import TransportFailure
from sitegen.utils.config import COMPLETION_TTL_S, PROGRESS_TTL_S

logger = logging.getLogger(__name__)

DEFAULT_EVENT = "generate.completed"


# ----------------------------
# Store
# ----------------------------
class KeyValueStore:
    """Minimal store contract the registry needs. Implementations must make each call atomic."""

    def get(self, key: str) -> Any:
        raise NotImplementedError

    def expires_at(self, key: str) -> Optional[float]:
        raise NotImplementedError

    def keys(self, prefix: str = "") -> List[str]:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl_s: float) -> None:
        raise NotImplementedError

    def append(self, key: str, item: Any, ttl_s: float) -> List[Any]:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def sweep(self) -> int:
        raise NotImplementedError


class InMemoryTTLStore(KeyValueStore):
    """
    Process-local store guarded by a single lock.

    - Every entry carries an absolute expiry.
    - Each call sweeps expired entries first.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._clock = clock

    def _sweep_locked(self) -> int:
        now = self._clock()
        expired = [k for k, (_, exp) in self._entries.items() if exp <= now]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def get(self, key: str) -> Any:
        with self._lock:
            self._sweep_locked()
            entry = self._entries.get(key)
            return entry[0] if entry else None

    def expires_at(self, key: str) -> Optional[float]:
        with self._lock:
            self._sweep_locked()
            entry = self._entries.get(key)
            return entry[1] if entry else None

    def set(self, key: str, value: Any, ttl_s: float) -> None:
        with self._lock:
            self._sweep_locked()
            self._entries[key] = (value, self._clock() + ttl_s)

    def append(self, key: str, item: Any, ttl_s: float) -> List[Any]:
        with self._lock:
            self._sweep_locked()
            entry = self._entries.get(key)
            items = list(entry[0]) if entry else []
            items.append(item)
            self._entries[key] = (items, self._clock() + ttl_s)
            return list(items)

    def delete(self, key: str) -> None:
        with self._lock:
            self._sweep_locked()
            self._entries.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            self._sweep_locked()
            return [k for k in self._entries if k.startswith(prefix)]

    def sweep(self) -> int:
        with self._lock:
            return self._sweep_locked()

    def __len__(self) -> int:
        with self._lock:
            self._sweep_locked()
            return len(self._entries)


# ----------------------------
# Registry
# ----------------------------
@dataclass
class JobRecord:
    """Read-only snapshot of everything the registry holds for one job."""
    id: str
    progress_log: List[str] = field(default_factory=list)
    completion: Optional[Dict[str, Any]] = None
    failure: Optional[str] = None
    cancelled: bool = False
    expires_at: Optional[float] = None


def collapse_consecutive(messages: List[str]) -> List[str]:
    out: List[str] = []
    for m in messages:
        if not out or out[-1] != m:
            out.append(m)
    return out


class JobStatusRegistry:
    def __init__(self, store: Optional[KeyValueStore] = None,
                 completion_ttl_s: float = COMPLETION_TTL_S,
                 progress_ttl_s: float = PROGRESS_TTL_S) -> None:
        self.store = store if store is not None else InMemoryTTLStore()
        self.completion_ttl_s = completion_ttl_s
        self.progress_ttl_s = progress_ttl_s

    @staticmethod
    def _key(job_id: str, name: str) -> str:
        return f"{job_id}:{name}"

    def record_progress(self, job_id: str, message: str) -> None:
        # duplicates are kept here and collapsed when read
        self.store.append(self._key(job_id, "progress"), message, self.progress_ttl_s)

    def record_completion(self, job_id: str, payload: Dict[str, Any], event: str = DEFAULT_EVENT) -> bool:
        if self.is_cancelled(job_id):
            logger.info("Ignoring completion for cancelled job %s", job_id)
            return False
        self.store.set(self._key(job_id, "completion"), {"event": event, "payload": payload}, self.completion_ttl_s)
        return True

    def record_failure(self, job_id: str, message: str) -> bool:
        if self.is_cancelled(job_id):
            return False
        self.store.set(self._key(job_id, "failure"), message, self.completion_ttl_s)
        return True

    def request_cancellation(self, job_id: str) -> None:
        self.store.set(self._key(job_id, "cancelled"), True, self.progress_ttl_s)
        self.store.set(self._key(job_id, "cancel-notice"), True, self.progress_ttl_s)
        for name in ("progress", "completion", "failure"):
            self.store.delete(self._key(job_id, name))
        logger.info("Job cancelled: %s", job_id)

    def reset(self, job_id: str) -> None:
        """Forget everything about a job id before it is (re)started."""
        for name in ("progress", "completion", "failure", "cancelled", "cancel-notice"):
            self.store.delete(self._key(job_id, name))

    def is_cancelled(self, job_id: str) -> bool:
        return bool(self.store.get(self._key(job_id, "cancelled")))

    def poll(self, job_id: str, event: str = DEFAULT_EVENT) -> Tuple[int, Dict[str, Any]]:
        """
        Returns (http_status, body):
          200 {"cancelled": true}      once after a cancellation
          200 <completion payload>     when completed under `event`
          202 {"completed": false, "error": ..., "progress"?: [...]} after a terminal failure
          202 {"completed": false, "progress": [...]}
          202 {"completed": false}
        """
        if self.store.get(self._key(job_id, "cancel-notice")):
            for name in ("cancel-notice", "progress", "completion", "failure"):
                self.store.delete(self._key(job_id, name))
            return 200, {"cancelled": True}

        completion = self.store.get(self._key(job_id, "completion"))
        if completion and completion.get("event") == event:
            return 200, completion["payload"]

        body: Dict[str, Any] = {"completed": False}
        progress = self.store.get(self._key(job_id, "progress"))
        if progress:
            body["progress"] = collapse_consecutive(progress)
        failure = self.store.get(self._key(job_id, "failure"))
        if failure:
            body["error"] = failure
        return 202, body

    def snapshot(self, job_id: str) -> JobRecord:
        completion = self.store.get(self._key(job_id, "completion"))
        expiries = [self.store.expires_at(self._key(job_id, n)) for n in ("progress", "completion", "cancelled")]
        expires_at = max((e for e in expiries if e is not None), default=None)
        return JobRecord(
            id=job_id,
            progress_log=collapse_consecutive(self.store.get(self._key(job_id, "progress")) or []),
            completion=completion["payload"] if completion else None,
            failure=self.store.get(self._key(job_id, "failure")),
            cancelled=self.is_cancelled(job_id),
            expires_at=expires_at,
        )


# Global, process-local singleton
_REGISTRY: Optional[JobStatusRegistry] = None
_REGISTRY_LOCK = threading.Lock()


def get_registry() -> JobStatusRegistry:
    global _REGISTRY
    with _REGISTRY_LOCK:
        if _REGISTRY is None:
            _REGISTRY = JobStatusRegistry()
        return _REGISTRY


# ----------------------------
# Reporters (what the workflow talks to)
# ----------------------------
class LocalStatusReporter:
    """Writes straight into an in-process registry."""

    def __init__(self, registry: Optional[JobStatusRegistry] = None):
        self.registry = registry or get_registry()

    async def progress(self, job_id: str, message: str) -> None:
        self.registry.record_progress(job_id, message)

    async def complete(self, job_id: str, payload: Dict[str, Any], event: str = DEFAULT_EVENT) -> bool:
        return self.registry.record_completion(job_id, payload, event)

    async def fail(self, job_id: str, message: str) -> None:
        self.registry.record_failure(job_id, message)

    async def is_cancelled(self, job_id: str) -> bool:
        return self.registry.is_cancelled(job_id)


class HttpStatusReporter:
    """
    Talks to the /status surface of another process. Progress delivery is best
    effort; completion delivery raises TransportFailure so the step is retried.
    """

    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        r = self.session.post(f"{self.base_url}/status", json=body, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        r = self.session.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    async def progress(self, job_id: str, message: str) -> None:
        try:
            await asyncio.to_thread(self._post, {"jobId": job_id, "event": "progress", "progress": message})
        except requests.RequestException as e:
            logger.error("Failed to send progress for %s: %s", job_id, e)

    async def complete(self, job_id: str, payload: Dict[str, Any], event: str = DEFAULT_EVENT) -> bool:
        try:
            resp = await asyncio.to_thread(self._post, {"jobId": job_id, "event": event, "data": payload})
        except requests.RequestException as e:
            raise TransportFailure(f"completion delivery failed for {job_id}: {e}") from e
        return bool(resp.get("success", True))

    async def fail(self, job_id: str, message: str) -> None:
        try:
            await asyncio.to_thread(self._post, {"jobId": job_id, "error": message})
        except requests.RequestException as e:
            logger.error("Failed to report failure for %s: %s", job_id, e)

    async def is_cancelled(self, job_id: str) -> bool:
        try:
            data = await asyncio.to_thread(self._get, "/status/cancellation", {"jobId": job_id})
        except requests.RequestException as e:
            raise TransportFailure(f"cancellation check failed for {job_id}: {e}") from e
        return bool(data.get("cancelled"))
