"""
In-memory registry of preview tokens.

A preview token lets anyone holding it read one attachment inline until it
expires. Grants are multi-use: resolving a token does not consume it. Expired
grants are dropped the next time they are resolved, and ``issue`` also sweeps
the whole map every ``sweep_interval`` seconds so tokens that are never
opened again do not pile up.

The map lives in process memory only. Restarting the server invalidates every
outstanding link, and several server processes do not share tokens; a
multi-instance deployment needs a shared TTL store (Redis or similar) behind
the same interface.
"""

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from backend.models.task_model import Attachment
from backend.utils.errors import PreviewTokenExpired, PreviewTokenNotFound

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60
TOKEN_BYTES = 32  # 256 bits


@dataclass(frozen=True)
class PreviewGrant:
    task_id: str
    attachment: Attachment  # snapshot taken at issue time
    expires_at: float

    @property
    def attachment_id(self) -> str:
        return str(self.attachment.id)


class PreviewTokenRegistry:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        sweep_interval: Optional[float] = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._grants: Dict[str, PreviewGrant] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def __len__(self):
        with self._lock:
            return len(self._grants)

    def __contains__(self, token):
        with self._lock:
            return token in self._grants

    def issue(self, task_id, attachment: Attachment, ttl: Optional[float] = None) -> str:
        """Mint a new token for one attachment of one task."""
        ttl = self.ttl_seconds if ttl is None else ttl
        self._maybe_sweep()

        token = secrets.token_urlsafe(TOKEN_BYTES)
        grant = PreviewGrant(task_id=str(task_id), attachment=attachment, expires_at=self._clock() + ttl)
        with self._lock:
            self._grants[token] = grant
        logger.info("Issued preview token for task %s attachment %s", task_id, attachment.id)
        return token

    def resolve(self, token: str) -> PreviewGrant:
        """Return the grant for ``token``.

        Raises PreviewTokenNotFound for unknown tokens and PreviewTokenExpired
        (after removing the entry) once the expiry instant has passed.
        """
        with self._lock:
            grant = self._grants.get(token)
            if grant is None:
                raise PreviewTokenNotFound()
            if self._clock() > grant.expires_at:
                del self._grants[token]
                logger.info("Preview token for task %s expired", grant.task_id)
                raise PreviewTokenExpired()
            return grant

    def get(self, token: str) -> Optional[PreviewGrant]:
        with self._lock:
            return self._grants.get(token)

    def revoke(self, token: str) -> bool:
        with self._lock:
            return self._grants.pop(token, None) is not None

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [token for token, grant in self._grants.items() if now > grant.expires_at]
            for token in stale:
                del self._grants[token]
            self._last_sweep = now
        if stale:
            logger.info("Purged %d expired preview tokens", len(stale))
        return len(stale)

    def clear(self):
        with self._lock:
            self._grants.clear()

    def _maybe_sweep(self):
        if self.sweep_interval is None:
            return
        if self._clock() - self._last_sweep >= self.sweep_interval:
            self.purge_expired()
