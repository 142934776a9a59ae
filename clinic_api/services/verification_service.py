"""One-time phone verification codes.

A code is issued per phone key, lives for a fixed window and tolerates a
bounded number of wrong guesses. Every terminal outcome (verified, expired,
locked out) removes the entry from the store.
"""
import logging
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from clinic_api.core.errors import (
    CodeExpired,
    CodeMismatch,
    InvalidInput,
    NoPendingCode,
    TooManyAttempts,
)

logger = logging.getLogger(__name__)

CODE_TTL = timedelta(minutes=10)
MAX_ATTEMPTS = 3


def _utc_now() -> datetime:
    return datetime.now(UTC)


def generate_code() -> str:
    """Uniform over [100000, 999999]."""
    return str(100000 + secrets.randbelow(900000))


@dataclass
class VerificationEntry:
    phone_key: str
    code: str
    expires_at: datetime
    attempts: int = 0


@dataclass
class VerificationResult:
    phone_key: str
    verified: bool = True


class VerificationStore(Protocol):
    def get(self, phone_key: str) -> VerificationEntry | None: ...

    def put(self, entry: VerificationEntry) -> None: ...

    def delete(self, phone_key: str) -> None: ...


class InMemoryVerificationStore:
    """Process-local store. Not durable: a restart drops every pending code."""

    def __init__(self) -> None:
        self._entries: dict[str, VerificationEntry] = {}

    def get(self, phone_key: str) -> VerificationEntry | None:
        return self._entries.get(phone_key)

    def put(self, entry: VerificationEntry) -> None:
        self._entries[entry.phone_key] = entry

    def delete(self, phone_key: str) -> None:
        self._entries.pop(phone_key, None)

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> list[VerificationEntry]:
        return list(self._entries.values())


class VerificationCodeManager:
    def __init__(
        self,
        store: VerificationStore | None = None,
        ttl: timedelta = CODE_TTL,
        max_attempts: int = MAX_ATTEMPTS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store if store is not None else InMemoryVerificationStore()
        self.ttl = ttl
        self.max_attempts = max_attempts
        self._clock = clock
        self._lock = threading.Lock()

    def issue_code(self, phone_key: str) -> str:
        if not phone_key:
            raise InvalidInput("Teléfono requerido")
        code = generate_code()
        entry = VerificationEntry(
            phone_key=phone_key,
            code=code,
            expires_at=self._clock() + self.ttl,
        )
        with self._lock:
            self.store.put(entry)
        logger.debug("Verification code issued for %s", phone_key)
        return code

    def check_code(self, phone_key: str, submitted_code: str) -> VerificationResult:
        if not phone_key:
            raise InvalidInput("Teléfono requerido")
        with self._lock:
            entry = self.store.get(phone_key)
            if entry is None:
                raise NoPendingCode()
            if self._clock() > entry.expires_at:
                self.store.delete(phone_key)
                raise CodeExpired()
            if entry.attempts >= self.max_attempts:
                self.store.delete(phone_key)
                raise TooManyAttempts()
            submitted = str(submitted_code).strip().encode()
            if not secrets.compare_digest(submitted, entry.code.encode()):
                entry.attempts += 1
                remaining = self.max_attempts - entry.attempts
                if remaining <= 0:
                    # Locked out: the next request must ask for a new code
                    self.store.delete(phone_key)
                    logger.info("Verification locked after %d attempts for %s", entry.attempts, phone_key)
                else:
                    self.store.put(entry)
                raise CodeMismatch(remaining=max(remaining, 0))
            self.store.delete(phone_key)
        logger.info("Phone verified: %s", phone_key)
        return VerificationResult(phone_key=phone_key)

    def discard(self, phone_key: str) -> None:
        with self._lock:
            self.store.delete(phone_key)

    def purge_expired(self) -> int:
        """Drop entries past their expiry. Only works with stores that can list entries."""
        entries = getattr(self.store, "entries", None)
        if entries is None:
            return 0
        now = self._clock()
        removed = 0
        with self._lock:
            for entry in entries():
                if now > entry.expires_at:
                    self.store.delete(entry.phone_key)
                    removed += 1
        return removed

    def pending_count(self) -> int:
        try:
            return len(self.store)  # type: ignore[arg-type]
        except TypeError:
            return 0
