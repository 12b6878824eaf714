"""
Rate limiting
Fixed-window counters keyed by limit type and client identifier. The
counter store is injected: in-process memory for a single worker, or a
DynamoDB table shared by every instance.
"""
import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from email.utils import formatdate
from typing import Callable, Dict, Optional, Tuple

from botocore.exceptions import ClientError
from fastapi import HTTPException, Request, status

from screening_api.services.aws import get_dynamodb_resource
from screening_api.services.device_tracker import extract_ip_address

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 5 * 60


@dataclass(frozen=True)
class RateLimitConfig:
    window_ms: int
    max_attempts: int


RATE_LIMITS: Dict[str, RateLimitConfig] = {
    "LOGIN": RateLimitConfig(window_ms=15 * 60 * 1000, max_attempts=5),
    "API": RateLimitConfig(window_ms=15 * 60 * 1000, max_attempts=100),
    "REFRESH": RateLimitConfig(window_ms=60 * 1000, max_attempts=10),
    "UPLOAD": RateLimitConfig(window_ms=60 * 1000, max_attempts=5),
}


@dataclass
class RateLimitEntry:
    count: int
    reset_time: int  # epoch millis


@dataclass
class RateLimitResult:
    allowed: bool
    remaining_attempts: int
    reset_time: int


# ========== STORES ==========

class InMemoryRateLimitStore:
    """
    Process-local counters

    Each worker process keeps its own map, so behind several processes the
    effective limit is multiplied by the process count.
    """

    def __init__(self):
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def consume(self, key: str, config: RateLimitConfig, now_ms: int) -> Tuple[bool, RateLimitEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry and now_ms > entry.reset_time:
                del self._entries[key]
                entry = None

            if entry is None:
                entry = RateLimitEntry(count=1, reset_time=now_ms + config.window_ms)
                self._entries[key] = entry
                return True, RateLimitEntry(entry.count, entry.reset_time)

            if entry.count >= config.max_attempts:
                return False, RateLimitEntry(entry.count, entry.reset_time)

            entry.count += 1
            return True, RateLimitEntry(entry.count, entry.reset_time)

    def cleanup(self, now_ms: int) -> int:
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now_ms > entry.reset_time]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class DynamoRateLimitStore:
    """
    Counters in a DynamoDB table (partition key "key")

    Items carry an "expires_at" epoch-seconds attribute for DynamoDB TTL, so
    cleanup is left to the table.
    """

    def __init__(self, table):
        self.table = table

    def consume(self, key: str, config: RateLimitConfig, now_ms: int) -> Tuple[bool, RateLimitEntry]:
        try:
            response = self.table.update_item(
                Key={"key": key},
                UpdateExpression="SET #count = #count + :one",
                ConditionExpression="attribute_exists(#key) AND #reset >= :now AND #count < :max",
                ExpressionAttributeNames={"#count": "count", "#reset": "reset_time", "#key": "key"},
                ExpressionAttributeValues={":one": 1, ":now": now_ms, ":max": config.max_attempts},
                ReturnValues="ALL_NEW",
            )
            attributes = response["Attributes"]
            return True, RateLimitEntry(int(attributes["count"]), int(attributes["reset_time"]))
        except ClientError as e:
            if e.response["Error"]["Code"] != "ConditionalCheckFailedException":
                raise

        existing = self.table.get_item(Key={"key": key}).get("Item")
        if existing and int(existing["reset_time"]) >= now_ms:
            return False, RateLimitEntry(int(existing["count"]), int(existing["reset_time"]))

        entry = RateLimitEntry(count=1, reset_time=now_ms + config.window_ms)
        self.table.put_item(
            Item={
                "key": key,
                "count": entry.count,
                "reset_time": entry.reset_time,
                "expires_at": entry.reset_time // 1000 + 60,
            }
        )
        return True, entry

    def cleanup(self, now_ms: int) -> int:
        return 0


# ========== LIMITER ==========

class RateLimiter:
    def __init__(self, store, limits: Optional[Dict[str, RateLimitConfig]] = None,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.limits = limits or RATE_LIMITS
        self.clock = clock

    def now_ms(self) -> int:
        return int(self.clock() * 1000)

    def check(self, identifier: str, limit_type: str = "API") -> RateLimitResult:
        """Count one attempt; the attempt past max_attempts within a window is refused"""
        config = self.limits[limit_type]
        allowed, entry = self.store.consume(f"{limit_type}:{identifier}", config, self.now_ms())

        if not allowed:
            logger.warning("Rate limit exceeded for %s:%s", limit_type, identifier)
            return RateLimitResult(allowed=False, remaining_attempts=0, reset_time=entry.reset_time)

        return RateLimitResult(
            allowed=True,
            remaining_attempts=config.max_attempts - entry.count,
            reset_time=entry.reset_time,
        )

    def cleanup(self) -> int:
        return self.store.cleanup(self.now_ms())

    def create_rate_limit_headers(self, result: RateLimitResult, limit_type: str = "API") -> Dict[str, str]:
        config = self.limits[limit_type]
        if result.remaining_attempts <= 0:
            retry_after = max(0, -(-(result.reset_time - self.now_ms()) // 1000))
        else:
            retry_after = 0
        return {
            "X-RateLimit-Limit": str(config.max_attempts),
            "X-RateLimit-Remaining": str(max(0, result.remaining_attempts)),
            "X-RateLimit-Reset": str(result.reset_time),
            "X-RateLimit-Reset-Date": formatdate(result.reset_time / 1000, usegmt=True),
            "Retry-After": str(retry_after),
        }

    def enforce(self, identifier: str, limit_type: str, detail: str) -> RateLimitResult:
        """check() that raises a 429 carrying the rate-limit headers"""
        result = self.check(identifier, limit_type)
        if not result.allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=detail,
                headers=self.create_rate_limit_headers(result, limit_type),
            )
        return result


def build_rate_limiter(settings) -> RateLimiter:
    if settings.RATE_LIMIT_BACKEND == "dynamodb":
        table = get_dynamodb_resource().Table(settings.RATE_LIMIT_TABLE)
        return RateLimiter(DynamoRateLimitStore(table))
    return RateLimiter(InMemoryRateLimitStore())


def get_rate_limiter(request: Request) -> RateLimiter:
    """Dependency to get the application's rate limiter"""
    return request.app.state.rate_limiter


def get_client_ip(request: Request) -> str:
    remote_addr = request.client.host if request.client else None
    return extract_ip_address(request.headers, remote_addr)


async def sweep_expired_entries(limiter: RateLimiter, interval: float = SWEEP_INTERVAL_SECONDS):
    """Background task: drop expired counters until cancelled"""
    while True:
        await asyncio.sleep(interval)
        removed = limiter.cleanup()
        if removed:
            logger.info("Swept %d expired rate-limit entries", removed)
