"""Expiry worker: periodically cancels delivery requests whose countdown
elapsed without a claim, for requester clients that went away mid-wait."""

from __future__ import annotations

import json
import logging
import os
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger("rider_dispatch.expiry_worker")

ENV_PREFIX = "RIDER_DISPATCH_EXPIRY_WORKER_"
SWEEP_PATH = "/api/v1/delivery-requests/expire-stale"


@dataclass(frozen=True)
class ExpiryWorkerSettings:
    api_base_url: str
    interval_s: int
    timeout_s: float
    auth_token: str | None
    max_retries: int
    retry_backoff_s: float


@dataclass(frozen=True)
class SweepResult:
    ok: bool
    expired_count: int
    status_code: int | None = None
    error: str | None = None
    attempts: int = 1


def load_settings(env: dict[str, str] | None = None) -> ExpiryWorkerSettings:
    source = env if env is not None else os.environ

    def value(name: str, default: str) -> str:
        return source.get(f"{ENV_PREFIX}{name}", default).strip()

    interval_s = int(value("INTERVAL_S", "15"))
    timeout_s = float(value("TIMEOUT_S", "5"))
    max_retries = int(value("MAX_RETRIES", "2"))
    retry_backoff_s = float(value("RETRY_BACKOFF_S", "0.5"))

    if interval_s < 1:
        raise ValueError(f"{ENV_PREFIX}INTERVAL_S must be >= 1")
    if timeout_s <= 0:
        raise ValueError(f"{ENV_PREFIX}TIMEOUT_S must be > 0")
    if max_retries < 0:
        raise ValueError(f"{ENV_PREFIX}MAX_RETRIES must be >= 0")
    if retry_backoff_s < 0:
        raise ValueError(f"{ENV_PREFIX}RETRY_BACKOFF_S must be >= 0")

    return ExpiryWorkerSettings(
        api_base_url=value("API_BASE_URL", "http://localhost:8000").rstrip("/"),
        interval_s=interval_s,
        timeout_s=timeout_s,
        auth_token=source.get(f"{ENV_PREFIX}AUTH_TOKEN") or None,
        max_retries=max_retries,
        retry_backoff_s=retry_backoff_s,
    )


def _decode_sweep_response(raw: str) -> tuple[bool, int, str | None]:
    if not raw:
        return True, 0, None
    try:
        body = json.loads(raw)
    except json.JSONDecodeError:
        return False, 0, "Invalid JSON in sweep response"

    try:
        expired = int(body.get("expired", 0))
    except (AttributeError, TypeError, ValueError):
        return False, 0, "Invalid expired value in sweep response"
    if expired < 0:
        return False, 0, "expired must be >= 0 in sweep response"
    return True, expired, None


def run_sweep_once(
    settings: ExpiryWorkerSettings,
    opener: Callable[..., object] = urllib.request.urlopen,
) -> SweepResult:
    headers = {"Content-Type": "application/json"}
    if settings.auth_token:
        headers["Authorization"] = f"Bearer {settings.auth_token}"
    request = urllib.request.Request(
        url=f"{settings.api_base_url}{SWEEP_PATH}",
        data=b"{}",
        method="POST",
        headers=headers,
    )

    try:
        with opener(request, timeout=settings.timeout_s) as response:
            valid, expired, error = _decode_sweep_response(response.read().decode("utf-8"))
            return SweepResult(
                ok=valid,
                expired_count=expired,
                status_code=getattr(response, "status", 200),
                error=error,
            )
    except urllib.error.HTTPError as exc:
        return SweepResult(
            ok=False,
            expired_count=0,
            status_code=exc.code,
            error=f"HTTPError: {exc.code}",
        )
    except urllib.error.URLError as exc:
        return SweepResult(ok=False, expired_count=0, error=f"URLError: {exc.reason}")


def _is_retryable(result: SweepResult) -> bool:
    if result.ok:
        return False
    if result.status_code is None:
        return True
    if result.status_code in {408, 429}:
        return True
    return result.status_code >= 500


def run_sweep_with_retries(
    settings: ExpiryWorkerSettings,
    opener: Callable[..., object] = urllib.request.urlopen,
    sleep: Callable[[float], None] = time.sleep,
) -> SweepResult:
    for attempts in range(1, settings.max_retries + 2):
        result = run_sweep_once(settings, opener=opener)
        if result.ok or not _is_retryable(result) or attempts > settings.max_retries:
            if not result.ok:
                logger.warning(
                    "Expiry sweep failed after %s attempt(s): %s", attempts, result.error
                )
            return SweepResult(
                ok=result.ok,
                expired_count=result.expired_count,
                status_code=result.status_code,
                error=result.error,
                attempts=attempts,
            )

        sleep(settings.retry_backoff_s * (2 ** (attempts - 1)))

    raise RuntimeError("sweep retry loop exhausted unexpectedly")


def run_forever(
    settings: ExpiryWorkerSettings,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    while True:
        result = run_sweep_with_retries(settings, sleep=sleep)
        if result.ok and result.expired_count:
            logger.info("Expired %s stale delivery request(s)", result.expired_count)
        sleep(settings.interval_s)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_forever(load_settings())
