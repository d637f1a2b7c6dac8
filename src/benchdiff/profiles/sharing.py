import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..config.settings import (
    SHARE_MAX_RETRIES,
    SHARE_RETRY_BASE_DELAY,
    SHARE_UPLOAD_PATH,
)
from ..errors import ShareError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubProfile:
    name: str
    key: str


@dataclass(frozen=True)
class ShareResult:
    url: str
    key: str = ""
    sub_profiles: list[SubProfile] = field(default_factory=list)


def parse_share_response(payload: Any) -> ShareResult:
    if not isinstance(payload, dict):
        raise ShareError("profile sharing service returned a non-object response")
    raw_sub_profiles = payload.get("subProfiles") or []
    if not isinstance(raw_sub_profiles, list):
        raise ShareError("profile sharing service returned malformed subProfiles")
    sub_profiles: list[SubProfile] = []
    for item in raw_sub_profiles:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "")
        key = str(item.get("key") or "")
        if name and key:
            sub_profiles.append(SubProfile(name=name, key=key))
    return ShareResult(
        url=str(payload.get("url") or ""),
        key=str(payload.get("key") or ""),
        sub_profiles=sub_profiles,
    )


class ProfileShareClient:
    """Uploads raw pprof artifacts to a flamegraph.com compatible service."""

    def __init__(self, base_url: str, timeout: float) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def upload(self, data: bytes, name: str = "") -> ShareResult:
        """Upload one profile and return its shareable keys.

        Raises:
            ShareError: On non-2xx responses, network failures or malformed JSON.
        """
        url = f"{self._base_url}{SHARE_UPLOAD_PATH}"
        params = {"format": "pprof"}
        if name:
            params["name"] = name
        headers = {"Content-Type": "application/octet-stream"}
        last_exc: Exception | None = None

        for attempt in range(SHARE_MAX_RETRIES + 1):
            try:
                started_at = time.monotonic()
                with httpx.Client(timeout=self._timeout) as client:
                    resp = client.post(url, content=data, params=params, headers=headers)
                latency_ms = int((time.monotonic() - started_at) * 1000)

                # 4xx: fail-fast
                if 400 <= resp.status_code < 500:
                    raise ShareError(
                        f"profile upload rejected (status {resp.status_code}): {resp.text}",
                        status_code=resp.status_code,
                    )

                if resp.is_server_error:
                    logger.warning(
                        "Profile upload 5xx error (status=%d, latency=%dms, attempt=%d/%d)",
                        resp.status_code,
                        latency_ms,
                        attempt + 1,
                        SHARE_MAX_RETRIES + 1,
                    )
                    if attempt < SHARE_MAX_RETRIES:
                        _backoff(attempt)
                        continue
                    raise ShareError(
                        f"profile upload failed (status {resp.status_code}): {resp.text}",
                        status_code=resp.status_code,
                    )

                logger.debug(
                    "Profile upload success (status=%d, latency=%dms, bytes=%d)",
                    resp.status_code,
                    latency_ms,
                    len(data),
                )
                try:
                    payload = resp.json()
                except ValueError as exc:
                    raise ShareError("profile sharing service returned non-JSON response") from exc
                return parse_share_response(payload)

            except httpx.TimeoutException as exc:
                last_exc = exc
                logger.warning(
                    "Profile upload timeout after %.1fs (attempt=%d/%d)",
                    self._timeout,
                    attempt + 1,
                    SHARE_MAX_RETRIES + 1,
                )
                if attempt < SHARE_MAX_RETRIES:
                    _backoff(attempt)
                    continue
                raise ShareError(f"profile upload timed out after {self._timeout}s") from exc

            except httpx.RequestError as exc:
                last_exc = exc
                logger.warning(
                    "Profile upload network error: %s (attempt=%d/%d)",
                    exc,
                    attempt + 1,
                    SHARE_MAX_RETRIES + 1,
                )
                if attempt < SHARE_MAX_RETRIES:
                    _backoff(attempt)
                    continue
                raise ShareError(f"failed to reach profile sharing service: {exc}") from exc

            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                raise ShareError(f"profile upload failed: {exc}") from exc

        raise ShareError(
            f"profile upload failed after {SHARE_MAX_RETRIES + 1} attempts"
        ) from last_exc


def _backoff(attempt: int) -> None:
    delay = SHARE_RETRY_BASE_DELAY * (2**attempt) + random.uniform(0, 0.5)  # nosec B311
    time.sleep(delay)
