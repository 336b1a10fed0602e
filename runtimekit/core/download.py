"""
Network access with bounded retries, timeouts and checksum verification.

This module provides the only suspension points of RuntimeKit:
- JSON fetches for release indexes
- Streaming archive downloads with progress reporting
- Retry logic with exponential backoff, jitter and a capped delay
- Optional SHA256 verification during download

Transient failures (connection errors, timeouts, HTTP 408/429/5xx) are retried
up to ``RetryPolicy.max_attempts``; anything else fails on the first attempt.
"""

import hashlib
import logging
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

import requests
from requests.exceptions import (
    ChunkedEncodingError,
    ConnectionError,
    HTTPError,
    RequestException,
    SSLError,
    Timeout,
)

from runtimekit.core.exceptions import ChecksumError, DownloadError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Retried in addition to every 5xx status
TRANSIENT_STATUS_CODES = frozenset({408, 429})
USER_AGENT = "runtimekit"


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff.

    The delay before retry ``n`` (0-based) is
    ``min(max_delay, base_delay * 2**n)`` plus a random extra of up to
    ``jitter`` times that value, capped again at ``max_delay``.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.2

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("Retry delays and jitter must not be negative")

    def delay_for(self, attempt: int, rand: Callable[[], float] = random.random) -> float:
        """
        Compute the sleep before the retry that follows ``attempt``.

        Args:
            attempt: 0-based index of the attempt that just failed
            rand: Source of uniform values in [0, 1)

        Returns:
            Delay in seconds
        """
        delay = min(self.max_delay, self.base_delay * (2**attempt))
        return min(self.max_delay, delay + delay * self.jitter * rand())


DEFAULT_RETRY_POLICY = RetryPolicy()


@dataclass
class DownloadProgress:
    """Progress information for a download."""

    bytes_downloaded: int
    total_bytes: int
    speed_bps: float  # bytes per second

    @property
    def percentage(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return self.bytes_downloaded / self.total_bytes * 100

    def __str__(self) -> str:
        return format_progress(self)


def _status_code(error: BaseException) -> Optional[int]:
    response = getattr(error, "response", None)
    return getattr(response, "status_code", None)


def is_transient_error(error: BaseException) -> bool:
    """
    Decide whether a failed request is worth retrying.

    Args:
        error: Exception raised by requests

    Returns:
        True for connection resets, DNS failures, timeouts, truncated bodies
        and HTTP 408/429/5xx; False for everything else (404, bad URLs,
        TLS failures, redirect loops, ...)
    """
    if isinstance(error, Timeout):
        return True
    if isinstance(error, SSLError):
        return False
    if isinstance(error, (ConnectionError, ChunkedEncodingError)):
        return True
    if isinstance(error, HTTPError):
        status = _status_code(error)
        if status is None:
            return False
        return status in TRANSIENT_STATUS_CODES or 500 <= status < 600
    return False


def retry_call(
    operation: Callable[[], T],
    url: str,
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
    rand: Callable[[], float] = random.random,
) -> T:
    """
    Run a network operation with bounded retries.

    Args:
        operation: Zero-argument callable performing one attempt
        url: URL being fetched (for messages)
        policy: Retry policy (default: DEFAULT_RETRY_POLICY)
        sleep: Sleep function, replaceable by a fake clock in tests
        rand: Jitter source

    Returns:
        Whatever ``operation`` returns

    Raises:
        DownloadError: On a non-transient error, or once attempts run out
    """
    policy = policy or DEFAULT_RETRY_POLICY
    last_error: Optional[RequestException] = None

    for attempt in range(policy.max_attempts):
        try:
            return operation()
        except RequestException as e:
            if not is_transient_error(e):
                raise DownloadError(
                    f"Request to {url} failed: {e}",
                    url=url,
                    attempts=attempt + 1,
                    status_code=_status_code(e),
                ) from e

            last_error = e
            if attempt == policy.max_attempts - 1:
                break

            delay = policy.delay_for(attempt, rand)
            logger.warning(
                f"Attempt {attempt + 1}/{policy.max_attempts} for {url} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            sleep(delay)

    raise DownloadError(
        f"Request to {url} failed after {policy.max_attempts} attempts: {last_error}",
        url=url,
        attempts=policy.max_attempts,
        status_code=_status_code(last_error) if last_error else None,
    ) from last_error


def _http_get(session: Optional[requests.Session], url: str, **kwargs):
    headers = {"User-Agent": USER_AGENT}
    headers.update(kwargs.pop("headers", None) or {})
    getter = session.get if session is not None else requests.get
    return getter(url, headers=headers, **kwargs)


def fetch_json(
    url: str,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 30,
    policy: Optional[RetryPolicy] = None,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """
    Fetch and decode a JSON document.

    Args:
        url: URL to fetch
        headers: Extra request headers
        timeout: Per-request timeout in seconds
        policy: Retry policy
        session: Optional requests session
        sleep: Sleep function used between retries

    Returns:
        Decoded JSON value

    Raises:
        DownloadError: If the request fails or the body is not valid JSON
    """

    def attempt():
        response = _http_get(session, url, headers=headers, timeout=timeout)
        response.raise_for_status()
        return response

    response = retry_call(attempt, url, policy=policy, sleep=sleep)

    try:
        return response.json()
    except ValueError as e:
        raise DownloadError(f"Malformed JSON from {url}: {e}", url=url) from e


def fetch_text(
    url: str,
    timeout: float = 30,
    policy: Optional[RetryPolicy] = None,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Fetch a small text document (e.g. SHASUMS256.txt) with retries."""

    def attempt():
        response = _http_get(session, url, timeout=timeout)
        response.raise_for_status()
        return response.text

    return retry_call(attempt, url, policy=policy, sleep=sleep)


def download_file(
    url: str,
    destination: Path,
    expected_sha256: Optional[str] = None,
    progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    timeout: float = 30,
    policy: Optional[RetryPolicy] = None,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Path:
    """
    Download file from URL to destination with retry logic.

    Every attempt rewrites the destination from scratch.

    Args:
        url: URL to download from
        destination: Local path to save file
        expected_sha256: Expected SHA256 hash (verified after download)
        progress_callback: Optional callback for progress updates
        timeout: Request timeout in seconds
        policy: Retry policy
        session: Optional requests session
        sleep: Sleep function used between retries

    Returns:
        Path to downloaded file

    Raises:
        DownloadError: If download fails after retries
        ChecksumError: If checksum doesn't match expected value
        ValueError: If URL or destination is empty

    Example:
        >>> download_file(
        ...     "https://nodejs.org/dist/v20.19.5/node-v20.19.5-linux-x64.tar.gz",
        ...     Path("/tmp/node.tar.gz"),
        ... )
    """
    if not url:
        raise ValueError("URL cannot be empty")
    if not destination:
        raise ValueError("Destination path cannot be empty")

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    logger.info(f"Downloading {url}")
    digest = retry_call(
        lambda: _download_once(url, destination, progress_callback, timeout, session),
        url,
        policy=policy,
        sleep=sleep,
    )

    if expected_sha256 and digest.lower() != expected_sha256.lower():
        destination.unlink(missing_ok=True)
        raise ChecksumError(
            f"Checksum mismatch for {destination.name}: "
            f"expected {expected_sha256}, got {digest}",
            url=url,
        )

    logger.debug(f"Download complete: {destination}")
    return destination


def _download_once(
    url: str,
    destination: Path,
    progress_callback: Optional[Callable[[DownloadProgress], None]],
    timeout: float,
    session: Optional[requests.Session],
) -> str:
    """Perform one streaming download attempt and return the SHA256 hex digest."""
    with _http_get(session, url, stream=True, timeout=timeout, allow_redirects=True) as response:
        response.raise_for_status()

        content_length = response.headers.get("content-length")
        total_size = int(content_length) if content_length else 0

        hasher = hashlib.sha256()
        downloaded = 0
        start_time = time.monotonic()
        last_report = start_time

        with open(destination, "wb") as f:
            for chunk in response.iter_content(chunk_size=65536):
                if not chunk:
                    continue
                f.write(chunk)
                hasher.update(chunk)
                downloaded += len(chunk)

                now = time.monotonic()
                # At most twice a second, plus the final chunk
                if progress_callback and (now - last_report >= 0.5 or downloaded == total_size):
                    elapsed = now - start_time
                    progress_callback(
                        DownloadProgress(
                            bytes_downloaded=downloaded,
                            total_bytes=total_size,
                            speed_bps=downloaded / elapsed if elapsed > 0 else 0.0,
                        )
                    )
                    last_report = now

        return hasher.hexdigest()


def format_progress(progress: DownloadProgress) -> str:
    """
    Format progress for display.

    Example:
        >>> format_progress(DownloadProgress(52428800, 104857600, 1048576))
        '50.0/100.0 MB (50.0%) at 1.0 MB/s'
    """
    mb_downloaded = progress.bytes_downloaded / 1024 / 1024
    speed_mbps = progress.speed_bps / 1024 / 1024

    if progress.total_bytes > 0:
        mb_total = progress.total_bytes / 1024 / 1024
        return (
            f"{mb_downloaded:.1f}/{mb_total:.1f} MB "
            f"({progress.percentage:.1f}%) at {speed_mbps:.1f} MB/s"
        )
    return f"{mb_downloaded:.1f} MB at {speed_mbps:.1f} MB/s"


__all__ = [
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
    "DownloadProgress",
    "is_transient_error",
    "retry_call",
    "fetch_json",
    "fetch_text",
    "download_file",
    "format_progress",
]
