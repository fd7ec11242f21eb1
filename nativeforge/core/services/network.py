"""
Registry reachability probe.

Snapshot capture is the only operation allowed to need the network, so
it checks the registry up front and fails with NetworkUnavailable
before materialising anything. Offline builds never call this module.
"""

from __future__ import annotations

import logging
import time
import urllib.error
import urllib.request

logger = logging.getLogger(__name__)

_USER_AGENT = "nativeforge/0.1"

# Substrings in a downstream tool's stderr that mean "could not reach the registry"
NETWORK_ERROR_MARKERS = (
    "could not resolve host",
    "couldn't resolve host",
    "failed to download",
    "failed to query replaced source registry",
    "network failure",
    "spurious network error",
    "connection refused",
    "connection timed out",
    "failed to connect",
    "temporary failure in name resolution",
)


def looks_like_network_error(diagnostic: str) -> bool:
    text = diagnostic.lower()
    return any(marker in text for marker in NETWORK_ERROR_MARKERS)


def check_registry_reachable(url: str, timeout: int = 5) -> dict:
    """Probe a package registry endpoint.

    Returns::

        {"reachable": True, "url": "https://...", "status": 200, "latency_ms": 42}
        or
        {"reachable": False, "url": "https://...", "error": "...", "latency_ms": 5000}

    Any HTTP response (even 4xx) counts as reachable: the host answered.
    """
    start = time.monotonic()
    req = urllib.request.Request(url, method="HEAD", headers={"User-Agent": _USER_AGENT})

    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            status = resp.getcode()
    except urllib.error.HTTPError as exc:
        status = exc.code
    except Exception as exc:
        elapsed = int((time.monotonic() - start) * 1000)
        logger.debug("Registry probe %s failed: %s", url, exc)
        return {
            "reachable": False,
            "url": url,
            "error": str(exc)[:200],
            "latency_ms": elapsed,
        }

    elapsed = int((time.monotonic() - start) * 1000)
    logger.debug("Registry probe %s → %s in %dms", url, status, elapsed)
    return {"reachable": True, "url": url, "status": status, "latency_ms": elapsed}
