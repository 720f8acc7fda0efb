"""Kubernetes CVE feed."""

from __future__ import annotations

import gzip
import json
import logging

from .appvuls import AppVulCollection
from .models import CVE_SOURCE_ROOT, AppModuleVul, CouldNotParseError, NotFoundError

logger = logging.getLogger(__name__)

K8S_DATA_FILE = "apps/k8s.json.gz"

_FETCH_FAILED = "Unable to fetch any vulnerabilities"


def _text(item: dict, key: str) -> str:
    value = item.get(key)
    return value if isinstance(value, str) else ""


def parse_k8s_feed(collection: AppVulCollection, data: bytes | str) -> int:
    """Add the feed's CVEs to the collection; return how many were added."""
    try:
        feed = json.loads(data)
    except ValueError as exc:
        logger.error("Failed to unmarshal the feed", extra={"fields": {"error": exc}})
        raise CouldNotParseError(_FETCH_FAILED) from exc
    if not isinstance(feed, dict):
        raise CouldNotParseError(_FETCH_FAILED)
    items = feed.get("items") or []
    if not isinstance(items, list):
        raise CouldNotParseError(_FETCH_FAILED)

    count = 0
    for item in items:
        if not isinstance(item, dict):
            continue
        cve = _text(item, "id")
        collection.add(
            AppModuleVul(
                vul_name=cve,
                description=_text(item, "summary"),
                app_name="kubernetes",
                module_name="kubernetes",
                link=_text(item, "url"),
                cves=[cve],
            )
        )
        count += 1

    if count == 0:
        logger.error("", extra={"fields": {"cve": count}})
        raise CouldNotParseError(_FETCH_FAILED)
    logger.info("", extra={"fields": {"cve": count}})
    return count


def k8s_update(collection: AppVulCollection, root: str = CVE_SOURCE_ROOT) -> int:
    """Load the gzip feed under root into the collection."""
    logger.info("fetching kubernetes vulnerabilities")
    path = root + K8S_DATA_FILE
    try:
        with gzip.open(path, "rb") as stream:
            data = stream.read()
    except FileNotFoundError as exc:
        logger.error("Cannot find local database", extra={"fields": {"file": path}})
        raise NotFoundError(_FETCH_FAILED) from exc
    except (OSError, EOFError) as exc:
        logger.error("Failed to create feed reader", extra={"fields": {"file": path}})
        raise CouldNotParseError(_FETCH_FAILED) from exc
    return parse_k8s_feed(collection, data)