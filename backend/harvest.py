"""Client for the Harvest v2 REST API.

Every list endpoint is paginated; pages are fetched one after the other and
accumulated in memory. Any non-2xx page aborts the whole fetch.
"""
import logging
import os
import re

import requests

from schemas import HarvestClient, HarvestProject, HarvestTimeEntry, HarvestUser

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.harvestapp.com/v2"
PER_PAGE = 2000
DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}", re.ASCII)


class HarvestError(Exception):
    """Base class for Harvest failures."""


class HarvestConfigError(HarvestError):
    """Credentials are missing from the environment."""


class HarvestAPIError(HarvestError):
    def __init__(self, status_code: int, reason: str, body: str = ""):
        self.status_code = status_code
        self.reason = reason
        self.body = body
        super().__init__(f"Harvest API error: {status_code} {reason}. {body}".strip())


class InvalidDateFormat(ValueError):
    pass


def _get_base_url() -> str:
    return os.getenv("HARVEST_API_BASE", DEFAULT_API_BASE).rstrip("/")


def _get_headers() -> dict[str, str]:
    access_token = os.getenv("HARVEST_ACCESS_TOKEN")
    account_id = os.getenv("HARVEST_ACCOUNT_ID")

    if not access_token or not account_id:
        raise HarvestConfigError(
            "Missing Harvest API credentials. Please set HARVEST_ACCESS_TOKEN "
            "and HARVEST_ACCOUNT_ID environment variables."
        )

    return {
        "Authorization": f"Bearer {access_token}",
        "Harvest-Account-Id": account_id,
        "User-Agent": os.getenv("HARVEST_USER_AGENT", "Harvest Attendance Backend"),
        "Accept": "application/json",
    }


def fetch_paginated(endpoint: str, params: dict | None = None, items_key: str | None = None) -> list[dict]:
    """Fetch every page of a list endpoint and return the raw items."""
    headers = _get_headers()
    url = f"{_get_base_url()}{endpoint}"
    all_items: list[dict] = []
    page = 1

    while True:
        query = {**(params or {}), "page": page, "per_page": PER_PAGE}
        logger.debug(f"Harvest API request: {url} {query}")
        response = requests.get(url, headers=headers, params=query)

        if not response.ok:
            raise HarvestAPIError(response.status_code, response.reason or "", response.text)

        data = response.json()
        # Harvest wraps lists ({"time_entries": [...]}); tolerate bare arrays
        if items_key and isinstance(data, dict):
            items = data.get(items_key) or []
        else:
            items = data if isinstance(data, list) else []
        all_items.extend(items)

        total_pages = int(response.headers.get("X-Total-Pages") or 1)
        if page >= total_pages:
            break
        page += 1

    logger.info(f"Fetched {len(all_items)} items from {endpoint} in {page} page(s)")
    return all_items


def validate_date_range(date_from: str, date_to: str) -> None:
    if not date_from or not date_to:
        raise InvalidDateFormat("Both from and to date parameters are required")
    if not DATE_PATTERN.fullmatch(date_from) or not DATE_PATTERN.fullmatch(date_to):
        raise InvalidDateFormat(
            f"Invalid date format. Expected YYYY-MM-DD, got from: {date_from}, to: {date_to}"
        )


def fetch_users() -> list[HarvestUser]:
    return [HarvestUser.model_validate(item) for item in fetch_paginated("/users", items_key="users")]


def fetch_clients() -> list[HarvestClient]:
    return [HarvestClient.model_validate(item) for item in fetch_paginated("/clients", items_key="clients")]


def fetch_projects() -> list[HarvestProject]:
    return [HarvestProject.model_validate(item) for item in fetch_paginated("/projects", items_key="projects")]


def fetch_time_entries(date_from: str, date_to: str) -> list[HarvestTimeEntry]:
    """Fetch every time entry spent between date_from and date_to (inclusive)."""
    validate_date_range(date_from, date_to)
    items = fetch_paginated("/time_entries", {"from": date_from, "to": date_to}, items_key="time_entries")
    return [HarvestTimeEntry.model_validate(item) for item in items]
