"""Loyalty API Reference Client.

Reads product catalog and department reference data from the loyalty API.

Catalog lookups try three endpoints in order:
1. /material-catalogs/code/{code}          (body: data.item)
2. /material-catalogs/old-code/{code}      (body: data or the object itself)
3. /material-catalogs/material-code/{code} (body: data or the object itself)

Department lookups read the first item of
/departments?page=1&limit=25&branchcode={code}.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import aiohttp

from core.models.canonical import CatalogItem, Department
from connectors.base import (
    CatalogLookup,
    DepartmentLookup,
    ExternalServiceError,
    ReferenceNotFoundError,
)

logger = logging.getLogger(__name__)

CATALOG_PATHS = (
    "material-catalogs/code",
    "material-catalogs/old-code",
    "material-catalogs/material-code",
)


@dataclass
class LoyaltyApiConfig:
    """Configuration for the loyalty API."""
    base_url: str
    timeout_seconds: int = 30


def _catalog_from_raw(item_code: str, raw: Dict[str, Any]) -> CatalogItem:
    """Map a loyalty catalog object to a CatalogItem."""
    return CatalogItem(
        item_code=item_code,
        material_code=raw.get("materialCode"),
        unit=raw.get("unit"),
        product_category=raw.get("productType") or raw.get("producttype"),
        material_type=raw.get("materialType"),
        track_batch=bool(raw.get("trackBatch")),
        track_serial=bool(raw.get("trackSerial")),
        track_inventory=raw.get("trackInventory") is not False,
    )


class LoyaltyClient(CatalogLookup, DepartmentLookup):
    """HTTP client for loyalty reference data.

    Usage:
        async with LoyaltyClient(LoyaltyApiConfig(base_url)) as loyalty:
            item = await loyalty.by_item_code("SP001")
    """

    def __init__(self, config: LoyaltyApiConfig):
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def disconnect(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "LoyaltyClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.disconnect()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """GET a path; returns None on 404.

        Raises:
            ExternalServiceError: Other non-2xx status or transport failure
        """
        if self._session is None:
            await self.connect()

        url = f"{self.config.base_url.rstrip('/')}/{path}"
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        try:
            async with self._session.get(url, params=params, timeout=timeout) as response:
                if response.status == 404:
                    return None
                if response.status >= 400:
                    text = await response.text()
                    raise ExternalServiceError(f"Loyalty API error {response.status}: {text}", response.status)
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ExternalServiceError(f"Loyalty request to {url} failed: {e}") from e

    async def by_item_code(self, code: str) -> CatalogItem:
        """Look up a product, trying each catalog endpoint in turn."""
        item_code = code.strip()
        for index, path in enumerate(CATALOG_PATHS):
            body = await self._get(f"{path}/{quote(item_code, safe='')}")
            if not body:
                continue

            data = body.get("data", body) if isinstance(body, dict) else None
            raw = data.get("item") if index == 0 and isinstance(data, dict) else data
            if isinstance(raw, dict) and raw:
                return _catalog_from_raw(item_code, raw)

            logger.debug("No catalog data for %s at /%s", item_code, path)

        raise ReferenceNotFoundError("catalog item", item_code)

    async def by_branch_code(self, code: str) -> Department:
        """Look up the department of a branch."""
        body = await self._get("departments", {"page": 1, "limit": 25, "branchcode": code})
        items = ((body or {}).get("data") or {}).get("items") or []
        if not items:
            raise ReferenceNotFoundError("department", code)

        first = items[0]
        return Department(
            branch_code=code,
            company_code=first.get("ma_dvcs"),
            department_code=first.get("ma_bp"),
        )
