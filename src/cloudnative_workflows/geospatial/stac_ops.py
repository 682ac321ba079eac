"""STAC operations for searching catalogs and signing asset URLs."""

from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import parse_qs, urlparse

import planetary_computer
import requests
from dagster import AssetExecutionContext, OpExecutionContext
from pystac_client.exceptions import APIError

from cloudnative_workflows.config.constants import DEFAULT_MAX_ITEMS, DEFAULT_SIGNED_URL_TTL_SECONDS
from cloudnative_workflows.exceptions import EmptyResultError, RequestError, SchemaError
from cloudnative_workflows.models.models import BoundingRegion, CatalogItem, SignedCatalogItem


def search_items(
    context: OpExecutionContext | AssetExecutionContext,
    stac_client: Any,
    collection_id: str,
    region: BoundingRegion | Mapping[str, Any] | Sequence[float],
    datetime_range: str | None = None,
    query: dict[str, Any] | None = None,
    max_items: int | None = DEFAULT_MAX_ITEMS,
) -> list[CatalogItem]:
    """Search a collection for items intersecting a region.

    The region is validated before any request is issued. A search with no
    matches returns an empty list.

    :param context: Dagster context
    :param stac_client: STAC client
    :param collection_id: Collection ID
    :param region: Bounding region
    :param datetime_range: Optional datetime or interval, e.g. "2024-06-01/2024-06-30"
    :param query: Optional STAC query extension filter
    :param max_items: Maximum number of items to return
    :returns: List of catalog items
    :raises pydantic.ValidationError: If the region is malformed
    :raises RequestError: If the search request fails
    """
    bounding_region = BoundingRegion.coerce(region)

    search_kwargs: dict[str, Any] = {
        "collections": [collection_id],
        "bbox": list(bounding_region.bounds),
        "max_items": max_items,
    }
    if datetime_range:
        search_kwargs["datetime"] = datetime_range
    if query:
        search_kwargs["query"] = query

    try:
        items = [CatalogItem.from_pystac(item) for item in stac_client.search(**search_kwargs).items()]
    except (APIError, requests.RequestException) as e:
        raise RequestError(f"Search of {collection_id} failed: {e}") from e

    if not items:
        context.log.info(f"No {collection_id} items found in {bounding_region.bounds}")
        return []

    context.log.info(f"Found {len(items)} {collection_id} item(s) in {bounding_region.bounds}")
    return items


def search_first_item(
    context: OpExecutionContext | AssetExecutionContext,
    stac_client: Any,
    collection_id: str,
    region: BoundingRegion | Mapping[str, Any] | Sequence[float],
    datetime_range: str | None = None,
    query: dict[str, Any] | None = None,
) -> CatalogItem:
    """Search a collection and return the first match.

    :param context: Dagster context
    :param stac_client: STAC client
    :param collection_id: Collection ID
    :param region: Bounding region
    :param datetime_range: Optional datetime or interval
    :param query: Optional STAC query extension filter
    :returns: First catalog item
    :raises EmptyResultError: If no item intersects the region
    """
    items = search_items(context, stac_client, collection_id, region, datetime_range, query, max_items=1)
    item = first_item(items, f"{collection_id} items intersecting {BoundingRegion.coerce(region).bounds}")
    context.log.info(f"Available assets: {list(item.assets)}")
    return item


def first_item(items: Sequence[CatalogItem], description: str = "catalog items") -> CatalogItem:
    """Return the first item of a search result.

    :param items: Search result
    :param description: What was searched for, used in the error message
    :returns: First catalog item
    :raises EmptyResultError: If the result is empty
    """
    if not items:
        raise EmptyResultError(f"No {description} found")
    return items[0]


def _token_expiry(href: str) -> datetime | None:
    """Read the expiry of a SAS token from a signed href.

    :param href: Signed URL
    :returns: Expiry time or None if the URL carries no ``se`` parameter
    """
    values = parse_qs(urlparse(href).query).get("se")
    if not values:
        return None
    try:
        expiry = datetime.fromisoformat(values[0].replace("Z", "+00:00"))
    except ValueError:
        return None
    return expiry if expiry.tzinfo else expiry.replace(tzinfo=timezone.utc)


def sign_item(
    item: CatalogItem,
    signer: Callable[[str], str] = planetary_computer.sign,
    now: datetime | None = None,
) -> SignedCatalogItem:
    """Attach time-limited access tokens to every asset href of an item.

    The unsigned item is left untouched, so signing it again always yields a
    fresh, independent set of hrefs.

    :param item: Unsigned catalog item
    :param signer: Function turning an href into a signed href
    :param now: Signing time, defaults to the current time
    :returns: Signed catalog item
    :raises RequestError: If the signing service cannot be reached
    """
    signed_at = now or datetime.now(timezone.utc)
    try:
        signed_assets = {key: signer(href) for key, href in item.assets.items()}
    except requests.RequestException as e:
        raise RequestError(f"Could not sign assets of {item.id}: {e}") from e

    expiries = [expiry for expiry in map(_token_expiry, signed_assets.values()) if expiry is not None]
    expires_at = min(expiries) if expiries else signed_at + timedelta(seconds=DEFAULT_SIGNED_URL_TTL_SECONDS)
    return SignedCatalogItem(item=item, assets=signed_assets, signed_at=signed_at, expires_at=expires_at)


def select_asset_href(signed_item: SignedCatalogItem, preferences: Sequence[str]) -> tuple[str, str]:
    """Select the first preferred asset present on a signed item.

    :param signed_item: Signed catalog item
    :param preferences: Asset keys in order of preference
    :returns: Tuple of (asset_key, signed_href)
    :raises SchemaError: If none of the preferred assets exist
    """
    for asset_key in preferences:
        if asset_key in signed_item.assets:
            return asset_key, signed_item.assets[asset_key]
    raise SchemaError(
        f"Could not find any of assets {list(preferences)} on {signed_item.id}. "
        f"Available assets: {list(signed_item.assets)}"
    )
