"""
Price list collection: MongoDB ``prices`` -> Meilisearch ``prices``.
"""

from typing import Any, Dict, Optional

from searchsync.sync.config import IndexSettings, SyncConfig
from searchsync.sync.transform import record_id, ref_to_str, refs_to_str_list, to_timestamp_ms


def transform_price(doc: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Project a price record into a flat, filterable search document."""
    return {
        "id": record_id(doc),
        "code": doc.get("Code") or None,
        "name": doc.get("Name") or None,
        "price": doc.get("Price") or 0,
        "balance": doc.get("Balance") or 0,
        "measure": doc.get("Measure") or None,
        # Related documents stay searchable by id
        "userId": ref_to_str(doc.get("User")),
        "specOfferId": ref_to_str(doc.get("SpecOffer")),
        "priceId": ref_to_str(doc.get("PriceId")),
        "category": refs_to_str_list(doc.get("Category")),
        "region": refs_to_str_list(doc.get("Region")),
        # Epoch millis so the date is sortable
        "date": to_timestamp_ms(doc.get("Date")),
    }


PRICE_SETTINGS = IndexSettings(
    searchableAttributes=["name", "code"],
    filterableAttributes=[
        "category",
        "region",
        "price",
        "balance",
        "measure",
        "userId",
        "specOfferId",
        "priceId",
    ],
    sortableAttributes=["price", "balance", "date"],
    rankingRules=["words", "typo", "proximity", "attribute", "sort", "exactness"],
    typoTolerance={"enabled": True},
    pagination={"maxTotalHits": 10000},
)


PRICES = SyncConfig(
    collection="prices",
    index="prices",
    primary_key="id",
    transform=transform_price,
    settings=PRICE_SETTINGS,
)
