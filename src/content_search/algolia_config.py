"""
Algolia Index Configuration.

Defines the logical indices, their settings, and the entity-to-record
mapping used by the sync service.
"""

from typing import Any, Dict, List, Optional

from core.utils import to_epoch_millis


# ============================================================================
# Logical Indices
# ============================================================================

# Logical index key -> index name suffix ({prefix}_{suffix})
INDEX_KEYS: Dict[str, str] = {
    "products": "products",
    "vendors": "vendors",
    "customers": "customers",
    "posts": "posts",
    "landingPages": "landing_pages",
}

# Entity type (singular, as stored in records) -> logical index key
ENTITY_TYPE_TO_INDEX: Dict[str, str] = {
    "product": "products",
    "vendor": "vendors",
    "customer": "customers",
    "post": "posts",
    "landingPage": "landingPages",
}

DEFAULT_INDEX_KEY = "products"


def get_index_names(prefix: str) -> Dict[str, str]:
    """Map each logical index key to its full Algolia index name."""
    return {key: f"{prefix}_{suffix}" if prefix else suffix for key, suffix in INDEX_KEYS.items()}


def index_key_for_entity_type(entity_type: str) -> str:
    """Resolve an entity type (or a logical index key) to a logical index key."""
    if entity_type in INDEX_KEYS:
        return entity_type
    return ENTITY_TYPE_TO_INDEX.get(entity_type, DEFAULT_INDEX_KEY)


# ============================================================================
# Query Defaults
# ============================================================================

TYPO_TOLERANCE_PARAMS: Dict[str, Any] = {
    "typoTolerance": True,
    "minWordSizefor1Typo": 4,
    "minWordSizefor2Typos": 8,
}

# Attributes that can hold a display name, in priority order
DISPLAY_NAME_ATTRIBUTES: List[str] = [
    "name",
    "title",
    "company_name",
    "first_name",
    "last_name",
]


# ============================================================================
# Index Settings
# ============================================================================

_COMMON_FACETS = [
    "entity_type",
    "category",
    "status",
    "tags",
    "filterOnly(user_id)",
]

ALGOLIA_INDEX_SETTINGS: Dict[str, Dict[str, Any]] = {
    "products": {
        "searchableAttributes": ["name", "sku", "unordered(description)", "category", "tags", "notes"],
        "attributesForFaceting": _COMMON_FACETS,
        "numericAttributesForFiltering": ["created_at", "unit_price"],
        "attributesToSnippet": ["description:30"],
        "customRanking": ["desc(updated_at)"],
    },
    "vendors": {
        "searchableAttributes": ["company_name", "contact_person", "email", "city", "country"],
        "attributesForFaceting": _COMMON_FACETS + ["vendor_type"],
        "numericAttributesForFiltering": ["created_at"],
        "customRanking": ["desc(updated_at)"],
    },
    "customers": {
        "searchableAttributes": ["first_name,last_name", "company", "email", "city", "country"],
        "attributesForFaceting": _COMMON_FACETS,
        "numericAttributesForFiltering": ["created_at"],
        "customRanking": ["desc(updated_at)"],
    },
    "posts": {
        "searchableAttributes": ["title", "unordered(description)", "unordered(content)", "tags"],
        "attributesForFaceting": _COMMON_FACETS,
        "numericAttributesForFiltering": ["created_at"],
        "attributesToSnippet": ["description:30", "content:30"],
        "customRanking": ["desc(created_at)"],
    },
    "landingPages": {
        "searchableAttributes": ["title", "unordered(description)", "tags"],
        "attributesForFaceting": _COMMON_FACETS,
        "numericAttributesForFiltering": ["created_at"],
        "attributesToSnippet": ["description:30"],
        "customRanking": ["desc(updated_at)"],
    },
}


# ============================================================================
# Record Mapping
# ============================================================================

_PRODUCT_FIELDS = [
    "name", "description", "category", "sku", "unit_price", "cost_price",
    "total_quantity", "total_available", "status", "notes",
]

_VENDOR_FIELDS = [
    "company_name", "contact_person", "email", "phone", "address",
    "city", "state", "country", "vendor_type", "status",
]

_CUSTOMER_FIELDS = [
    "first_name", "last_name", "email", "phone", "company", "address",
    "city", "state", "country", "status",
]


def _clean_tags(*values: Optional[str]) -> List[str]:
    return [v for v in values if v]


def prepare_entity_for_algolia(entity_type: str, entity: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert an entity row into an Algolia record.

    Every record carries objectID, entity_type and epoch-millisecond
    created_at / updated_at so numeric date filters work. Known types get a
    fixed attribute set; other types keep all their fields.

    Args:
        entity_type: Singular entity type (product, vendor, customer, ...).
        entity: Entity row; must contain 'id'.

    Returns:
        Record dict ready for save_object / save_objects.
    """
    if not entity.get("id"):
        raise ValueError(f"{entity_type} entity is missing 'id'")

    base: Dict[str, Any] = {
        "objectID": str(entity["id"]),
        "entity_type": entity_type,
        "created_at": to_epoch_millis(entity.get("created_at")),
        "updated_at": to_epoch_millis(entity.get("updated_at")),
    }
    if entity.get("user_id"):
        base["user_id"] = entity["user_id"]

    if entity_type == "product":
        record = {**base, **{f: entity.get(f) for f in _PRODUCT_FIELDS}}
        record["tags"] = entity.get("tags") or []
        record["_tags"] = _clean_tags("product", entity.get("category"), entity.get("status"))
        return record

    if entity_type == "vendor":
        record = {**base, **{f: entity.get(f) for f in _VENDOR_FIELDS}}
        record["_tags"] = _clean_tags("vendor", entity.get("vendor_type"), entity.get("status"))
        return record

    if entity_type == "customer":
        record = {**base, **{f: entity.get(f) for f in _CUSTOMER_FIELDS}}
        record["_tags"] = _clean_tags("customer", entity.get("status"))
        return record

    record = {k: v for k, v in entity.items() if k != "id"}
    record.update(base)
    return record
