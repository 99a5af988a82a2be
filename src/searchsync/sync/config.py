"""
Collection sync configuration.

A SyncConfig binds one source collection to one search index: the transform
that projects records into documents and the index settings applied on every
pipeline start. Configurations are validated before any I/O begins.
"""

import importlib
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError, field_validator

from searchsync.platform.logging import get_logger
from searchsync.sync.errors import ConfigurationError

logger = get_logger(__name__)

SourceRecord = Dict[str, Any]
SearchDocument = Dict[str, Any]
Transform = Callable[[SourceRecord], Optional[SearchDocument]]

DEFAULT_PAGE_SIZE = 5000

BUILTIN_RANKING_RULES = frozenset(
    {"words", "typo", "proximity", "attribute", "sort", "exactness"}
)
_CUSTOM_RANKING_RULE = re.compile(r"^[A-Za-z0-9_.\-]+:(asc|desc)$")


def _check_attribute_list(values: Optional[List[str]]) -> Optional[List[str]]:
    if values is None:
        return values
    seen = set()
    for value in values:
        if not value.strip():
            raise ValueError("attribute names must be non-empty")
        if value in seen:
            raise ValueError(f"duplicate attribute '{value}'")
        seen.add(value)
    return values


class TypoTolerance(BaseModel):
    """Typo tolerance block of the index settings."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    enabled: bool = True
    disable_on_words: Optional[List[str]] = Field(default=None, alias="disableOnWords")
    disable_on_attributes: Optional[List[str]] = Field(
        default=None, alias="disableOnAttributes"
    )


class Pagination(BaseModel):
    """Pagination block of the index settings."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    max_total_hits: PositiveInt = Field(alias="maxTotalHits")


class IndexSettings(BaseModel):
    """
    Declarative index settings, applied idempotently at each pipeline start.

    Field aliases match the search engine's settings payload so operators can
    write configurations in the engine's own vocabulary.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    searchable_attributes: Optional[List[str]] = Field(
        default=None, alias="searchableAttributes"
    )
    filterable_attributes: Optional[List[str]] = Field(
        default=None, alias="filterableAttributes"
    )
    sortable_attributes: Optional[List[str]] = Field(
        default=None, alias="sortableAttributes"
    )
    ranking_rules: Optional[List[str]] = Field(default=None, alias="rankingRules")
    typo_tolerance: Optional[TypoTolerance] = Field(default=None, alias="typoTolerance")
    pagination: Optional[Pagination] = None

    @field_validator(
        "searchable_attributes", "filterable_attributes", "sortable_attributes"
    )
    @classmethod
    def _validate_attributes(cls, values: Optional[List[str]]) -> Optional[List[str]]:
        return _check_attribute_list(values)

    @field_validator("ranking_rules")
    @classmethod
    def _validate_ranking_rules(cls, rules: Optional[List[str]]) -> Optional[List[str]]:
        if rules is None:
            return rules
        for rule in rules:
            if rule not in BUILTIN_RANKING_RULES and not _CUSTOM_RANKING_RULE.match(rule):
                raise ValueError(f"unknown ranking rule '{rule}'")
        if len(set(rules)) != len(rules):
            raise ValueError("ranking rules must be unique")
        return rules

    def to_payload(self) -> Dict[str, Any]:
        """Render the settings body expected by the search engine."""
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class SyncConfig:
    """
    One source collection mirrored into one search index.

    Attributes:
        collection: Source collection name
        index: Target index name
        primary_key: Primary key field of the target documents
        transform: Pure record -> document mapping; None means skip. It must
            emit every field of the projection on every call (None for
            absent values): update events merge into the stored document,
            so a field left out would keep its stale value.
        settings: Index settings (a mapping is coerced into IndexSettings)
        page_size: Records per bulk-load page
    """

    collection: str
    index: str
    transform: Transform
    primary_key: str = "id"
    settings: IndexSettings = field(default_factory=IndexSettings)
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if not self.collection or not self.collection.strip():
            raise ConfigurationError("collection name must be non-empty")
        if not self.index or not self.index.strip():
            raise ConfigurationError(f"index name for '{self.collection}' must be non-empty")
        if not self.primary_key:
            raise ConfigurationError(f"primary key for '{self.collection}' must be non-empty")
        if not callable(self.transform):
            raise ConfigurationError(f"transform for '{self.collection}' must be callable")
        if self.page_size <= 0:
            raise ConfigurationError(f"page size for '{self.collection}' must be positive")

        if not isinstance(self.settings, IndexSettings):
            try:
                settings = IndexSettings.model_validate(self.settings or {})
            except ValidationError as e:
                raise ConfigurationError(
                    f"invalid index settings for '{self.collection}': {e}"
                ) from e
            object.__setattr__(self, "settings", settings)

    def apply_transform(self, record: SourceRecord) -> Optional[SearchDocument]:
        """
        Run the transform for one record.

        A transform that raises breaks its own contract; the record is logged
        and skipped so that one bad record never halts a bulk pass or a feed.
        """
        try:
            document = self.transform(record)
        except Exception as e:
            logger.error(
                "transform_failed",
                collection=self.collection,
                record_id=str(record.get("_id")),
                error=str(e),
            )
            return None

        if document is None:
            return None

        doc_id = document.get(self.primary_key)
        if doc_id is None or doc_id == "":
            logger.warning(
                "transform_missing_primary_key",
                collection=self.collection,
                primary_key=self.primary_key,
                record_id=str(record.get("_id")),
            )
            return None
        return document


def _coerce(entry: Any) -> SyncConfig:
    if isinstance(entry, SyncConfig):
        return entry
    if isinstance(entry, Mapping):
        try:
            return SyncConfig(**entry)
        except TypeError as e:
            raise ConfigurationError(f"invalid collection entry: {e}") from e
    raise ConfigurationError(f"unsupported collection entry type: {type(entry).__name__}")


def validate_collections(entries: Sequence[Any]) -> List[SyncConfig]:
    """Coerce and validate a list of collection configurations."""
    configs = [_coerce(entry) for entry in entries]
    if not configs:
        raise ConfigurationError("no collections configured")

    indexes = [config.index for config in configs]
    duplicates = sorted({name for name in indexes if indexes.count(name) > 1})
    if duplicates:
        raise ConfigurationError(f"indexes fed by more than one collection: {duplicates}")
    return configs


def load_collections(path: str) -> List[SyncConfig]:
    """
    Load collection configurations from a ``module:attribute`` path.

    Args:
        path: Import path, e.g. ``searchsync.collections:COLLECTIONS``

    Returns:
        Validated configurations
    """
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ConfigurationError(f"expected 'module:attribute', got '{path}'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"cannot import '{module_name}': {e}") from e

    try:
        entries = getattr(module, attribute)
    except AttributeError as e:
        raise ConfigurationError(f"'{module_name}' has no attribute '{attribute}'") from e

    configs = validate_collections(entries)
    logger.info(
        "collections_loaded",
        source=path,
        collections=[config.collection for config in configs],
    )
    return configs
