"""
Entry configuration types.

An entry is the declarative description of one recurring job: which sources
to fetch, how to transform the records and where the result goes. Entries
are immutable; editing one means building a new model, and the registry key
is always recomputed from content (``entry_key()``), never stored.
"""

from __future__ import annotations

import hashlib
import json
from datetime import timedelta
from enum import Enum
from typing import Annotated, ClassVar, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .harvester.models import (
    Availability,
    ZeroStockPolicy,
    normalize_supplier_key,
    parse_vendor_from_link,
)

DEFAULT_UPDATE_RATE = timedelta(hours=4)


def canonical_json(model: BaseModel) -> str:
    """Stable JSON text for a model: sorted keys, no whitespace."""
    return json.dumps(model.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))


class JobKind(str, Enum):
    EXPORT = "export"
    IMPORT = "import"


class MissingPolicy(str, Enum):
    """What happens to catalog records a supplier stopped sending."""

    KEEP = "keep"
    MARK_UNAVAILABLE = "mark_unavailable"
    HIDE = "hide"
    DELETE = "delete"


class Discount(BaseModel):
    """Percent discount active for ``hours`` after local midnight, or always when unset."""

    model_config = ConfigDict(frozen=True)

    percent: int = Field(ge=0)
    hours: Optional[int] = Field(default=None, ge=0)


class ExportOptions(BaseModel):
    """Per-source output options. Sources with equal options share a bucket."""

    model_config = ConfigDict(frozen=True)

    title_prefix: str = ""
    title_suffix: str = ""
    title_replacements: Tuple[Tuple[str, str], ...] = ()
    only_available: bool = False
    zero_stock_policy: ZeroStockPolicy = ZeroStockPolicy.INHERIT
    set_availability: Optional[Availability] = None
    convert_currency: bool = True
    adjust_price: Optional[float] = Field(default=None, gt=0)
    discount: Optional[Discount] = None
    round_to_9: bool = False
    categories: bool = False

    def bucket_key(self) -> str:
        return canonical_json(self)


class LinkFeedSource(BaseModel):
    """Remote XML feed fetched over HTTP."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["link"] = "link"
    link: str
    vendor_name: Optional[str] = None
    options: ExportOptions = Field(default_factory=ExportOptions)

    @property
    def locator(self) -> str:
        return self.link

    @property
    def vendor(self) -> Optional[str]:
        if self.vendor_name and self.vendor_name.strip():
            return self.vendor_name.strip()
        return parse_vendor_from_link(self.link)


class SupplierTableSource(BaseModel):
    """Internal catalog rows of one supplier."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["supplier"] = "supplier"
    supplier: str
    only_available: bool = True
    options: ExportOptions = Field(default_factory=ExportOptions)

    @property
    def locator(self) -> str:
        return f"supplier:{self.supplier}"

    @property
    def vendor(self) -> Optional[str]:
        return self.supplier


class PaginatedApiSource(BaseModel):
    """JSON price-list API paged with ``limit``/``offset``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["api"] = "api"
    url: str
    token: str = ""
    page_size: int = Field(default=500, gt=0)
    warehouses: Tuple[str, ...] = ()
    options: ExportOptions = Field(default_factory=ExportOptions)

    @property
    def locator(self) -> str:
        return self.url

    @property
    def vendor(self) -> Optional[str]:
        return parse_vendor_from_link(self.url)


SourceDescriptor = Annotated[
    Union[LinkFeedSource, SupplierTableSource, PaginatedApiSource],
    Field(discriminator="kind"),
]


class JobConfiguration(BaseModel):
    """Common base for export and import entries."""

    model_config = ConfigDict(frozen=True)

    kind: ClassVar[JobKind]

    update_rate: timedelta = DEFAULT_UPDATE_RATE
    sources: List[SourceDescriptor] = Field(default_factory=list)

    def entry_key(self) -> str:
        """Content-derived registry key."""
        digest = hashlib.sha256(canonical_json(self).encode("utf-8")).hexdigest()
        return digest[:16]


class ExportEntry(JobConfiguration):
    """Catalog -> published files."""

    kind: ClassVar[JobKind] = JobKind.EXPORT

    file_name: Optional[str] = None
    formats: Tuple[Literal["csv", "json"], ...] = ("csv",)

    def artifact_stem(self) -> str:
        """Base file name (no extension) of this entry's artifacts.

        An explicit ``file_name`` is sanitized; otherwise the vendor names of
        the link sources are joined, falling back to the entry key.
        """
        if self.file_name is not None and self.file_name.strip():
            name = self.file_name.strip().lstrip(".").replace("/", "_").replace("\\", "_")
            return name or "export"
        vendors = []
        for source in self.sources:
            if isinstance(source, LinkFeedSource) and source.vendor:
                if source.vendor not in vendors:
                    vendors.append(source.vendor)
        if vendors:
            return "_".join(vendors)
        return self.entry_key()

    def artifact_names(self) -> List[str]:
        stem = self.artifact_stem()
        return [f"{stem}.{fmt}" for fmt in self.formats]


class UpdateFields(BaseModel):
    """Which catalog fields an import may overwrite."""

    model_config = ConfigDict(frozen=True)

    title: bool = False
    description: bool = False
    price: bool = True
    images: bool = False
    availability: bool = True
    quantity: bool = True
    attributes: bool = False
    discounts: bool = True


class ImportOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    update_fields: UpdateFields = Field(default_factory=UpdateFields)
    missing_policy: MissingPolicy = MissingPolicy.KEEP
    append_images: bool = False
    only_available: bool = False
    zero_stock_policy: ZeroStockPolicy = ZeroStockPolicy.INHERIT
    set_availability: Optional[Availability] = None
    convert_currency: bool = True
    markup_percent: float = Field(default=0.0, ge=0)
    discount: Optional[Discount] = None
    round_to_9: bool = True
    categories: bool = False


class ImportEntry(JobConfiguration):
    """Supplier feed -> internal catalog."""

    kind: ClassVar[JobKind] = JobKind.IMPORT

    name: str = ""
    supplier: str
    options: ImportOptions = Field(default_factory=ImportOptions)

    @field_validator("supplier")
    @classmethod
    def _normalize_supplier(cls, value: str) -> str:
        key = normalize_supplier_key(value)
        if key is None:
            raise ValueError("supplier must contain at least one letter or digit")
        return key


class CategoryDefinition(BaseModel):
    """Catalog category as used by automatic assignment."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    parent_id: Optional[str] = None
    regex: Optional[str] = None


class OwnerConfiguration(BaseModel):
    """Everything persisted for one owner (one file)."""

    export_entries: List[ExportEntry] = Field(default_factory=list)
    import_entries: List[ImportEntry] = Field(default_factory=list)
    categories: List[CategoryDefinition] = Field(default_factory=list)


Entry = Union[ExportEntry, ImportEntry]


__all__ = [
    "CategoryDefinition",
    "Discount",
    "Entry",
    "ExportEntry",
    "ExportOptions",
    "ImportEntry",
    "ImportOptions",
    "JobConfiguration",
    "JobKind",
    "LinkFeedSource",
    "MissingPolicy",
    "OwnerConfiguration",
    "PaginatedApiSource",
    "SourceDescriptor",
    "SupplierTableSource",
    "UpdateFields",
    "canonical_json",
]
