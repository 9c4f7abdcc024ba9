# core/models.py
import json
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Literal, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import RemoteDataError

SortKey = Literal["recent", "price_asc", "price_desc", "name"]


def _int_id_to_str(value: Any) -> Any:
    # bool is an int subclass; leave it for the strict str check to refuse
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class WishlistEntry(BaseModel):
    """
    "user_id has favorited product_id". No identity beyond the pair.
    """
    model_config = ConfigDict(frozen=True, strict=True)

    user_id: str
    product_id: str

    @field_validator("product_id", mode="before")
    @classmethod
    def coerce_int_id(cls, value: Any) -> Any:
        return _int_id_to_str(value)

    @classmethod
    def from_row(cls, row: Any, user_id: str) -> "WishlistEntry":
        if not isinstance(row, dict):
            raise RemoteDataError(f"wishlist row is not an object: {row!r}")
        try:
            entry = cls.model_validate({"user_id": user_id, **row})
        except ValidationError as e:
            raise RemoteDataError(f"invalid wishlist row {row!r}: {e}") from e
        if entry.user_id != user_id:
            raise RemoteDataError(
                f"wishlist row belongs to {entry.user_id!r}, expected {user_id!r}"
            )
        return entry

    def as_match(self) -> Dict[str, str]:
        return {"user_id": self.user_id, "product_id": self.product_id}


@dataclass(frozen=True)
class WishlistState:
    member_ids: FrozenSet[str] = frozenset()
    favorite_count: int = 0
    last_synced_user_id: Optional[str] = None
    is_syncing: bool = False
    error: Optional[str] = None


class Product(BaseModel):
    """
    Read-only projection of a row in the products table.
    Prices are kept as the remote numeric value (major currency units).

    The vendor's display name arrives as a joined object, either under
    "vendor" (the aliased join used by search) or "profiles".
    """
    model_config = ConfigDict(frozen=True, strict=True)

    id: str
    vendor_id: str
    name: str
    price: float
    description: Optional[str] = None
    category: Optional[str] = None
    stock: int = 0
    unit: str = ""
    is_available: bool = True
    created_at: str = ""
    image_url: Optional[str] = None
    original_price: Optional[float] = None
    discount_percentage: Optional[float] = None
    is_on_sale: bool = False
    sale_ends_at: Optional[str] = None
    rating: Optional[float] = None
    vendor_name: Optional[str] = None

    @field_validator("id", "vendor_id", mode="before")
    @classmethod
    def coerce_int_ids(cls, value: Any) -> Any:
        return _int_id_to_str(value)

    @model_validator(mode="before")
    @classmethod
    def vendor_join(cls, data: Any) -> Any:
        if isinstance(data, dict) and "vendor_name" not in data:
            vendor = data.get("vendor") or data.get("profiles")
            if isinstance(vendor, dict):
                data = dict(data, vendor_name=vendor.get("full_name"))
        return data

    @classmethod
    def from_row(cls, row: Any) -> "Product":
        if not isinstance(row, dict):
            raise RemoteDataError(f"products row is not an object: {row!r}")
        # null columns fall back to the field defaults
        data = {k: v for k, v in row.items() if v is not None}
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise RemoteDataError(f"invalid products row {row.get('id')!r}: {e}") from e


class SearchFilters(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    category: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    sort_by: Optional[SortKey] = None
    vendor_id: Optional[str] = None

    def merged(self, **changes) -> "SearchFilters":
        """New filters with changes applied; unknown names raise ValidationError."""
        return SearchFilters.model_validate({**self.model_dump(), **changes})

    def signature_part(self) -> str:
        """Stable serialization of the filters that are actually set."""
        data = self.model_dump(exclude_none=True)
        return json.dumps(data, sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True)
class SearchQueryState:
    query_text: str = ""
    filters: SearchFilters = field(default_factory=SearchFilters)
    results: Tuple[Product, ...] = ()
    last_issued_signature: str = ""
    is_searching: bool = False
    error: Optional[str] = None
