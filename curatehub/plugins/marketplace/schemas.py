"""
Pydantic request / response schemas for the marketplace.
Kept separate from ORM models to avoid coupling transport to storage.
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

from curatehub.trending import TimeWindow

Availability = Literal["InStock", "OutOfStock", "PreOrder", "BackOrder"]


class _Input(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ──────────────────────────── Sellers ─────────────────────────────────────

class SellerInput(_Input):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    logo_url: Optional[HttpUrl] = None


class SellerOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str]
    logo_url: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]


# ──────────────────────────── Categories ──────────────────────────────────

class CategoryInput(_Input):
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    parent_id: Optional[str] = None


class CategoryRef(BaseModel):
    id: str
    name: str


class CategoryOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    parent_id: Optional[str]
    children: Optional[list["CategoryOutput"]] = None


# ──────────────────────────── Products ────────────────────────────────────

class ImageInput(_Input):
    url: HttpUrl
    position: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    caption: Optional[str] = None


class ProductImageInput(ImageInput):
    product_id: str


class ProductImageOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: str
    url: str
    position: Optional[int]
    width: Optional[int]
    height: Optional[int]
    caption: Optional[str]


class ProductInput(_Input):
    seller_id: str
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: float = Field(..., gt=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    availability: Availability = "InStock"
    stock_quantity: Optional[int] = Field(None, ge=0)
    sku: Optional[str] = None
    gtin: Optional[str] = None
    brand: Optional[str] = None
    images: list[ImageInput] = Field(default_factory=list)
    category_ids: list[str] = Field(default_factory=list)


class ProductUpdate(_Input):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    availability: Optional[Availability] = None
    stock_quantity: Optional[int] = Field(None, ge=0)
    sku: Optional[str] = None
    gtin: Optional[str] = None
    brand: Optional[str] = None

    @field_validator("name", "price", "currency", "availability", mode="before")
    @classmethod
    def _not_null(cls, value):
        # Omit a field to leave it unchanged; the columns behind these are NOT NULL
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class ProductOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    seller_id: str
    name: str
    description: Optional[str]
    price: float
    currency: str
    availability: str
    sku: Optional[str]
    gtin: Optional[str]
    brand: Optional[str]
    stock_quantity: Optional[int]
    created_at: datetime
    updated_at: Optional[datetime]
    images: Optional[list[ProductImageOutput]] = None
    categories: Optional[list[CategoryRef]] = None


class ProductFilters(_Input):
    seller_id: Optional[str] = None
    category_id: Optional[str] = None
    min_price: Optional[float] = Field(None, gt=0)
    max_price: Optional[float] = Field(None, gt=0)
    availability: Optional[Availability] = None
    search: Optional[str] = None


class SearchQuery(_Input):
    query: str = Field(..., min_length=1, max_length=100)
    filters: Optional[ProductFilters] = None
    limit: int = Field(50, ge=1)


# ──────────────────────────── Collections ─────────────────────────────────

class CollectionInput(_Input):
    seller_id: str
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    image_url: Optional[HttpUrl] = None


class CollectionUpdate(_Input):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    image_url: Optional[HttpUrl] = None

    @field_validator("name", mode="before")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class CollectionOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    seller_id: str
    name: str
    description: Optional[str]
    image_url: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]
    products: Optional[list[ProductOutput]] = None


class AddToCollectionInput(_Input):
    product_id: str
    position: int = 0


# ──────────────────────────── Analytics ───────────────────────────────────

class TrendingInput(_Input):
    time_window: TimeWindow = "24h"
    category_id: Optional[str] = None
    collection_id: Optional[str] = None
    limit: int = Field(10, ge=1)


class MarketplaceStats(BaseModel):
    total_products: int
    total_collections: int
    total_sellers: int
    total_categories: int
