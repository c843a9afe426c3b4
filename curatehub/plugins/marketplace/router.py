"""
Marketplace endpoints (mounted under /marketplace):

  GET    /health
  GET    /products                       — filtered product list
  POST   /products                       — create product (+ images, categories)
  GET    /products/{id}                  — product with images and categories
  PATCH  /products/{id}
  DELETE /products/{id}
  POST   /products/{id}/images
  POST   /products/{id}/track-view
  GET    /search?q=
  GET    /collections
  POST   /collections
  GET    /collections/{id}               — collection with ordered products
  PATCH  /collections/{id}
  DELETE /collections/{id}
  POST   /collections/{id}/products
  DELETE /collections/{id}/products/{product_id}
  GET    /sellers
  POST   /sellers
  GET    /sellers/{id}
  DELETE /sellers/{id}                   — cascades to products and collections
  GET    /sellers/{id}/products
  GET    /sellers/{id}/collections
  GET    /categories?parent_id=          — empty parent_id lists top-level only
  POST   /categories
  GET    /categories/{id}                — category with children
  GET    /categories/{id}/products
  GET    /trending
  GET    /stats
"""
import logging
from typing import TYPE_CHECKING, Optional

from fastapi import APIRouter, HTTPException, Query, status
from opentelemetry import trace

from curatehub.plugins.marketplace.schemas import (
    AddToCollectionInput,
    Availability,
    CategoryInput,
    CategoryOutput,
    CollectionInput,
    CollectionOutput,
    CollectionUpdate,
    ImageInput,
    MarketplaceStats,
    ProductFilters,
    ProductImageInput,
    ProductInput,
    ProductOutput,
    ProductUpdate,
    SearchQuery,
    SellerInput,
    SellerOutput,
    TrendingInput,
)
from curatehub.schemas import IdResponse, Pagination, SuccessResponse
from curatehub.trending import TimeWindow

if TYPE_CHECKING:
    from curatehub.plugins.marketplace import MarketplacePlugin

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def create_router(plugin: "MarketplacePlugin") -> APIRouter:
    router = APIRouter()
    settings = plugin.settings
    page_size = settings.default_page_size
    max_page_size = settings.max_page_size
    trending_limit = settings.trending_default_limit
    max_trending_limit = settings.trending_max_limit

    @router.get("/health")
    async def health_check() -> str:
        return await plugin.service.health_check()

    # ── Products ──────────────────────────────────────────────────────────

    @router.get("/products", response_model=list[ProductOutput])
    async def get_products(
        seller_id: Optional[str] = None,
        category_id: Optional[str] = None,
        min_price: Optional[float] = Query(None, gt=0),
        max_price: Optional[float] = Query(None, gt=0),
        availability: Optional[Availability] = None,
        search: Optional[str] = None,
        limit: int = Query(page_size, ge=1, le=max_page_size),
        offset: int = Query(0, ge=0),
    ):
        filters = ProductFilters(
            seller_id=seller_id,
            category_id=category_id,
            min_price=min_price,
            max_price=max_price,
            availability=availability,
            search=search,
        )
        return await plugin.service.get_products(filters, Pagination(limit=limit, offset=offset))

    @router.post("/products", response_model=IdResponse, status_code=status.HTTP_201_CREATED)
    async def create_product(body: ProductInput):
        with tracer.start_as_current_span("create_product") as span:
            span.set_attribute("seller.id", body.seller_id)
            product_id = await plugin.service.create_product(body)
            return IdResponse(id=product_id)

    @router.get("/products/{product_id}", response_model=ProductOutput)
    async def get_product(product_id: str):
        product = await plugin.service.get_product(product_id)
        if not product:
            raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
        return product

    @router.patch("/products/{product_id}", response_model=SuccessResponse)
    async def update_product(product_id: str, body: ProductUpdate):
        with tracer.start_as_current_span("update_product"):
            success = await plugin.service.update_product(product_id, body)
            return SuccessResponse(success=success)

    @router.delete("/products/{product_id}", response_model=SuccessResponse)
    async def delete_product(product_id: str):
        with tracer.start_as_current_span("delete_product"):
            success = await plugin.service.delete_product(product_id)
            return SuccessResponse(success=success, message=f"Product {product_id} deleted")

    @router.post(
        "/products/{product_id}/images",
        response_model=IdResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def add_product_image(product_id: str, body: ImageInput):
        data = ProductImageInput(product_id=product_id, **body.model_dump())
        image_id = await plugin.service.add_product_image(data)
        return IdResponse(id=image_id)

    @router.post("/products/{product_id}/track-view", response_model=SuccessResponse)
    async def track_product_view(product_id: str, collection_id: Optional[str] = None):
        success = await plugin.service.track_product_view(product_id, collection_id)
        return SuccessResponse(success=success)

    @router.get("/search", response_model=list[ProductOutput])
    async def search_products(
        q: str = Query(..., min_length=1, max_length=100),
        seller_id: Optional[str] = None,
        category_id: Optional[str] = None,
        limit: int = Query(page_size, ge=1, le=max_page_size),
    ):
        filters = ProductFilters(seller_id=seller_id, category_id=category_id)
        return await plugin.service.search_products(
            SearchQuery(query=q, filters=filters, limit=limit)
        )

    # ── Collections ───────────────────────────────────────────────────────

    @router.get("/collections", response_model=list[CollectionOutput])
    async def get_collections(
        seller_id: Optional[str] = None,
        limit: int = Query(page_size, ge=1, le=max_page_size),
        offset: int = Query(0, ge=0),
    ):
        return await plugin.service.get_collections(
            seller_id, Pagination(limit=limit, offset=offset)
        )

    @router.post("/collections", response_model=IdResponse, status_code=status.HTTP_201_CREATED)
    async def create_collection(body: CollectionInput):
        with tracer.start_as_current_span("create_collection"):
            collection_id = await plugin.service.create_collection(body)
            return IdResponse(id=collection_id)

    @router.get("/collections/{collection_id}", response_model=CollectionOutput)
    async def get_collection(collection_id: str):
        collection = await plugin.service.get_collection(collection_id)
        if not collection:
            raise HTTPException(status_code=404, detail=f"Collection {collection_id} not found")
        return collection

    @router.patch("/collections/{collection_id}", response_model=SuccessResponse)
    async def update_collection(collection_id: str, body: CollectionUpdate):
        success = await plugin.service.update_collection(collection_id, body)
        return SuccessResponse(success=success)

    @router.delete("/collections/{collection_id}", response_model=SuccessResponse)
    async def delete_collection(collection_id: str):
        success = await plugin.service.delete_collection(collection_id)
        return SuccessResponse(success=success, message=f"Collection {collection_id} deleted")

    @router.post("/collections/{collection_id}/products", response_model=SuccessResponse)
    async def add_product_to_collection(collection_id: str, body: AddToCollectionInput):
        with tracer.start_as_current_span("add_product_to_collection") as span:
            span.set_attribute("collection.id", collection_id)
            success = await plugin.service.add_product_to_collection(collection_id, body)
            return SuccessResponse(success=success)

    @router.delete(
        "/collections/{collection_id}/products/{product_id}",
        response_model=SuccessResponse,
    )
    async def remove_product_from_collection(collection_id: str, product_id: str):
        success = await plugin.service.remove_product_from_collection(collection_id, product_id)
        return SuccessResponse(success=success)

    # ── Sellers ───────────────────────────────────────────────────────────

    @router.get("/sellers", response_model=list[SellerOutput])
    async def get_sellers(
        limit: int = Query(page_size, ge=1, le=max_page_size),
        offset: int = Query(0, ge=0),
    ):
        return await plugin.service.get_sellers(Pagination(limit=limit, offset=offset))

    @router.post("/sellers", response_model=IdResponse, status_code=status.HTTP_201_CREATED)
    async def create_seller(body: SellerInput):
        with tracer.start_as_current_span("create_seller"):
            seller_id = await plugin.service.create_seller(body)
            return IdResponse(id=seller_id)

    @router.get("/sellers/{seller_id}", response_model=SellerOutput)
    async def get_seller(seller_id: str):
        seller = await plugin.service.get_seller(seller_id)
        if not seller:
            raise HTTPException(status_code=404, detail=f"Seller {seller_id} not found")
        return seller

    @router.delete("/sellers/{seller_id}", response_model=SuccessResponse)
    async def delete_seller(seller_id: str):
        with tracer.start_as_current_span("delete_seller"):
            success = await plugin.service.delete_seller(seller_id)
            return SuccessResponse(success=success, message=f"Seller {seller_id} deleted")

    @router.get("/sellers/{seller_id}/products", response_model=list[ProductOutput])
    async def get_seller_products(
        seller_id: str,
        limit: int = Query(page_size, ge=1, le=max_page_size),
        offset: int = Query(0, ge=0),
    ):
        return await plugin.service.get_seller_products(
            seller_id, Pagination(limit=limit, offset=offset)
        )

    @router.get("/sellers/{seller_id}/collections", response_model=list[CollectionOutput])
    async def get_seller_collections(seller_id: str):
        return await plugin.service.get_seller_collections(seller_id)

    # ── Categories ────────────────────────────────────────────────────────

    @router.get("/categories", response_model=list[CategoryOutput])
    async def get_categories(parent_id: Optional[str] = None):
        return await plugin.service.get_categories(parent_id)

    @router.post("/categories", response_model=IdResponse, status_code=status.HTTP_201_CREATED)
    async def create_category(body: CategoryInput):
        category_id = await plugin.service.create_category(body)
        return IdResponse(id=category_id)

    @router.get("/categories/{category_id}", response_model=CategoryOutput)
    async def get_category(category_id: str):
        category = await plugin.service.get_category(category_id, include_children=True)
        if not category:
            raise HTTPException(status_code=404, detail=f"Category {category_id} not found")
        return category

    @router.get("/categories/{category_id}/products", response_model=list[ProductOutput])
    async def get_products_by_category(
        category_id: str,
        limit: int = Query(page_size, ge=1, le=max_page_size),
        offset: int = Query(0, ge=0),
    ):
        return await plugin.service.get_products_by_category(
            category_id, Pagination(limit=limit, offset=offset)
        )

    # ── Analytics ─────────────────────────────────────────────────────────

    @router.get("/trending", response_model=list[ProductOutput])
    async def get_trending_products(
        time_window: TimeWindow = "24h",
        category_id: Optional[str] = None,
        collection_id: Optional[str] = None,
        limit: int = Query(trending_limit, ge=1, le=max_trending_limit),
    ):
        return await plugin.service.get_trending_products(
            TrendingInput(
                time_window=time_window,
                category_id=category_id,
                collection_id=collection_id,
                limit=limit,
            )
        )

    @router.get("/stats", response_model=MarketplaceStats)
    async def get_stats():
        return await plugin.service.get_stats()

    return router
