"""
Marketplace service — sellers, categories, products and collections over
async SQLAlchemy, with optional Redis-backed trending.

Multi-row writes (product + images + categories, seller cascade) run in one
session and are committed together; a failure rolls every row back.
"""
import logging
import uuid
from typing import Any, Optional, Union

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from curatehub.database import Database
from curatehub.plugins.marketplace.models import (
    Category,
    Collection,
    CollectionProduct,
    Product,
    ProductCategory,
    ProductImage,
    Seller,
    utcnow,
)
from curatehub.plugins.marketplace.schemas import (
    AddToCollectionInput,
    CategoryInput,
    CategoryOutput,
    CategoryRef,
    CollectionInput,
    CollectionOutput,
    CollectionUpdate,
    MarketplaceStats,
    ProductFilters,
    ProductImageInput,
    ProductImageOutput,
    ProductInput,
    ProductOutput,
    ProductUpdate,
    SearchQuery,
    SellerInput,
    SellerOutput,
    TrendingInput,
)
from curatehub.schemas import Pagination
from curatehub.store import store_operation, validate
from curatehub.telemetry import VIEW_EVENTS_TOTAL
from curatehub.trending import TrendingTracker

logger = logging.getLogger(__name__)

PLUGIN = "marketplace"


def _url(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


class MarketplaceService:
    def __init__(self, db: Database, tracker: Optional[TrendingTracker] = None) -> None:
        self.db = db
        # A tracker without a Redis client records nothing and ranks nothing
        self.tracker = tracker or TrendingTracker(None)

    def _op(self, op: str, message: str):
        return store_operation(PLUGIN, op, message, (SQLAlchemyError,))

    async def health_check(self) -> str:
        with self._op("health", "Database health check failed"):
            await self.db.ping()
        return "OK"

    # ═════════════════════════════ PRODUCTS ═══════════════════════════════

    async def _product_output(
        self,
        session: AsyncSession,
        product: Product,
        include_images: bool,
        include_categories: bool,
    ) -> ProductOutput:
        result = ProductOutput.model_validate(product)

        if include_images:
            rows = await session.execute(
                select(ProductImage)
                .where(ProductImage.product_id == product.id)
                .order_by(ProductImage.position)
            )
            result.images = [ProductImageOutput.model_validate(i) for i in rows.scalars()]

        if include_categories:
            rows = await session.execute(
                select(Category.id, Category.name)
                .join(ProductCategory, ProductCategory.category_id == Category.id)
                .where(ProductCategory.product_id == product.id)
                .order_by(Category.name)
            )
            result.categories = [CategoryRef(id=r.id, name=r.name) for r in rows]

        return result

    async def get_products(
        self,
        filters: Union[ProductFilters, dict, None] = None,
        pagination: Union[Pagination, dict, None] = None,
    ) -> list[ProductOutput]:
        """Filtered products, newest first. No total count is returned."""
        filters = validate(ProductFilters, filters or {})
        pagination = validate(Pagination, pagination or {})

        conditions = []
        if filters.seller_id:
            conditions.append(Product.seller_id == filters.seller_id)
        if filters.min_price is not None:
            conditions.append(Product.price >= filters.min_price)
        if filters.max_price is not None:
            conditions.append(Product.price <= filters.max_price)
        if filters.availability:
            conditions.append(Product.availability == filters.availability)
        if filters.search:
            conditions.append(Product.name.ilike(f"%{filters.search}%"))
        if filters.category_id:
            conditions.append(
                Product.id.in_(
                    select(ProductCategory.product_id).where(
                        ProductCategory.category_id == filters.category_id
                    )
                )
            )

        stmt = select(Product)
        if conditions:
            stmt = stmt.where(and_(*conditions))
        stmt = (
            stmt.order_by(Product.created_at.desc(), Product.id)
            .limit(pagination.limit)
            .offset(pagination.offset)
        )

        with self._op("get_products", "Failed to get products"):
            async with self.db.session() as session:
                rows = await session.execute(stmt)
                return [ProductOutput.model_validate(p) for p in rows.scalars()]

    async def get_product(
        self,
        product_id: str,
        include_images: bool = True,
        include_categories: bool = True,
    ) -> Optional[ProductOutput]:
        with self._op("get_product", f"Failed to get product {product_id}"):
            async with self.db.session() as session:
                product = await session.get(Product, product_id)
                if product is None:
                    return None
                return await self._product_output(
                    session, product, include_images, include_categories
                )

    async def create_product(self, data: Union[ProductInput, dict]) -> str:
        """Insert the product, its images and category links in one transaction."""
        data = validate(ProductInput, data)
        product_id = str(uuid.uuid4())
        now = utcnow()

        with self._op("create_product", "Failed to create product"):
            async with self.db.session() as session:
                session.add(
                    Product(
                        id=product_id,
                        seller_id=data.seller_id,
                        name=data.name,
                        description=data.description,
                        price=data.price,
                        currency=data.currency,
                        availability=data.availability,
                        stock_quantity=data.stock_quantity,
                        sku=data.sku,
                        gtin=data.gtin,
                        brand=data.brand,
                        created_at=now,
                        updated_at=now,
                    )
                )
                # Parent row first so the child inserts satisfy their foreign keys
                await session.flush()
                session.add_all(
                    ProductImage(
                        product_id=product_id,
                        url=str(img.url),
                        position=img.position if img.position is not None else i,
                        width=img.width,
                        height=img.height,
                        caption=img.caption,
                    )
                    for i, img in enumerate(data.images)
                )
                session.add_all(
                    ProductCategory(product_id=product_id, category_id=category_id)
                    for category_id in dict.fromkeys(data.category_ids)
                )

        logger.info("Product created: %s by seller %s", product_id, data.seller_id)
        return product_id

    async def update_product(self, product_id: str, updates: Union[ProductUpdate, dict]) -> bool:
        """
        Apply only the provided fields and bump updated_at.

        An empty update writes nothing. Returns False when the product does
        not exist.
        """
        updates = validate(ProductUpdate, updates)
        values = updates.model_dump(exclude_unset=True)

        with self._op("update_product", f"Failed to update product {product_id}"):
            async with self.db.session() as session:
                if not values:
                    return await session.get(Product, product_id) is not None
                values["updated_at"] = utcnow()
                result = await session.execute(
                    update(Product).where(Product.id == product_id).values(**values)
                )
                return result.rowcount > 0

    async def _delete_products(self, session: AsyncSession, product_ids: list[str]) -> None:
        if not product_ids:
            return
        # Explicit cleanup keeps the cascade working where FK enforcement is off
        await session.execute(
            delete(CollectionProduct).where(CollectionProduct.product_id.in_(product_ids))
        )
        await session.execute(
            delete(ProductCategory).where(ProductCategory.product_id.in_(product_ids))
        )
        await session.execute(
            delete(ProductImage).where(ProductImage.product_id.in_(product_ids))
        )
        await session.execute(delete(Product).where(Product.id.in_(product_ids)))

    async def delete_product(self, product_id: str) -> bool:
        """Delete a product with its images, category links and memberships; idempotent."""
        with self._op("delete_product", f"Failed to delete product {product_id}"):
            async with self.db.session() as session:
                await self._delete_products(session, [product_id])
        logger.info("Product deleted: %s", product_id)
        return True

    async def search_products(self, query: Union[SearchQuery, dict]) -> list[ProductOutput]:
        query = validate(SearchQuery, query)
        filters = query.filters or ProductFilters()
        if not filters.search:
            filters = filters.model_copy(update={"search": query.query})
        return await self.get_products(filters, Pagination(limit=query.limit, offset=0))

    async def add_product_image(self, data: Union[ProductImageInput, dict]) -> str:
        data = validate(ProductImageInput, data)
        image_id = str(uuid.uuid4())

        with self._op("add_product_image", f"Failed to add image to product {data.product_id}"):
            async with self.db.session() as session:
                position = data.position
                if position is None:
                    position = await session.scalar(
                        select(func.count())
                        .select_from(ProductImage)
                        .where(ProductImage.product_id == data.product_id)
                    )
                session.add(
                    ProductImage(
                        id=image_id,
                        product_id=data.product_id,
                        url=str(data.url),
                        position=position,
                        width=data.width,
                        height=data.height,
                        caption=data.caption,
                    )
                )
        return image_id

    # ═════════════════════════════ COLLECTIONS ════════════════════════════

    async def get_collections(
        self,
        seller_id: Optional[str] = None,
        pagination: Union[Pagination, dict, None] = None,
    ) -> list[CollectionOutput]:
        pagination = validate(Pagination, pagination or {})
        stmt = select(Collection)
        if seller_id:
            stmt = stmt.where(Collection.seller_id == seller_id)
        stmt = (
            stmt.order_by(Collection.created_at.desc(), Collection.id)
            .limit(pagination.limit)
            .offset(pagination.offset)
        )

        with self._op("get_collections", "Failed to get collections"):
            async with self.db.session() as session:
                rows = await session.execute(stmt)
                return [CollectionOutput.model_validate(c) for c in rows.scalars()]

    async def get_collection(
        self,
        collection_id: str,
        include_products: bool = True,
    ) -> Optional[CollectionOutput]:
        with self._op("get_collection", f"Failed to get collection {collection_id}"):
            async with self.db.session() as session:
                collection = await session.get(Collection, collection_id)
                if collection is None:
                    return None
                result = CollectionOutput.model_validate(collection)
                if include_products:
                    rows = await session.execute(
                        select(Product)
                        .join(CollectionProduct, CollectionProduct.product_id == Product.id)
                        .where(CollectionProduct.collection_id == collection_id)
                        .order_by(CollectionProduct.position, Product.id)
                    )
                    result.products = [ProductOutput.model_validate(p) for p in rows.scalars()]
                return result

    async def create_collection(self, data: Union[CollectionInput, dict]) -> str:
        data = validate(CollectionInput, data)
        collection_id = str(uuid.uuid4())
        now = utcnow()

        with self._op("create_collection", "Failed to create collection"):
            async with self.db.session() as session:
                session.add(
                    Collection(
                        id=collection_id,
                        seller_id=data.seller_id,
                        name=data.name,
                        description=data.description,
                        image_url=_url(data.image_url),
                        created_at=now,
                        updated_at=now,
                    )
                )
        logger.info("Collection created: %s by seller %s", collection_id, data.seller_id)
        return collection_id

    async def update_collection(
        self,
        collection_id: str,
        updates: Union[CollectionUpdate, dict],
    ) -> bool:
        updates = validate(CollectionUpdate, updates)
        values = updates.model_dump(exclude_unset=True)
        if "image_url" in values:
            values["image_url"] = _url(values["image_url"])

        with self._op("update_collection", f"Failed to update collection {collection_id}"):
            async with self.db.session() as session:
                if not values:
                    return await session.get(Collection, collection_id) is not None
                values["updated_at"] = utcnow()
                result = await session.execute(
                    update(Collection).where(Collection.id == collection_id).values(**values)
                )
                return result.rowcount > 0

    async def delete_collection(self, collection_id: str) -> bool:
        """Delete a collection and its memberships; products are kept. Idempotent."""
        with self._op("delete_collection", f"Failed to delete collection {collection_id}"):
            async with self.db.session() as session:
                await session.execute(
                    delete(CollectionProduct).where(
                        CollectionProduct.collection_id == collection_id
                    )
                )
                await session.execute(delete(Collection).where(Collection.id == collection_id))
        return True

    async def add_product_to_collection(
        self,
        collection_id: str,
        data: Union[AddToCollectionInput, dict],
    ) -> bool:
        """Add a product at `position`; an existing membership only moves."""
        data = validate(AddToCollectionInput, data)

        with self._op("add_product_to_collection", "Failed to add product to collection"):
            async with self.db.session() as session:
                existing = await session.get(CollectionProduct, (collection_id, data.product_id))
                if existing is not None:
                    existing.position = data.position
                else:
                    session.add(
                        CollectionProduct(
                            collection_id=collection_id,
                            product_id=data.product_id,
                            position=data.position,
                        )
                    )
        return True

    async def remove_product_from_collection(self, collection_id: str, product_id: str) -> bool:
        with self._op("remove_product_from_collection", "Failed to remove product from collection"):
            async with self.db.session() as session:
                await session.execute(
                    delete(CollectionProduct).where(
                        CollectionProduct.collection_id == collection_id,
                        CollectionProduct.product_id == product_id,
                    )
                )
        return True

    # ═════════════════════════════ SELLERS ════════════════════════════════

    async def get_sellers(self, pagination: Union[Pagination, dict, None] = None) -> list[SellerOutput]:
        pagination = validate(Pagination, pagination or {})
        with self._op("get_sellers", "Failed to get sellers"):
            async with self.db.session() as session:
                rows = await session.execute(
                    select(Seller)
                    .order_by(Seller.created_at.desc(), Seller.id)
                    .limit(pagination.limit)
                    .offset(pagination.offset)
                )
                return [SellerOutput.model_validate(s) for s in rows.scalars()]

    async def get_seller(self, seller_id: str) -> Optional[SellerOutput]:
        with self._op("get_seller", f"Failed to get seller {seller_id}"):
            async with self.db.session() as session:
                seller = await session.get(Seller, seller_id)
                return SellerOutput.model_validate(seller) if seller else None

    async def create_seller(self, data: Union[SellerInput, dict]) -> str:
        data = validate(SellerInput, data)
        seller_id = str(uuid.uuid4())
        now = utcnow()

        with self._op("create_seller", "Failed to create seller"):
            async with self.db.session() as session:
                session.add(
                    Seller(
                        id=seller_id,
                        name=data.name,
                        description=data.description,
                        logo_url=_url(data.logo_url),
                        created_at=now,
                        updated_at=now,
                    )
                )
        logger.info("Seller created: %s (%s)", data.name, seller_id)
        return seller_id

    async def delete_seller(self, seller_id: str) -> bool:
        """Delete a seller together with its products and collections; idempotent."""
        with self._op("delete_seller", f"Failed to delete seller {seller_id}"):
            async with self.db.session() as session:
                product_ids = list(
                    await session.scalars(select(Product.id).where(Product.seller_id == seller_id))
                )
                await self._delete_products(session, product_ids)
                collection_ids = select(Collection.id).where(Collection.seller_id == seller_id)
                await session.execute(
                    delete(CollectionProduct).where(
                        CollectionProduct.collection_id.in_(collection_ids)
                    )
                )
                await session.execute(delete(Collection).where(Collection.seller_id == seller_id))
                await session.execute(delete(Seller).where(Seller.id == seller_id))
        logger.info("Seller deleted: %s (%d products)", seller_id, len(product_ids))
        return True

    async def get_seller_products(
        self,
        seller_id: str,
        pagination: Union[Pagination, dict, None] = None,
    ) -> list[ProductOutput]:
        return await self.get_products(ProductFilters(seller_id=seller_id), pagination)

    async def get_seller_collections(self, seller_id: str) -> list[CollectionOutput]:
        return await self.get_collections(seller_id=seller_id)

    # ═════════════════════════════ CATEGORIES ═════════════════════════════

    async def get_categories(self, parent_id: Optional[str] = None) -> list[CategoryOutput]:
        """
        parent_id=None lists every category, "" lists top-level categories,
        anything else lists that category's direct children.
        """
        stmt = select(Category)
        if parent_id is not None:
            if parent_id:
                stmt = stmt.where(Category.parent_id == parent_id)
            else:
                stmt = stmt.where(Category.parent_id.is_(None))

        with self._op("get_categories", "Failed to get categories"):
            async with self.db.session() as session:
                rows = await session.execute(stmt.order_by(Category.name))
                return [CategoryOutput.model_validate(c) for c in rows.scalars()]

    async def get_category(
        self,
        category_id: str,
        include_children: bool = False,
    ) -> Optional[CategoryOutput]:
        with self._op("get_category", f"Failed to get category {category_id}"):
            async with self.db.session() as session:
                category = await session.get(Category, category_id)
                if category is None:
                    return None
                result = CategoryOutput.model_validate(category)
                if include_children:
                    rows = await session.execute(
                        select(Category)
                        .where(Category.parent_id == category_id)
                        .order_by(Category.name)
                    )
                    result.children = [CategoryOutput.model_validate(c) for c in rows.scalars()]
                return result

    async def create_category(self, data: Union[CategoryInput, dict]) -> str:
        data = validate(CategoryInput, data)
        category_id = str(uuid.uuid4())
        with self._op("create_category", "Failed to create category"):
            async with self.db.session() as session:
                session.add(
                    Category(
                        id=category_id,
                        name=data.name,
                        slug=data.slug,
                        parent_id=data.parent_id,
                    )
                )
        return category_id

    async def get_products_by_category(
        self,
        category_id: str,
        pagination: Union[Pagination, dict, None] = None,
    ) -> list[ProductOutput]:
        return await self.get_products(ProductFilters(category_id=category_id), pagination)

    # ═════════════════════════════ ANALYTICS ══════════════════════════════

    async def track_product_view(self, product_id: str, collection_id: Optional[str] = None) -> bool:
        success = await self.tracker.record_view(product_id, collection_id)
        if self.tracker.enabled:
            VIEW_EVENTS_TOTAL.labels(plugin=PLUGIN).inc()
        return success

    async def get_trending_products(
        self,
        data: Union[TrendingInput, dict, None] = None,
    ) -> list[ProductOutput]:
        """
        Most recently viewed products in the window.

        With a category filter, up to twice `limit` candidates are checked and
        products outside the category are skipped, so the result may be short.
        """
        data = validate(TrendingInput, data or {})
        category_id = data.category_id

        async def resolve(product_id: str) -> Optional[ProductOutput]:
            return await self.get_product(
                product_id, include_images=False, include_categories=bool(category_id)
            )

        predicate = None
        if category_id:
            def predicate(product: ProductOutput) -> bool:
                return any(c.id == category_id for c in product.categories or [])

        return await self.tracker.top_k(
            data.time_window,
            data.limit,
            resolve,
            parent_id=data.collection_id,
            predicate=predicate,
        )

    # ═════════════════════════════ STATS ══════════════════════════════════

    async def get_stats(self) -> MarketplaceStats:
        with self._op("get_stats", "Failed to get stats"):
            async with self.db.session() as session:
                counts = {}
                for name, model in (
                    ("total_products", Product),
                    ("total_collections", Collection),
                    ("total_sellers", Seller),
                    ("total_categories", Category),
                ):
                    counts[name] = await session.scalar(select(func.count()).select_from(model))
        return MarketplaceStats(**counts)
