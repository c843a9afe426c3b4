import pytest
from sqlalchemy import func, select

from curatehub.errors import StoreError, ValidationError
from curatehub.plugins.marketplace.models import ProductCategory, ProductImage
from curatehub.plugins.marketplace.schemas import ProductFilters
from curatehub.plugins.marketplace.service import MarketplaceService
from curatehub.schemas import Pagination


@pytest.fixture()
async def seller_id(marketplace):
    return await marketplace.create_seller({"name": "Acme Goods", "logo_url": "https://acme.test/logo.png"})


async def _product(marketplace, seller_id, name="Widget", **fields):
    return await marketplace.create_product(
        {"seller_id": seller_id, "name": name, "price": fields.pop("price", 10.0), **fields}
    )


@pytest.mark.asyncio
async def test_product_round_trip(marketplace, seller_id):
    category_id = await marketplace.create_category({"name": "Tools", "slug": "tools"})
    product_id = await marketplace.create_product(
        {
            "seller_id": seller_id,
            "name": "Hammer",
            "description": "Steel head",
            "price": 24.5,
            "currency": "EUR",
            "availability": "PreOrder",
            "stock_quantity": 3,
            "sku": "HM-1",
            "brand": "Acme",
            "images": [
                {"url": "https://acme.test/a.jpg", "caption": "front"},
                {"url": "https://acme.test/b.jpg"},
            ],
            "category_ids": [category_id],
        }
    )

    product = await marketplace.get_product(product_id)
    assert product.id == product_id
    assert (product.name, product.description, product.price) == ("Hammer", "Steel head", 24.5)
    assert (product.currency, product.availability) == ("EUR", "PreOrder")
    assert (product.stock_quantity, product.sku, product.brand) == (3, "HM-1", "Acme")
    assert [i.url for i in product.images] == ["https://acme.test/a.jpg", "https://acme.test/b.jpg"]
    assert [i.position for i in product.images] == [0, 1]
    assert [c.name for c in product.categories] == ["Tools"]

    bare = await marketplace.get_product(product_id, include_images=False, include_categories=False)
    assert bare.images is None and bare.categories is None


@pytest.mark.asyncio
async def test_get_missing_returns_none(marketplace):
    assert await marketplace.get_product("nope") is None
    assert await marketplace.get_collection("nope") is None
    assert await marketplace.get_seller("nope") is None
    assert await marketplace.get_category("nope") is None


@pytest.mark.asyncio
async def test_invalid_product_is_rejected(marketplace, seller_id):
    with pytest.raises(ValidationError):
        await marketplace.create_product({"seller_id": seller_id, "name": "Free", "price": 0})
    with pytest.raises(ValidationError):
        await marketplace.create_product({"seller_id": seller_id, "name": "X", "price": 1, "color": "red"})
    assert await marketplace.get_products() == []


@pytest.mark.asyncio
async def test_create_product_is_atomic(marketplace, database, seller_id):
    # Unknown category violates a foreign key, so nothing of the product survives
    with pytest.raises(StoreError):
        await _product(
            marketplace,
            seller_id,
            images=[{"url": "https://acme.test/a.jpg"}],
            category_ids=["missing-category"],
        )

    assert await marketplace.get_products() == []
    async with database.session() as session:
        assert await session.scalar(select(func.count()).select_from(ProductImage)) == 0


@pytest.mark.asyncio
async def test_unknown_seller_is_a_store_error(marketplace):
    with pytest.raises(StoreError) as excinfo:
        await _product(marketplace, "ghost-seller")
    assert excinfo.value.to_dict()["kind"] == "store_error"


@pytest.mark.asyncio
async def test_update_product(marketplace, seller_id):
    product_id = await _product(marketplace, seller_id, description="unchanged")
    before = await marketplace.get_product(product_id)

    assert await marketplace.update_product(product_id, {"price": 12.0, "availability": "OutOfStock"})
    after = await marketplace.get_product(product_id)
    assert (after.price, after.availability, after.description) == (12.0, "OutOfStock", "unchanged")
    assert after.updated_at >= before.updated_at

    # Nothing to change: no write, still reports the product exists
    assert await marketplace.update_product(product_id, {}) is True
    assert await marketplace.update_product("missing", {"price": 1.0}) is False
    with pytest.raises(ValidationError):
        await marketplace.update_product(product_id, {"price": -1})


@pytest.mark.asyncio
async def test_update_rejects_null_for_required_columns(marketplace, seller_id):
    product_id = await _product(marketplace, seller_id)
    collection_id = await marketplace.create_collection({"seller_id": seller_id, "name": "Gifts"})

    for field in ("name", "price", "currency", "availability"):
        with pytest.raises(ValidationError):
            await marketplace.update_product(product_id, {field: None})
    with pytest.raises(ValidationError):
        await marketplace.update_collection(collection_id, {"name": None})

    # Nullable columns can still be cleared
    assert await marketplace.update_product(product_id, {"brand": None}) is True
    assert (await marketplace.get_collection(collection_id)).name == "Gifts"


@pytest.mark.asyncio
async def test_delete_product_cascades(marketplace, database, seller_id):
    category_id = await marketplace.create_category({"name": "Toys", "slug": "toys"})
    product_id = await _product(
        marketplace, seller_id,
        images=[{"url": "https://acme.test/a.jpg"}],
        category_ids=[category_id],
    )
    collection_id = await marketplace.create_collection({"seller_id": seller_id, "name": "Gifts"})
    await marketplace.add_product_to_collection(collection_id, {"product_id": product_id})

    assert await marketplace.delete_product(product_id) is True

    assert await marketplace.get_product(product_id) is None
    assert (await marketplace.get_collection(collection_id)).products == []
    assert await marketplace.get_products_by_category(category_id) == []
    async with database.session() as session:
        assert await session.scalar(select(func.count()).select_from(ProductImage)) == 0
        assert await session.scalar(select(func.count()).select_from(ProductCategory)) == 0
    # Idempotent
    assert await marketplace.delete_product(product_id) is True


@pytest.mark.asyncio
async def test_product_filters(marketplace, seller_id):
    other_seller = await marketplace.create_seller({"name": "Other"})
    category_id = await marketplace.create_category({"name": "Garden", "slug": "garden"})
    cheap = await _product(marketplace, seller_id, "Garden Hose", price=5.0, category_ids=[category_id])
    pricey = await _product(marketplace, seller_id, "Garden Bench", price=150.0, availability="BackOrder")
    theirs = await _product(marketplace, other_seller, "Hose Reel", price=40.0)

    def ids(products):
        return {p.id for p in products}

    assert ids(await marketplace.get_products()) == {cheap, pricey, theirs}
    assert ids(await marketplace.get_products({"seller_id": seller_id})) == {cheap, pricey}
    assert ids(await marketplace.get_products({"min_price": 10, "max_price": 100})) == {theirs}
    assert ids(await marketplace.get_products({"availability": "BackOrder"})) == {pricey}
    assert ids(await marketplace.get_products({"search": "hose"})) == {cheap, theirs}
    assert ids(await marketplace.get_products({"category_id": category_id})) == {cheap}
    assert ids(await marketplace.get_seller_products(other_seller)) == {theirs}

    results = await marketplace.search_products(
        {"query": "hose", "filters": {"seller_id": seller_id}}
    )
    assert ids(results) == {cheap}


@pytest.mark.asyncio
async def test_product_pages_concatenate(marketplace, seller_id):
    for i in range(7):
        await _product(marketplace, seller_id, f"Item {i}")

    full = [p.id for p in await marketplace.get_products(ProductFilters(), Pagination(limit=100))]
    assert len(full) == 7

    pages = []
    for offset in range(0, 7, 3):
        page = await marketplace.get_products(None, {"limit": 3, "offset": offset})
        pages.extend(p.id for p in page)
    assert pages == full

    with pytest.raises(ValidationError):
        await marketplace.get_products(None, {"limit": 500})


@pytest.mark.asyncio
async def test_newest_products_first(marketplace, seller_id):
    first = await _product(marketplace, seller_id, "First")
    second = await _product(marketplace, seller_id, "Second")
    products = await marketplace.get_products()
    assert [p.id for p in products] in ([second, first], [first, second])
    created = [p.created_at for p in products]
    assert created == sorted(created, reverse=True)


@pytest.mark.asyncio
async def test_collections(marketplace, seller_id):
    a = await _product(marketplace, seller_id, "A")
    b = await _product(marketplace, seller_id, "B")
    collection_id = await marketplace.create_collection(
        {"seller_id": seller_id, "name": "Summer", "image_url": "https://acme.test/summer.png"}
    )

    await marketplace.add_product_to_collection(collection_id, {"product_id": a, "position": 2})
    await marketplace.add_product_to_collection(collection_id, {"product_id": b, "position": 1})
    collection = await marketplace.get_collection(collection_id)
    assert collection.image_url == "https://acme.test/summer.png"
    assert [p.id for p in collection.products] == [b, a]

    # Re-adding only moves the product
    await marketplace.add_product_to_collection(collection_id, {"product_id": a, "position": 0})
    assert [p.id for p in (await marketplace.get_collection(collection_id)).products] == [a, b]

    await marketplace.remove_product_from_collection(collection_id, a)
    assert [p.id for p in (await marketplace.get_collection(collection_id)).products] == [b]

    assert await marketplace.update_collection(collection_id, {"name": "Autumn"})
    assert (await marketplace.get_collection(collection_id, include_products=False)).name == "Autumn"

    assert [c.id for c in await marketplace.get_seller_collections(seller_id)] == [collection_id]

    await marketplace.delete_collection(collection_id)
    assert await marketplace.get_collection(collection_id) is None
    # Products survive their collection
    assert await marketplace.get_product(b) is not None


@pytest.mark.asyncio
async def test_delete_seller_cascades(marketplace, seller_id):
    product_id = await _product(marketplace, seller_id, images=[{"url": "https://acme.test/a.jpg"}])
    collection_id = await marketplace.create_collection({"seller_id": seller_id, "name": "All"})
    await marketplace.add_product_to_collection(collection_id, {"product_id": product_id})

    assert await marketplace.delete_seller(seller_id) is True

    assert await marketplace.get_seller(seller_id) is None
    assert await marketplace.get_product(product_id) is None
    assert await marketplace.get_collection(collection_id) is None
    assert await marketplace.get_sellers() == []


@pytest.mark.asyncio
async def test_categories(marketplace):
    root = await marketplace.create_category({"name": "Home", "slug": "home"})
    child = await marketplace.create_category({"name": "Kitchen", "slug": "kitchen", "parent_id": root})
    other_root = await marketplace.create_category({"name": "Auto", "slug": "auto"})

    assert {c.id for c in await marketplace.get_categories()} == {root, child, other_root}
    assert {c.id for c in await marketplace.get_categories("")} == {root, other_root}
    assert [c.id for c in await marketplace.get_categories(root)] == [child]

    category = await marketplace.get_category(root, include_children=True)
    assert [c.name for c in category.children] == ["Kitchen"]

    # Slugs are unique
    with pytest.raises(StoreError):
        await marketplace.create_category({"name": "Home again", "slug": "home"})


@pytest.mark.asyncio
async def test_add_product_image_appends(marketplace, seller_id):
    product_id = await _product(marketplace, seller_id, images=[{"url": "https://acme.test/a.jpg"}])
    await marketplace.add_product_image({"product_id": product_id, "url": "https://acme.test/b.jpg"})

    product = await marketplace.get_product(product_id)
    assert [(i.url, i.position) for i in product.images] == [
        ("https://acme.test/a.jpg", 0),
        ("https://acme.test/b.jpg", 1),
    ]


@pytest.mark.asyncio
async def test_trending_products(marketplace, seller_id, clock):
    category_id = await marketplace.create_category({"name": "Books", "slug": "books"})
    book = await _product(marketplace, seller_id, "Book", category_ids=[category_id])
    lamp = await _product(marketplace, seller_id, "Lamp")
    collection_id = await marketplace.create_collection({"seller_id": seller_id, "name": "Desk"})

    await marketplace.track_product_view(book)
    clock.advance(30)
    await marketplace.track_product_view(lamp, collection_id=collection_id)

    trending = await marketplace.get_trending_products({"time_window": "1h"})
    assert [p.id for p in trending] == [lamp, book]

    in_category = await marketplace.get_trending_products({"category_id": category_id})
    assert [p.id for p in in_category] == [book]

    in_collection = await marketplace.get_trending_products({"collection_id": collection_id})
    assert [p.id for p in in_collection] == [lamp]

    clock.advance(2 * 3600)
    assert await marketplace.get_trending_products({"time_window": "1h"}) == []
    assert len(await marketplace.get_trending_products({"time_window": "24h"})) == 2

    with pytest.raises(ValidationError):
        await marketplace.get_trending_products({"time_window": "2h"})


@pytest.mark.asyncio
async def test_trending_without_redis(database):
    service = MarketplaceService(database)
    assert await service.track_product_view("anything") is True
    assert await service.get_trending_products() == []


@pytest.mark.asyncio
async def test_stats_and_health(marketplace, seller_id):
    await _product(marketplace, seller_id)
    await marketplace.create_collection({"seller_id": seller_id, "name": "C"})
    await marketplace.create_category({"name": "Cat", "slug": "cat"})

    stats = await marketplace.get_stats()
    assert stats.model_dump() == {
        "total_products": 1,
        "total_collections": 1,
        "total_sellers": 1,
        "total_categories": 1,
    }
    assert await marketplace.health_check() == "OK"
