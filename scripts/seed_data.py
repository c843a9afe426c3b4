#!/usr/bin/env python3
"""
Seed script — fills a running CurateHub with a small demo dataset.

Creates:
  • 3 RSS feeds with 4 items each (dated one hour apart)
  • 3 sellers, a two-level category tree, 12 products
  • One collection per seller
  • A burst of item and product views so /trending has content

Run after the API is up:
  python scripts/seed_data.py --api-url http://localhost:1337

All IDs are printed so you can use them in curl commands.
"""
import argparse
import json
import random
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


FEEDS = [
    ("python-weekly", "Python Weekly", ["python", "programming"]),
    ("infra-notes", "Infra Notes", ["devops"]),
    ("data-digest", "Data Digest", ["data", "python"]),
]

HEADLINES = [
    "Async SQLAlchemy sessions explained",
    "Redis sorted sets for time-windowed rankings",
    "Writing RSS and Atom with feedgen",
    "Pydantic v2 validation at the service edge",
    "Prometheus histograms without the guesswork",
    "Tracing FastAPI requests end to end",
    "SQLite foreign keys and ON DELETE CASCADE",
    "Cursor vs offset pagination",
    "Zero downtime schema migrations",
    "Reading OpenTelemetry waterfalls",
    "When to over-fetch and filter",
    "Small services, sharp edges",
]

SELLERS = [
    ("Lumen Lighting", "Lamps and fixtures"),
    ("Oak & Iron", "Handmade furniture"),
    ("Paper Trail", "Stationery and notebooks"),
]

CATEGORIES = [
    ("Home", "home", None),
    ("Lighting", "lighting", "home"),
    ("Furniture", "furniture", "home"),
    ("Office", "office", None),
]

PRODUCTS = {
    "Lumen Lighting": [("Desk Lamp", 39.0, "lighting"), ("Floor Lamp", 89.0, "lighting"),
                       ("Pendant Light", 120.0, "lighting"), ("Bulb 4-pack", 12.5, "lighting")],
    "Oak & Iron": [("Oak Desk", 420.0, "furniture"), ("Bookshelf", 260.0, "furniture"),
                   ("Side Table", 95.0, "furniture"), ("Stool", 60.0, "furniture")],
    "Paper Trail": [("Dot Grid Notebook", 14.0, "office"), ("Fountain Pen", 48.0, "office"),
                    ("Desk Organizer", 29.0, "office"), ("Sticky Notes", 4.5, "office")],
}


@dataclass
class ApiClient:
    base_url: str

    def _request(self, method: str, path: str, data: dict | None = None) -> dict:
        url = f"{self.base_url}{path}"
        body = json.dumps(data).encode() if data is not None else None
        req = urllib.request.Request(
            url, data=body, headers={"Content-Type": "application/json"}, method=method
        )
        try:
            with urllib.request.urlopen(req, timeout=10) as resp:
                return json.loads(resp.read())
        except urllib.error.HTTPError as e:
            print(f"  HTTP {e.code} on {method} {path}: {e.read().decode()}")
            return {}

    def post(self, path: str, data: dict | None = None) -> dict:
        return self._request("POST", path, data)

    def get(self, path: str) -> dict:
        return self._request("GET", path)


def wait_for_api(client: ApiClient, retries: int = 15) -> None:
    print(f"Waiting for API at {client.base_url} ...")
    for _ in range(retries):
        try:
            if client.get("/health").get("status") == "ok":
                print("  API is ready!\n")
                return
        except (urllib.error.URLError, OSError):
            pass
        time.sleep(3)
    raise RuntimeError(f"API not reachable at {client.base_url} after {retries} retries")


def seed_feeds(client: ApiClient) -> list[str]:
    print("Creating feeds...")
    now = datetime.now(timezone.utc)
    headlines = HEADLINES[:]
    random.shuffle(headlines)
    item_ids: list[str] = []
    for n, (feed_id, title, categories) in enumerate(FEEDS):
        items = []
        for i in range(4):
            headline = headlines[(n * 4 + i) % len(headlines)]
            items.append({
                "id": f"{feed_id}-{i}",
                "title": headline,
                "link": f"https://example.com/{feed_id}/{i}",
                "description": f"{headline} — from {title}",
                "date": (now - timedelta(hours=i)).isoformat(),
                "category": [{"name": categories[0]}],
            })
        result = client.post("/rss/feeds", {
            "options": {
                "id": feed_id,
                "title": title,
                "link": f"https://example.com/{feed_id}",
                "description": f"The best of {title}",
                "language": "en",
            },
            "categories": categories,
            "items": items,
        })
        if result.get("id"):
            item_ids.extend(item["id"] for item in items)
            print(f"  ✓ {title} ({feed_id})")
        else:
            print(f"  ✗ Failed to create {feed_id}")
    return item_ids


def seed_marketplace(client: ApiClient) -> tuple[list[str], list[str]]:
    print("\nCreating categories...")
    category_ids: dict[str, str] = {}
    for name, slug, parent in CATEGORIES:
        payload = {"name": name, "slug": slug}
        if parent:
            payload["parent_id"] = category_ids[parent]
        cid = client.post("/marketplace/categories", payload).get("id")
        if cid:
            category_ids[slug] = cid
            print(f"  ✓ {name} ({cid})")

    print("\nCreating sellers, products and collections...")
    product_ids: list[str] = []
    collection_ids: list[str] = []
    for seller_name, description in SELLERS:
        seller_id = client.post(
            "/marketplace/sellers", {"name": seller_name, "description": description}
        ).get("id")
        if not seller_id:
            print(f"  ✗ Failed to create {seller_name}")
            continue

        collection_id = client.post(
            "/marketplace/collections",
            {"seller_id": seller_id, "name": f"{seller_name} favourites"},
        ).get("id")
        if collection_id:
            collection_ids.append(collection_id)

        for position, (name, price, slug) in enumerate(PRODUCTS[seller_name]):
            pid = client.post("/marketplace/products", {
                "seller_id": seller_id,
                "name": name,
                "price": price,
                "stock_quantity": random.randint(0, 40),
                "images": [{"url": f"https://picsum.photos/seed/{slug}{position}/600/600"}],
                "category_ids": [category_ids[slug]] if slug in category_ids else [],
            }).get("id")
            if not pid:
                continue
            product_ids.append(pid)
            if collection_id:
                client.post(
                    f"/marketplace/collections/{collection_id}/products",
                    {"product_id": pid, "position": position},
                )
        print(f"  ✓ {seller_name} ({seller_id})")
    return product_ids, collection_ids


def main(api_url: str) -> None:
    client = ApiClient(api_url)
    wait_for_api(client)

    item_ids = seed_feeds(client)
    product_ids, collection_ids = seed_marketplace(client)

    # ── Views ─────────────────────────────────────────────────────────────
    print("\nRecording views...")
    views = 0
    for item_id in random.sample(item_ids, k=min(6, len(item_ids))):
        client.post(f"/rss/items/{item_id}/track-view")
        views += 1
    for product_id in random.sample(product_ids, k=min(6, len(product_ids))):
        client.post(f"/marketplace/products/{product_id}/track-view")
        views += 1
    print(f"  ✓ {views} views recorded")

    # ── Print summary ─────────────────────────────────────────────────────
    print("\n" + "=" * 60)
    print("Seed complete! Here are some commands to try:\n")
    print("# Newest items across every feed:")
    print(f"  curl -s '{api_url}/rss/items?limit=5' | python3 -m json.tool\n")
    print(f"# RSS 2.0 for '{FEEDS[0][0]}':")
    print(f"  curl -s '{api_url}/rss/feeds/{FEEDS[0][0]}/rss'\n")
    print("# Trending items and products:")
    print(f"  curl -s '{api_url}/rss/trending?time_window=1h' | python3 -m json.tool")
    print(f"  curl -s '{api_url}/marketplace/trending' | python3 -m json.tool\n")
    if collection_ids:
        print("# A collection with its products:")
        print(f"  curl -s '{api_url}/marketplace/collections/{collection_ids[0]}' | python3 -m json.tool\n")
    print(f"# Prometheus metrics: {api_url}/metrics/")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed CurateHub with demo feeds and products")
    parser.add_argument("--api-url", default="http://localhost:1337", help="API base URL")
    args = parser.parse_args()
    main(args.api_url)
