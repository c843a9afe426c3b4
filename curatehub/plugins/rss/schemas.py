"""
Pydantic schemas for feeds and feed items.

Stored records and API payloads share these shapes; a feed is persisted
without its items, which live under their own keys and are attached on read.
"""
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Category(BaseModel):
    name: Optional[str] = None
    term: Optional[str] = None
    domain: Optional[str] = None

    def labels(self) -> list[str]:
        return [label for label in (self.name, self.term) if label]


class Person(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    link: Optional[str] = None


class FeedItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    title: str = ""
    link: Optional[str] = None
    description: Optional[str] = None
    content: Optional[str] = None
    guid: Optional[str] = None
    image: Optional[str] = None
    # ISO-8601 timestamps; `published` wins over `date` when ordering
    date: str
    published: Optional[str] = None
    category: list[Category] = Field(default_factory=list)
    author: list[Person] = Field(default_factory=list)

    def category_labels(self) -> set[str]:
        return {label for cat in self.category for label in cat.labels()}


class FeedItemUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    link: Optional[str] = None
    description: Optional[str] = None
    content: Optional[str] = None
    image: Optional[str] = None
    date: Optional[str] = None
    published: Optional[str] = None
    category: Optional[list[Category]] = None
    author: Optional[list[Person]] = None

    @field_validator("title", "date", "category", "author", mode="before")
    @classmethod
    def _not_null(cls, value):
        # Omit a field to leave it unchanged; null would blank a required one
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class FeedOptions(BaseModel):
    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    link: Optional[str] = None
    description: Optional[str] = None
    language: Optional[str] = None
    copyright: Optional[str] = None
    image: Optional[str] = None
    favicon: Optional[str] = None
    updated: Optional[str] = None
    generator: Optional[str] = None
    author: Optional[Person] = None


class Feed(BaseModel):
    options: FeedOptions
    items: list[FeedItem] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    contributors: list[Person] = Field(default_factory=list)


class FeedItemWithTitle(BaseModel):
    item: Optional[FeedItem]
    feed_title: str


class RssStats(BaseModel):
    total_feeds: int
    total_items: int
    total_categories: int


FeedFormat = Literal["rss", "atom"]
