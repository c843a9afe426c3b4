import xml.etree.ElementTree as ET

from conftest import make_feed, make_item
from curatehub.plugins.rss.feed_generator import (
    generate_atom_xml,
    generate_rss_xml,
    item_link,
    parse_date,
)
from curatehub.plugins.rss.schemas import Feed, FeedItem

ATOM = "{http://www.w3.org/2005/Atom}"


def _feed() -> Feed:
    return Feed.model_validate(
        make_feed(
            "C1",
            title="Weekly Picks",
            items=[
                make_item("t", date="2024-05-01T12:00:00Z", title="Newest story",
                          categories=["python"], content="<p>body</p>"),
                make_item("t-1h", date="2024-05-01T11:00:00Z", title="Older story"),
            ],
        )
    )


def test_parse_date():
    assert parse_date("2024-05-01T12:00:00Z").isoformat() == "2024-05-01T12:00:00+00:00"
    assert parse_date("2024-05-01T14:00:00+02:00").hour == 12
    # Naive timestamps are read as UTC
    assert parse_date("2024-05-01").tzinfo is not None
    assert parse_date("garbage") is None
    assert parse_date(None) is None


def test_item_link_falls_back_to_base_url():
    item = FeedItem(id="abc", date="2024-01-01")
    assert item_link("http://test.local", "f", item) == "http://test.local/f/abc"
    item.link = "https://example.com/x"
    assert item_link("http://test.local", "f", item) == "https://example.com/x"


def test_rss_is_well_formed():
    xml = generate_rss_xml(_feed(), "http://test.local")
    assert "<rss" in xml
    assert "Weekly Picks" in xml

    channel = ET.fromstring(xml.encode("utf-8")).find("channel")
    assert channel.findtext("title") == "Weekly Picks"
    titles = [i.findtext("title") for i in channel.findall("item")]
    # Entries keep stored order
    assert titles == ["Newest story", "Older story"]
    assert channel.find("item").findtext("category") == "python"


def test_atom_is_well_formed():
    xml = generate_atom_xml(_feed(), "http://test.local")
    assert "<feed" in xml
    assert "Weekly Picks" in xml

    root = ET.fromstring(xml.encode("utf-8"))
    assert root.findtext(f"{ATOM}title") == "Weekly Picks"
    entries = root.findall(f"{ATOM}entry")
    assert [e.findtext(f"{ATOM}title") for e in entries] == ["Newest story", "Older story"]
    assert all(e.findtext(f"{ATOM}updated") for e in entries)


def test_sloppy_items_still_render():
    feed = Feed.model_validate(
        make_feed("f", items=[{"date": "whenever"}, make_item("x", title="", link=None)])
    )
    rss = generate_rss_xml(feed, "http://test.local/")
    atom = generate_atom_xml(feed, "http://test.local/")

    ET.fromstring(rss.encode("utf-8"))
    ET.fromstring(atom.encode("utf-8"))
    assert "Untitled" in rss
    assert "http://test.local/f/x" in rss


def test_control_characters_are_stripped():
    raw = make_feed("f", title="Weekly\x0b Picks", items=[
        make_item("x", title="bad\x0btitle", description="nul\x00here",
                  content="<p>\x1fbody</p>", categories=["py\x08thon"]),
    ])
    raw["options"]["description"] = "desc\x0c"
    feed = Feed.model_validate(raw)

    rss = generate_rss_xml(feed, "http://test.local")
    atom = generate_atom_xml(feed, "http://test.local")

    channel = ET.fromstring(rss.encode("utf-8")).find("channel")
    assert channel.findtext("title") == "Weekly Picks"
    assert channel.findtext("description") == "desc"
    item = channel.find("item")
    assert item.findtext("title") == "badtitle"
    assert item.findtext("category") == "python"

    root = ET.fromstring(atom.encode("utf-8"))
    assert root.find(f"{ATOM}entry").findtext(f"{ATOM}title") == "badtitle"
