"""Tests for sparse index access and archive location."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from cratedl.errors import CrateNotFoundError, IndexProtocolError
from cratedl.index import (
    ArchiveLocator,
    IndexCache,
    IndexConfig,
    SparseIndexClient,
    alternate_spelling,
    crate_prefix,
    index_path,
    parse_index_file,
)
from cratedl.models import IndexEntry

if TYPE_CHECKING:
    from conftest import FakeRegistry

CHECKSUM = "ab" * 32


def make_session(status: int = 200, body: str = "", json_body: object = None) -> MagicMock:
    """Create a mock aiohttp session whose get() yields one response."""
    response = MagicMock()
    response.status = status
    response.reason = "Reason"
    response.text = AsyncMock(return_value=body)
    response.json = AsyncMock(return_value=json_body)
    session = MagicMock()
    session.get.return_value.__aenter__.return_value = response
    return session


class TestIndexLayout:
    """Tests for index path computation."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("a", "1/a"),
            ("ab", "2/ab"),
            ("abc", "3/a/abc"),
            ("serde", "se/rd/serde"),
            ("Serde_JSON", "se/rd/serde_json"),
        ],
    )
    def test_index_path(self, name: str, expected: str) -> None:
        """Test the 1/, 2/, 3/c/, ab/cd/ layout."""
        assert index_path(name) == expected

    def test_crate_prefix_keeps_case(self) -> None:
        """Test that the prefix is computed from the given spelling."""
        assert crate_prefix("SeRde") == "Se/Rd"

    def test_alternate_spelling(self) -> None:
        """Test the -/_ swap."""
        assert alternate_spelling("serde-json") == "serde_json"
        assert alternate_spelling("serde_json") == "serde-json"
        assert alternate_spelling("serde") is None


class TestParseIndexFile:
    """Tests for parsing newline-delimited index records."""

    def test_parse_records(self) -> None:
        """Test parsing records in publication order."""
        body = "\n".join(
            [
                json.dumps({"name": "foo", "vers": "1.0.0", "cksum": CHECKSUM.upper()}),
                "",
                json.dumps(
                    {
                        "name": "foo",
                        "vers": "1.1.0",
                        "cksum": CHECKSUM,
                        "yanked": True,
                        "rust_version": "1.70",
                    }
                ),
            ]
        )
        entries = parse_index_file(body)
        assert [e.version for e in entries] == ["1.0.0", "1.1.0"]
        assert entries[0].checksum == CHECKSUM
        assert entries[0].yanked is False
        assert entries[1].yanked is True

    @pytest.mark.parametrize(
        "line",
        ["not json", json.dumps({"name": "foo", "vers": "1.0.0"}), json.dumps(["list"])],
    )
    def test_malformed(self, line: str) -> None:
        """Test that malformed records raise IndexProtocolError."""
        with pytest.raises(IndexProtocolError, match="line 1"):
            parse_index_file(line)


class TestIndexConfig:
    """Tests for download URL templates."""

    def test_plain_base_url(self) -> None:
        """Test that /{crate}/{version}/download is appended without markers."""
        config = IndexConfig(dl="https://static.crates.io/crates/")
        assert (
            config.download_url("serde", "1.0.0", CHECKSUM)
            == "https://static.crates.io/crates/serde/1.0.0/download"
        )

    def test_template_markers(self) -> None:
        """Test substitution of every marker."""
        config = IndexConfig(
            dl="https://dl.example/{prefix}/{lowerprefix}/{crate}-{version}.crate?sha={sha256-checksum}"
        )
        assert config.download_url("SeRde", "1.0.0", CHECKSUM) == (
            f"https://dl.example/Se/Rd/se/rd/SeRde-1.0.0.crate?sha={CHECKSUM}"
        )

    def test_from_json_requires_dl(self) -> None:
        """Test validation of config.json."""
        assert IndexConfig.from_json({"dl": "x", "api": "y"}) == IndexConfig(dl="x")
        with pytest.raises(IndexProtocolError):
            IndexConfig.from_json({"api": "y"})


class TestIndexCache:
    """Tests for the index response memo."""

    def test_write_once(self) -> None:
        """Test that entries cannot be replaced."""
        cache = IndexCache()
        entries = [IndexEntry(name="foo", version="1.0.0", checksum=CHECKSUM)]
        cache.store("foo", entries)
        assert "foo" in cache
        assert cache.get("foo") == entries
        with pytest.raises(KeyError):
            cache.store("foo", [])

    def test_negative_answers_are_cached(self) -> None:
        """Test storing a not-found result."""
        cache = IndexCache()
        cache.store("missing", None)
        assert "missing" in cache
        assert cache.get("missing") is None
        assert len(cache) == 1

    def test_same_lock_per_key(self) -> None:
        """Test that a name maps to a single lock."""
        cache = IndexCache()
        assert cache.lock_for("foo") is cache.lock_for("foo")
        assert cache.lock_for("foo") is not cache.lock_for("bar")


class TestArchiveLocator:
    """Tests for ArchiveLocator against an in-memory index."""

    @pytest.mark.asyncio
    async def test_locate(self, registry: FakeRegistry) -> None:
        """Test locating all versions of a crate."""
        registry.publish("foo", "1.0.0")
        registry.publish("foo", "1.1.0")
        locator = ArchiveLocator(registry.index_source)

        entries = await locator.locate("foo")

        assert [e.version for e in entries] == ["1.0.0", "1.1.0"]

    @pytest.mark.asyncio
    async def test_locate_normalizes_case(self, registry: FakeRegistry) -> None:
        """Test that names are looked up lowercased."""
        registry.publish("Inflector", "0.11.4")
        locator = ArchiveLocator(registry.index_source)

        entries = await locator.locate("INFLECTOR")

        assert entries[0].name == "Inflector"
        assert registry.index_queries == ["inflector"]

    @pytest.mark.asyncio
    async def test_concurrent_lookups_query_once(self, registry: FakeRegistry) -> None:
        """Test that concurrent lookups of one name share a single query."""
        registry.publish("foo", "1.0.0")
        locator = ArchiveLocator(registry.index_source, IndexCache())

        results = await asyncio.gather(*(locator.locate("foo") for _ in range(5)))

        assert all(r == results[0] for r in results)
        assert registry.index_queries == ["foo"]

    @pytest.mark.asyncio
    async def test_alternate_spelling(self, registry: FakeRegistry) -> None:
        """Test the -/_ fallback."""
        registry.publish("serde_json", "1.0.0")
        locator = ArchiveLocator(registry.index_source)

        entries = await locator.locate("serde-json")

        assert entries[0].name == "serde_json"
        assert registry.index_queries == ["serde-json", "serde_json"]

    @pytest.mark.asyncio
    async def test_not_found_is_memoized(self, registry: FakeRegistry) -> None:
        """Test that a missing crate raises and is not re-queried."""
        locator = ArchiveLocator(registry.index_source)

        for _ in range(2):
            with pytest.raises(CrateNotFoundError) as exc_info:
                await locator.locate("nope")

        assert exc_info.value.kind == "not-found-in-index"
        assert registry.index_queries == ["nope"]

    @pytest.mark.asyncio
    async def test_resolve(self, registry: FakeRegistry) -> None:
        """Test resolving an entry into an archive identity."""
        registry.publish("foo", "1.0.0")
        locator = ArchiveLocator(registry.index_source)
        entry = (await locator.locate("foo"))[0]

        archive = await locator.resolve(entry)
        await locator.resolve(entry)

        assert archive.url == registry.url_for("foo", "1.0.0")
        assert archive.checksum == entry.checksum
        assert archive.filename == "foo-1.0.0.crate"
        assert registry.config_queries == 1


class TestSparseIndexClient:
    """Tests for the HTTP sparse index client."""

    @pytest.mark.asyncio
    async def test_fetch_crate(self) -> None:
        """Test a successful index query."""
        session = make_session(body="{}\n")
        client = SparseIndexClient(session, "sparse+https://index.example/", user_agent="t/1")

        body = await client.fetch_crate("serde")

        assert body == "{}\n"
        url = session.get.call_args.args[0]
        assert url == "https://index.example/se/rd/serde"
        assert session.get.call_args.kwargs["headers"] == {"User-Agent": "t/1"}
        assert client.url == "https://index.example"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404, 410, 451])
    async def test_not_found_statuses(self, status: int) -> None:
        """Test that not-found statuses map to None."""
        client = SparseIndexClient(make_session(status=status), "https://index.example", "t/1")
        assert await client.fetch_crate("serde") is None

    @pytest.mark.asyncio
    async def test_server_error(self) -> None:
        """Test that other statuses raise IndexProtocolError."""
        client = SparseIndexClient(make_session(status=503), "https://index.example", "t/1")
        with pytest.raises(IndexProtocolError, match="503"):
            await client.fetch_crate("serde")

    @pytest.mark.asyncio
    async def test_network_error(self) -> None:
        """Test that transport failures raise IndexProtocolError."""
        session = MagicMock()
        session.get.side_effect = aiohttp.ClientConnectionError("connection refused")
        client = SparseIndexClient(session, "https://index.example", "t/1")

        with pytest.raises(IndexProtocolError) as exc_info:
            await client.fetch_crate("serde")

        assert isinstance(exc_info.value.__cause__, aiohttp.ClientConnectionError)

    @pytest.mark.asyncio
    async def test_fetch_config(self) -> None:
        """Test fetching config.json."""
        session = make_session(json_body={"dl": "https://static.example/crates"})
        client = SparseIndexClient(session, "https://index.example/", "t/1")

        config = await client.fetch_config()

        assert config.dl == "https://static.example/crates"
        assert session.get.call_args.args[0] == "https://index.example/config.json"
