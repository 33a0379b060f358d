"""Tests for catalog filtering, paging, rails and the manifest."""

import pytest

from iptv_catalog.schemas import AddonConfig
from iptv_catalog.services.catalog_query_service import (
    RailNotFound,
    build_manifest,
    catalog_prefix,
    query_catalog,
    resolve_rail,
    select_items,
)
from iptv_catalog.services.catalog_store import CatalogStore
from iptv_catalog.services.fetch_types import CatalogItem


def channel(name, category):
    return CatalogItem(id=f"iptv_{name.lower().replace(' ', '_')}", type="tv", name=name,
                       url=f"http://s/{name}", category=category)


def movie(name, category, year=None):
    return CatalogItem(id=f"iptv_{name.lower().replace(' ', '_')}", type="movie", name=name,
                       url=f"http://s/{name}", category=category, year=year)


CHANNELS = [
    channel("Euro News HD", "News"),
    channel("Sport One", "Sports"),
    channel("Late Night", "Adult"),
]

MOVIES = [
    movie("Old Film", "Classics", 1950),
    movie("No Year", "Classics"),
    movie("Dune", "SciFi", 2021),
    movie("Matrix", "SciFi", 1999),
]


@pytest.fixture
def store():
    return CatalogStore("identity", channels=list(CHANNELS), movies=list(MOVIES))


class TestSelectItems:
    """Rail, blacklist, genre and search filters."""

    def test_blacklist_applies_to_global_queries(self):
        names = [item.name for item in select_items(CHANNELS, blacklist={"Adult"})]
        assert "Late Night" not in names
        assert names == ["Euro News HD", "Sport One"]

    def test_rail_is_exempt_from_blacklist(self):
        names = [item.name for item in select_items(CHANNELS, rail="Adult", blacklist={"Adult"})]
        assert names == ["Late Night"]

    def test_search_is_case_insensitive_substring(self):
        names = [item.name for item in select_items(CHANNELS, search="news")]
        assert names == ["Euro News HD"]

    def test_genre_is_exact_category_match(self):
        assert [item.name for item in select_items(CHANNELS, genre="Sports")] == ["Sport One"]
        assert select_items(CHANNELS, genre="Sport") == []

    def test_year_sort_descending_missing_year_last(self):
        names = [item.name for item in select_items(MOVIES, sort_by_year=True)]
        assert names == ["Dune", "Matrix", "Old Film", "No Year"]


class TestQueryCatalog:
    """Paged preview projections."""

    def test_returns_previews_not_items(self, store):
        metas = query_catalog(store, "tv", blacklist=["Adult"])
        assert [meta.name for meta in metas] == ["Euro News HD", "Sport One"]
        assert all(meta.poster_shape == "landscape" for meta in metas)

    def test_movies_sorted_by_year(self, store):
        metas = query_catalog(store, "movie")
        assert [meta.name for meta in metas] == ["Dune", "Matrix", "Old Film", "No Year"]
        assert metas[0].year == 2021

    def test_page_size_and_skip(self):
        many = [channel(f"Channel {i:03d}", "Bulk") for i in range(250)]
        store = CatalogStore("identity", channels=many)

        first = query_catalog(store, "tv")
        third = query_catalog(store, "tv", skip=200)

        assert len(first) == 100
        assert first[0].name == "Channel 000"
        assert len(third) == 50
        assert third[0].name == "Channel 200"

    def test_unknown_type_is_empty(self, store):
        assert query_catalog(store, "radio") == []

    def test_empty_store_is_empty(self):
        assert query_catalog(CatalogStore("identity"), "tv") == []


class TestRailsAndManifest:

    @pytest.fixture
    def rail_config(self):
        return AddonConfig(
            m3u_url="http://p/list.m3u",
            addon_name="My TV!",
            home_tvs_list="News, Adult",
            home_movies_list=["SciFi"],
            blacklisted_cats=["Adult"],
        )

    def test_prefix_strips_non_alphanumerics(self, rail_config):
        assert catalog_prefix(rail_config) == "MyTV_"

    def test_resolve_rail(self, rail_config):
        assert resolve_rail(rail_config, "MyTV_home_tv_1") == "Adult"
        assert resolve_rail(rail_config, "MyTV_home_movie_0") == "SciFi"
        assert resolve_rail(rail_config, "MyTV_channels") is None

    def test_resolve_rail_out_of_range(self, rail_config):
        with pytest.raises(RailNotFound):
            resolve_rail(rail_config, "MyTV_home_series_0")

    def test_manifest_lists_rails_then_global_catalogs(self, rail_config, store):
        manifest = build_manifest(rail_config, store)
        ids = [catalog["id"] for catalog in manifest["catalogs"]]

        assert ids == [
            "MyTV_home_tv_0",
            "MyTV_home_tv_1",
            "MyTV_home_movie_0",
            "MyTV_channels",
            "MyTV_movies",
            "MyTV_series",
        ]
        live = manifest["catalogs"][3]
        assert live["genres"] == ["News", "Sports"]
        assert live["posterShape"] == "landscape"
        assert manifest["name"] == "My TV!"
        assert "MyTV_" in manifest["idPrefixes"]

    def test_manifest_hides_series_catalog_when_excluded(self, store):
        config = AddonConfig(m3u_url="http://p/list.m3u", include_series=False)
        ids = [catalog["id"] for catalog in build_manifest(config, store)["catalogs"]]
        assert not any(catalog_id.endswith("_series") for catalog_id in ids)
