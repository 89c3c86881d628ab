import pytest

from bookservice import catalog
from bookservice.errors import NotFound
from bookservice.models import Filter

from .conftest import BOOKS


@pytest.fixture
async def books(session):
    await catalog.insert_books(session, BOOKS)
    await session.commit()


def _names(found):
    return [book.name for book in found]


class TestListBooks:
    async def test_no_filters_returns_whole_catalog(self, session, books):
        assert _names(await catalog.list_books(session)) == ["Dune", "Emma", "Neuromancer"]
        assert len(await catalog.list_books(session, [])) == 3

    async def test_price_range_is_inclusive(self, session, books):
        found = await catalog.list_books(session, [Filter(price_from=20, price_to=30)])
        assert _names(found) == ["Emma"]

        found = await catalog.list_books(session, [Filter(price_from=10, price_to=25)])
        assert _names(found) == ["Dune", "Emma"]

    async def test_name_and_author_are_case_insensitive_substrings(self, session, books):
        assert _names(await catalog.list_books(session, [Filter(name="UNE")])) == ["Dune"]
        assert _names(await catalog.list_books(session, [Filter(author="gibs")])) == [
            "Neuromancer"
        ]

    async def test_case_folding_covers_non_ascii_letters(self, session):
        await catalog.insert_books(
            session,
            [
                {"id": "zola", "name": "Thérèse Raquin", "author": "Émile Zola", "price": 8},
                {"id": "mann", "name": "Der Zauberberg", "author": "Thomas Mann", "price": 12},
                {"id": "fontane", "name": "Effi Briest", "author": "Theodor Fontane", "price": 9},
            ],
        )

        assert _names(await catalog.list_books(session, [Filter(author="émile")])) == [
            "Thérèse Raquin"
        ]
        assert _names(await catalog.list_books(session, [Filter(name="THÉRÈSE")])) == [
            "Thérèse Raquin"
        ]
        assert _names(await catalog.list_books(session, [Filter(name="ZAUBERBERG")])) == [
            "Der Zauberberg"
        ]
        # 返す値は大文字小文字を保ったまま
        assert (await catalog.get_book(session, "zola")).author == "Émile Zola"

    async def test_conditions_within_a_filter_are_anded(self, session, books):
        found = await catalog.list_books(
            session, [Filter(author="austen", price_from=30)]
        )
        assert found == []

    async def test_filters_are_ored(self, session, books):
        found = await catalog.list_books(
            session,
            [Filter(price_from=20, price_to=30), Filter(author="Herbert")],
        )
        assert _names(found) == ["Dune", "Emma"]

    async def test_empty_filter_matches_everything(self, session, books):
        assert len(await catalog.list_books(session, [Filter()])) == 3

    async def test_like_wildcards_are_literal(self, session, books):
        assert await catalog.list_books(session, [Filter(name="%")]) == []

    def test_filter_accepts_from_and_to_keys(self):
        f = Filter.model_validate({"from": 20, "to": 30})
        assert (f.price_from, f.price_to) == (20, 30)


class TestGetBook:
    async def test_found(self, session, books):
        book = await catalog.get_book(session, "book-emma")
        assert book.author == "Jane Austen"
        assert book.price == 25

    async def test_not_found(self, session, books):
        with pytest.raises(NotFound):
            await catalog.get_book(session, "missing")


class TestInsertBooks:
    async def test_assigns_ids_when_missing(self, session):
        ids = await catalog.insert_books(
            session, [{"name": "Untitled", "author": "Anon", "price": 1}]
        )
        assert len(ids) == 1
        assert (await catalog.get_book(session, ids[0])).name == "Untitled"
