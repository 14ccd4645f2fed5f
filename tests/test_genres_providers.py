from __future__ import annotations

from genres import GENRE_MAP, get_genre_id, get_genre_name, get_genre_names
from providers import PROVIDER_LIST, Provider, is_known_provider, provider_name


def test_genre_table_has_all_tmdb_movie_genres() -> None:
    assert len(GENRE_MAP) == 19
    assert GENRE_MAP[878] == "Science Fiction"


def test_genre_lookup_is_bidirectional() -> None:
    for genre_id, name in GENRE_MAP.items():
        assert get_genre_id(name) == genre_id
        assert get_genre_name(genre_id) == name


def test_genre_name_lookup_ignores_case_and_spacing() -> None:
    assert get_genre_id("drama") == 18
    assert get_genre_id("  SCIENCE   fiction ") == 878
    assert get_genre_id("tv movie") == 10770


def test_unknown_genres() -> None:
    assert get_genre_id("Telenovela") is None
    assert get_genre_id("") is None
    assert get_genre_id(None) is None
    assert get_genre_name(1) is None
    assert get_genre_name("not-a-number") is None


def test_genre_names_drop_unknown_ids() -> None:
    assert get_genre_names([18, 99999, 35]) == ["Drama", "Comedy"]
    assert get_genre_names([]) == []
    assert get_genre_names(None) == []


def test_provider_list_is_pipe_joined() -> None:
    assert PROVIDER_LIST == "8|119|237|232|433|309|542"


def test_provider_names() -> None:
    assert Provider.NETFLIX.display_name == "Netflix"
    assert provider_name(119) == "Amazon Prime Video"
    assert provider_name("542") == "ManoramaMAX"
    assert provider_name(1) is None
    assert is_known_provider(309)
    assert not is_known_provider(None)
