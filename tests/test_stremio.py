from __future__ import annotations

from datetime import date

from constants import CATALOG_ID, GENRE_OPTIONS, IdScheme
from models import Movie
from stremio import build_manifest, image_url, metas_for_movies, movie_to_meta


def _movie(**overrides) -> Movie:
    fields = {
        "id": 101,
        "title": "Premalu",
        "original_language": "ml",
        "release_date": date(2024, 2, 9),
        "genre_ids": (35, 10749),
        "poster_path": "/p.jpg",
        "backdrop_path": "/b.jpg",
        "overview": "A romantic comedy &amp; more",
        "vote_average": 7.84,
        "runtime": 156,
    }
    fields.update(overrides)
    return Movie(**fields)


def test_manifest_advertises_single_movie_catalog() -> None:
    manifest = build_manifest()
    assert manifest["id"] == "org.malayalam.movies.ott.catalog"
    assert manifest["resources"] == ["catalog"]
    assert manifest["types"] == ["movie"]
    (catalog,) = manifest["catalogs"]
    assert catalog["id"] == CATALOG_ID
    assert catalog["type"] == "movie"
    extras = {e["name"]: e for e in catalog["extra"]}
    assert extras["genre"]["options"] == list(GENRE_OPTIONS)
    assert extras["skip"]["isRequired"] is False
    assert "idPrefixes" not in manifest


def test_manifest_for_imdb_ids() -> None:
    assert build_manifest(IdScheme.IMDB)["idPrefixes"] == ["tt"]


def test_full_meta() -> None:
    meta = movie_to_meta(_movie())
    assert meta == {
        "id": "tmdb:101",
        "type": "movie",
        "name": "Premalu",
        "genres": ["Comedy", "Romance"],
        "description": "A romantic comedy & more",
        "poster": "https://image.tmdb.org/t/p/w500/p.jpg",
        "background": "https://image.tmdb.org/t/p/w1280/b.jpg",
        "releaseInfo": "2024",
        "imdbRating": "7.8",
        "runtime": "156 min",
    }


def test_optional_fields_omitted_when_unknown() -> None:
    meta = movie_to_meta(_movie(
        poster_path=None, backdrop_path=None, release_date=None,
        vote_average=None, runtime=None, overview=None, genre_ids=(),
    ))
    assert meta == {
        "id": "tmdb:101",
        "type": "movie",
        "name": "Premalu",
        "genres": [],
        "description": "No description available",
    }


def test_name_falls_back_to_original_title() -> None:
    meta = movie_to_meta(_movie(title=None, original_title="പ്രേമലു"))
    assert meta is not None
    assert meta["name"] == "പ്രേമലു"


def test_unmappable_records_are_dropped() -> None:
    assert movie_to_meta(_movie(id=None)) is None
    assert movie_to_meta(_movie(title=None, original_title=None)) is None
    assert movie_to_meta(_movie(original_language="ta")) is None


def test_imdb_scheme_requires_valid_imdb_id() -> None:
    assert movie_to_meta(_movie(imdb_id="tt1234567"), IdScheme.IMDB)["id"] == "tt1234567"
    assert movie_to_meta(_movie(imdb_id=None), IdScheme.IMDB) is None
    assert movie_to_meta(_movie(imdb_id="nm123"), IdScheme.IMDB) is None


def test_image_url() -> None:
    assert image_url("x.jpg", "w500") == "https://image.tmdb.org/t/p/w500/x.jpg"
    assert image_url("", "w500") is None
    assert image_url(None, "w500") is None


def test_metas_for_movies_drops_and_limits() -> None:
    movies = [_movie(id=i) for i in range(1, 30)] + [_movie(id=None)]
    metas = metas_for_movies(movies, limit=20)
    assert len(metas) == 20
    assert metas[0]["id"] == "tmdb:1"

    assert metas_for_movies([_movie(id=None), _movie(id=5)]) == [movie_to_meta(_movie(id=5))]
