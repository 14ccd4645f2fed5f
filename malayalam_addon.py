#!/usr/bin/env python3
"""
Malayalam Movies OTT - Stremio catalog addon v1.0.0

Serves a single Stremio movie catalog of recent Malayalam-language movies
that are streamable in the watch region, sourced from TMDB.

Architecture:
    /manifest.json (GET)
        - Static addon manifest, cached by clients for a day

    /catalog/movie/malayalam_movies_latest[.json] (GET)
    /catalog/movie/malayalam_movies_latest/skip=20&genre=Drama.json (GET)
        - skip -> page (skip // 20 + 1), optional genre filter
        - Served from the in-memory cache when possible, otherwise the
          candidate strategies are run against TMDB

    /refresh (GET, POST)
        - Clears the cache and re-warms the first pages

Environment Variables:
    PORT: Server port (default: 7000)
    LOG_LEVEL: Logging level (default: INFO)
    STRUCTURED_LOGGING: JSON log lines when "true"
    TMDB_ACCESS_TOKEN / TMDB_API_KEY: TMDB credentials (one is required)
    CATALOG_STRATEGIES: Comma separated: discover, titles, keywords (default: discover)
    CATALOG_ID_SCHEME: tmdb or imdb (default: tmdb)
    FILTER_BY_PROVIDERS: Restrict discovery to known OTT providers (default: true)
    ENABLE_PLACEHOLDER_FALLBACK: Serve a placeholder page when TMDB is down
    CACHE_DURATION: Default cache TTL in seconds (default: 3600)
    REFRESH_INTERVAL: Seconds between background refreshes (default: 0, disabled)
"""

import logging
import os
import re
from datetime import datetime, timezone
from typing import Dict, Optional
from urllib.parse import parse_qsl

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from cache import MemoryCache
from catalog import CatalogService, UpstreamUnavailableError
from constants import (
    ADDON_ID,
    ADDON_NAME,
    ADDON_VERSION,
    CACHE_CONTROL_CATALOG,
    CACHE_CONTROL_MANIFEST,
    CATALOG_ID,
    CATALOG_ID_SCHEME,
    CATALOG_STRATEGIES,
    CONTENT_TYPE_MOVIE,
    CORS_ALLOW_HEADERS,
    CORS_METHODS,
    ENABLE_PLACEHOLDER_FALLBACK,
    FILTER_BY_PROVIDERS,
    PAGE_SIZE,
    REFRESH_INTERVAL,
)
from credentials import TMDBCredentials
from http_client import create_session
from logging_config import configure_logging, setup_flask_request_id
from metrics import metrics
from refresh import ALREADY_RUNNING, CatalogRefresher, RefreshScheduler
from strategies import build_strategies
from stremio import build_manifest, metas_for_movies, movie_to_meta
from text_utils import parse_int
from tmdb_client import TMDBClient, UpstreamError

# =============================================================================
# Configuration
# =============================================================================

PORT = int(os.environ.get("PORT", 7000))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
STRUCTURED_LOGGING = os.environ.get("STRUCTURED_LOGGING", "").lower() == "true"

logger = logging.getLogger(__name__)

# ASCII digits only; bounded so int() never hits the digit limit
SKIP_PATTERN = re.compile(r"[0-9]{1,9}")


class InvalidRequest(Exception):
    """Client input error answered with HTTP 400 and an error code."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


# =============================================================================
# Request Parsing
# =============================================================================

def parse_extra(extra: Optional[str]) -> Dict[str, str]:
    """
    Parse a Stremio path extra segment ("skip=20&genre=Drama.json").

    Returns:
        Dict of extra name to value; later duplicates win
    """
    if not extra:
        return {}
    if extra.endswith(".json"):
        extra = extra[:-len(".json")]
    return dict(parse_qsl(extra, keep_blank_values=False))


def parse_skip(value) -> int:
    """
    Validate the skip extra.

    Raises:
        InvalidRequest: if skip is not a non-negative integer
    """
    if value is None or value == "":
        return 0
    text = str(value).strip()
    if not SKIP_PATTERN.fullmatch(text):
        raise InvalidRequest("invalid_skip", f"skip must be a non-negative integer, got '{value}'")
    try:
        return int(text)
    except ValueError:
        raise InvalidRequest("invalid_skip", f"skip must be a non-negative integer, got '{value}'")


def skip_to_page(skip: int, page_size: int = PAGE_SIZE) -> int:
    """Stremio offset to 1-based catalog page."""
    return skip // page_size + 1


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    catalog: CatalogService = None,
    cache: MemoryCache = None,
    refresher: CatalogRefresher = None,
) -> Flask:
    """
    Build the Flask application.

    Collaborators are created from the environment unless injected.

    Args:
        catalog: Catalog service
        cache: Result cache shared by catalog and refresher
        refresher: Maintenance job behind /refresh

    Returns:
        Configured Flask app
    """
    if catalog is None:
        if cache is None:
            cache = MemoryCache()
        client = TMDBClient(TMDBCredentials.from_env(), session=create_session())
        catalog = CatalogService(
            client,
            cache,
            strategies=build_strategies(CATALOG_STRATEGIES, client, with_providers=FILTER_BY_PROVIDERS),
            id_scheme=CATALOG_ID_SCHEME,
            placeholder_fallback=ENABLE_PLACEHOLDER_FALLBACK,
        )
    if cache is None:
        cache = catalog.cache
    if refresher is None:
        refresher = CatalogRefresher(catalog, cache)

    app = Flask(__name__)
    app.json.sort_keys = False
    manifest = build_manifest(catalog.id_scheme)

    setup_flask_request_id(app)

    # -------------------------------------------------------------------------
    # CORS
    # -------------------------------------------------------------------------

    CORS(
        app,
        resources={r"/*": {"origins": "*"}},
        methods=list(CORS_METHODS),
        allow_headers=list(CORS_ALLOW_HEADERS),
        send_wildcard=True,
    )

    # Preflight is answered for every path, routed or not
    @app.before_request
    def answer_preflight():
        if request.method == "OPTIONS":
            return "", 200

    # -------------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------------

    @app.errorhandler(InvalidRequest)
    def handle_bad_request(e: InvalidRequest):
        return jsonify({"error": e.code, "message": e.message}), 400

    @app.errorhandler(UpstreamUnavailableError)
    @app.errorhandler(UpstreamError)
    def handle_upstream(e):
        logger.error(f"Upstream unavailable: {e}")
        metrics.inc("upstream_unavailable_responses")
        return jsonify({"error": "upstream_unavailable", "message": str(e)}), 502

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        code = (e.name or "error").lower().replace(" ", "_")
        return jsonify({"error": code, "message": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        logger.exception(f"Unhandled error on {request.path}: {e}")
        metrics.inc("internal_errors")
        return jsonify({"error": "internal_error", "message": "Internal server error"}), 500

    # -------------------------------------------------------------------------
    # Stremio protocol
    # -------------------------------------------------------------------------

    @app.route('/manifest.json', methods=['GET'])
    @app.route('/manifest', methods=['GET'])
    def get_manifest():
        response = jsonify(manifest)
        response.headers['Cache-Control'] = CACHE_CONTROL_MANIFEST
        return response

    @app.route('/catalog/<content_type>/<catalog_id>', methods=['GET'])
    @app.route('/catalog/<content_type>/<catalog_id>/<extra>', methods=['GET'])
    def get_catalog(content_type: str, catalog_id: str, extra: str = None):
        if catalog_id.endswith(".json"):
            catalog_id = catalog_id[:-len(".json")]

        if content_type != CONTENT_TYPE_MOVIE:
            raise InvalidRequest("unsupported_type", f"Unsupported content type '{content_type}'")
        if catalog_id != CATALOG_ID:
            return jsonify({
                "error": "catalog_not_found",
                "message": f"Catalog '{catalog_id}' not found",
            }), 404

        extras = parse_extra(extra)
        extras.update(request.args.to_dict())
        skip = parse_skip(extras.get("skip"))

        genre = (extras.get("genre") or "").strip() or None
        page = skip_to_page(skip, catalog.page_size)

        result = catalog.discover_movies(page=page, genre=genre)
        metas = metas_for_movies(result.results, catalog.id_scheme, limit=catalog.page_size)

        logger.info(
            f"Catalog {catalog_id}: skip={skip} page={page} genre={genre or 'all'} -> {len(metas)} metas",
            extra={"catalog_id": catalog_id, "page": page, "genre": genre, "metas": len(metas)},
        )
        metrics.inc("catalog_requests")

        response = jsonify({"metas": metas})
        response.headers['Cache-Control'] = CACHE_CONTROL_CATALOG
        return response

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    @app.route('/refresh', methods=['GET', 'POST'])
    def refresh_catalog():
        summary = refresher.refresh()
        if not summary.success and ALREADY_RUNNING in summary.errors:
            return jsonify(summary.to_dict()), 409
        return jsonify(summary.to_dict())

    @app.route('/cache', methods=['GET'])
    def cache_status():
        """
        View cache statistics and entries.

        Usage:
            /cache           - stats and all live keys
            /cache?key=xxx   - ttl and remaining lifetime of one entry
        """
        key = request.args.get('key', '')
        if key:
            entry = cache.inspect(key)
            if entry is None:
                return jsonify({"key": key, "cached": False}), 404
            return jsonify({"cached": True, **entry})

        return jsonify({
            "stats": cache.stats(),
            "keys": cache.keys(),
        })

    @app.route('/cache/clear', methods=['POST'])
    def cache_clear():
        count = cache.clear()
        logger.info(f"Cache cleared via API ({count} entries)")
        return jsonify({"cleared": count})

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    @app.route('/debug/catalog', methods=['GET'])
    def debug_catalog():
        """Echo what the addon received, for debugging client URL building."""
        return jsonify({
            "path": request.path,
            "method": request.method,
            "query": request.args.to_dict(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    @app.route('/test/search', methods=['GET'])
    def test_search():
        query = (request.args.get("q") or "").strip()
        if not query:
            raise InvalidRequest("missing_query", "Query parameter 'q' is required")
        page = parse_int(request.args.get("page"), 1) or 1

        result = catalog.search(query, page=page)
        return jsonify({
            "query": query,
            **result.to_dict(),
        })

    @app.route('/test/trending', methods=['GET'])
    def test_trending():
        movies = catalog.get_trending()
        return jsonify({
            "count": len(movies),
            "results": [m.to_dict() for m in movies],
        })

    @app.route('/test/movie/<int:movie_id>', methods=['GET'])
    def test_movie(movie_id: int):
        try:
            movie = catalog.get_movie_details(movie_id)
        except UpstreamError as e:
            if e.status_code != 404:
                raise
            movie = None
        if movie is None:
            return jsonify({
                "error": "not_found",
                "message": f"Movie {movie_id} not found or not a Malayalam movie",
            }), 404
        return jsonify({
            "movie": movie.to_dict(),
            "meta": movie_to_meta(movie, catalog.id_scheme),
        })

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    @app.route('/health', methods=['GET'])
    def health_check():
        """Shallow health check - confirms app is running."""
        return jsonify({
            "status": "healthy",
            "version": ADDON_VERSION,
            "id": ADDON_ID,
        })

    @app.route('/health/ready', methods=['GET'])
    def readiness_check():
        """
        Deep health check.

        Checks:
        - TMDB credentials present
        - TMDB reachable (configuration endpoint)
        """
        checks = {}
        healthy = True

        credentials = catalog.client.credentials
        if credentials.is_configured:
            checks["credentials"] = {"status": "ok", **credentials.describe()}
        else:
            checks["credentials"] = {"status": "error", "message": "no TMDB credentials configured"}
            healthy = False

        if healthy:
            try:
                catalog.client.configuration()
                checks["tmdb"] = {"status": "ok"}
            except UpstreamError as e:
                checks["tmdb"] = {"status": "error", "message": str(e)}
                healthy = False

        checks["catalog"] = {
            "variant": catalog.variant,
            "id_scheme": catalog.id_scheme.value,
            "placeholder_fallback": catalog.placeholder_fallback,
            "refresh_running": refresher.is_running,
        }

        return jsonify({
            "status": "healthy" if healthy else "unhealthy",
            "version": ADDON_VERSION,
            "checks": checks,
            "cache_stats": cache.stats(),
            "metrics": metrics.get_stats(),
        }), 200 if healthy else 503

    @app.route('/metrics', methods=['GET'])
    def metrics_endpoint():
        """Return application metrics."""
        return jsonify(metrics.get_stats())

    if REFRESH_INTERVAL > 0:
        RefreshScheduler(refresher, REFRESH_INTERVAL).start()

    return app


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    configure_logging(level=LOG_LEVEL, structured=STRUCTURED_LOGGING)
    app = create_app()
    logger.info(f"Starting {ADDON_NAME} v{ADDON_VERSION} on port {PORT}")
    logger.info(f"Manifest: http://localhost:{PORT}/manifest.json")
    app.run(host="0.0.0.0", port=PORT, debug=False)
