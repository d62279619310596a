"""
Flask blueprint and registry endpoints.

Implements the read-mostly subset of the Docker Registry HTTP API v2 on top
of a RegistryStore, plus the simulator's bulk push endpoint.

Pagination note: ``n`` is capped at REGISTRY_MAX_PAGE_SIZE (MAX_PAGE_SIZE,
10000 by default). A larger ``n`` yields a page of at most the cap, and the
``Link`` header carries the capped value, so clients that follow ``Link``
keep walking with the page size the server actually used.
"""

import io
import logging
import time
from urllib.parse import quote

from flask import Blueprint, Flask, Response, current_app, jsonify, make_response, request, send_file

from .config import config
from .errors import (
    DatabaseValidationError,
    InvalidRequest,
    PaginationNumberInvalid,
    RegistryError,
    TemplateError,
    Unauthorized,
    Unsupported,
)
from .models import BLOB_CONTENT_TYPE
from .negotiation import select_manifest_format
from .store import RegistryStore
from .validation import compute_sha256, serialize

logger = logging.getLogger(__name__)

API_VERSION_HEADER = "Docker-Distribution-API-Version"
API_VERSION = "registry/2.0"
AUTH_CHALLENGE = 'Basic realm="Docker Registry"'
HEALTH_ENDPOINT = "registry.v2_root"

bp = Blueprint("registry", __name__)


def get_store() -> RegistryStore:
    return current_app.extensions["registry_store"]


# -------------------------------
# Helpers
# -------------------------------


def parse_page_size(value: str | None, max_page_size: int) -> int | None:
    """
    Parse the ``n`` query parameter.

    Raises:
        PaginationNumberInvalid: 400 if present but not a positive integer

    Returns:
        The page size, capped at ``max_page_size``, or None when absent.
    """
    if value is None or value == "":
        return None
    try:
        n = int(value)
    except ValueError:
        raise PaginationNumberInvalid()
    if n <= 0:
        raise PaginationNumberInvalid()
    return min(n, max_page_size)


def build_link_header(path: str, n: int, last: str) -> str:
    return f'<{path}?n={n}&last={quote(last, safe="")}>; rel="next"'


def paginate(items: list[str], n: int | None, last: str | None, path: str) -> tuple[list[str], str | None]:
    """
    Apply cursor pagination to an already sorted list.

    Items up to and including ``last`` are skipped when ``last`` is present in
    the list. If more than ``n`` items remain the page is truncated and a
    ``Link`` header value pointing at the next page is returned.
    """
    if last and last in items:
        items = items[items.index(last) + 1:]

    link = None
    if n is not None and len(items) > n:
        items = items[:n]
        link = build_link_header(path, n, items[-1])
    return items, link


def negotiate(entry):
    selected = select_manifest_format(request.headers.get("Accept"), entry)
    if selected is None:
        logger.warning(
            f"No acceptable representation for {entry.type.value} manifest, "
            f"Accept: {request.headers.get('Accept')}"
        )
        raise Unsupported()
    return selected


# -------------------------------
# Request hooks
# -------------------------------


@bp.before_app_request
def throttle_and_authenticate():
    """Delay and authenticate every request except the version check."""
    if request.endpoint == HEALTH_ENDPOINT:
        return None

    throttle_ms = current_app.config.get("REGISTRY_THROTTLE_MS", 0)
    if throttle_ms > 0:
        time.sleep(throttle_ms / 1000)

    store = get_store()
    if not store.auth_enabled:
        return None

    auth = request.authorization
    if auth is None or auth.type != "basic" or not store.check_credentials(auth.username, auth.password):
        logger.warning(f"Unauthorized request: {request.method} {request.path}")
        raise Unauthorized()
    return None


@bp.after_app_request
def add_api_version_header(resp):
    resp.headers[API_VERSION_HEADER] = API_VERSION
    return resp


@bp.app_errorhandler(RegistryError)
def handle_registry_error(error: RegistryError):
    resp = make_response(jsonify(error.to_dict()), error.status)
    if isinstance(error, Unauthorized):
        resp.headers["WWW-Authenticate"] = AUTH_CHALLENGE
    logger.info(f"{request.method} {request.path} -> {error.status} {error.code}")
    return resp


# -------------------------------
# Registry Endpoints
# -------------------------------


@bp.route("/v2/")
def v2_root():
    """
    API version check endpoint.

    Always answers 200 with an empty JSON object, without authentication,
    so clients can check for Registry v2 support.
    """
    logger.info("Registry v2 API root accessed")
    return jsonify({})


@bp.route("/v2/_catalog")
def get_catalog():
    """
    List repositories, sorted, with ``n``/``last`` cursor pagination.

    Response Body:
        {"repositories": ["alpine", "nginx", ...]}
    """
    n = parse_page_size(request.args.get("n"), current_app.config["REGISTRY_MAX_PAGE_SIZE"])
    repositories, link = paginate(
        get_store().list_repositories(), n, request.args.get("last"), "/v2/_catalog"
    )

    resp = jsonify({"repositories": repositories})
    if link:
        resp.headers["Link"] = link
    logger.info(f"Catalog sent: {len(repositories)} repositories, more={link is not None}")
    return resp


@bp.route("/v2/<name>/tags/list")
def get_tags(name):
    """
    List the tags of one repository, sorted, with cursor pagination.

    Response Body:
        {"name": "<name>", "tags": ["1.0", "latest", ...]}

    Raises:
        404 NAME_UNKNOWN: repository does not exist
        400 PAGINATION_NUMBER_INVALID: bad ``n``
    """
    store = get_store()
    tags = store.list_tags(name)
    n = parse_page_size(request.args.get("n"), current_app.config["REGISTRY_MAX_PAGE_SIZE"])
    tags, link = paginate(tags, n, request.args.get("last"), f"/v2/{name}/tags/list")

    resp = jsonify({"name": name, "tags": tags})
    if link:
        resp.headers["Link"] = link
    logger.info(f"Tags sent: repository='{name}', {len(tags)} tags, more={link is not None}")
    return resp


@bp.route("/v2/<name>/manifests/<reference>", methods=["GET", "HEAD"])
def get_manifest(name, reference):
    """
    Get or check a manifest by tag or digest.

    Methods:
        GET: Returns the manifest JSON, or 304 when If-None-Match matches
        HEAD: Returns only headers (Content-Length, digest, ETag)

    Request Headers:
        Accept: Comma separated media types. Defaults to the Docker v2
            manifest type when absent.
        If-None-Match: ETag from a previous response

    Response Headers:
        Content-Type: Negotiated manifest media type
        Docker-Content-Digest: Digest the manifest is stored under
        ETag: Digest of the exact bytes served (differs from the storage
            digest when the mediaType was rewritten by negotiation)

    Raises:
        404 NAME_UNKNOWN / MANIFEST_UNKNOWN
        406 UNSUPPORTED: no acceptable representation
    """
    logger.info(f"Manifest requested: repository='{name}', reference='{reference}', method={request.method}")

    digest, entry = get_store().resolve_manifest(name, reference)
    manifest, content_type = negotiate(entry)

    manifest_bytes = serialize(manifest)
    served_digest = compute_sha256(manifest_bytes)
    logger.debug(
        f"Manifest digest: {digest}, served digest: {served_digest}, "
        f"size: {len(manifest_bytes)} bytes, format: {content_type}"
    )

    # For HEAD requests, return empty body with headers
    if request.method == "HEAD":
        resp = Response(status=200)
        resp.headers["Content-Type"] = content_type
        resp.headers["Content-Length"] = len(manifest_bytes)
        resp.headers["Docker-Content-Digest"] = digest
        resp.set_etag(served_digest)
        logger.info(f"Manifest HEAD: repository='{name}', reference='{reference}', digest={digest}")
        return resp

    if request.if_none_match.contains(served_digest):
        resp = Response(status=304)
        resp.headers["Docker-Content-Digest"] = digest
        resp.set_etag(served_digest)
        logger.info(f"Manifest not modified: repository='{name}', reference='{reference}'")
        return resp

    resp = make_response(manifest_bytes)
    resp.headers["Content-Type"] = content_type
    resp.headers["Docker-Content-Digest"] = digest
    resp.set_etag(served_digest)

    logger.info(
        f"Manifest sent: repository='{name}', reference='{reference}', digest={digest}, format={content_type}"
    )
    return resp


@bp.route("/v2/<name>/blobs/<digest>", methods=["GET", "HEAD"])
def get_blob(name, digest):
    """
    Get or check a config blob by digest.

    Layer blobs are simulated as metadata only and cannot be fetched.

    Raises:
        404 NAME_UNKNOWN: repository does not exist
        400 DIGEST_INVALID: digest is not sha256-prefixed
        404 BLOB_UNKNOWN: no such config blob
    """
    logger.info(f"Blob requested: repository='{name}', digest='{digest}', method={request.method}")

    blob_bytes = serialize(get_store().get_blob(name, digest))
    blob_size = len(blob_bytes)

    # For HEAD requests, return headers only
    if request.method == "HEAD":
        resp = Response(status=200)
        resp.headers["Content-Type"] = BLOB_CONTENT_TYPE
        resp.headers["Content-Length"] = blob_size
        resp.headers["Docker-Content-Digest"] = digest
        logger.info(f"Blob HEAD: repository='{name}', digest='{digest}'")
        return resp

    resp = send_file(io.BytesIO(blob_bytes), mimetype=BLOB_CONTENT_TYPE)
    resp.headers["Content-Length"] = blob_size
    resp.headers["Docker-Content-Digest"] = digest
    logger.info(f"Blob sent: repository='{name}', digest='{digest}', size={blob_size}")
    return resp


@bp.route("/v2/push", methods=["POST"])
def push():
    """
    Bulk-add repositories from a template body.

    The body has the template shape ({"repositories": [...]}); every tag is
    generated into the live graph, which is then persisted.

    Raises:
        400 INVALID_REQUEST: malformed body or generation failure
    """
    payload = request.get_json(silent=True)
    if payload is None:
        raise InvalidRequest("request body must be a JSON template")

    try:
        get_store().push(payload)
    except DatabaseValidationError as e:
        raise InvalidRequest(e.report()) from e
    except (TemplateError, OSError) as e:
        raise InvalidRequest(str(e)) from e

    return jsonify({"message": "Successfully added repositories to registry"}), 201


@bp.route("/v2/<name>/manifests/<reference>", methods=["DELETE"])
def delete_manifest(name, reference):
    """
    Delete a manifest by tag or digest.

    Removes the manifest, every tag of the repository pointing at it, and
    every config blob no surviving manifest references. The Accept header
    must still negotiate, as for GET.

    Raises:
        404 NAME_UNKNOWN / MANIFEST_UNKNOWN
        406 UNSUPPORTED
        409 DENIED: the manifest is still part of a multi-arch manifest
    """
    store = get_store()
    digest, entry = store.resolve_manifest(name, reference)
    negotiate(entry)

    removed_blobs = store.delete_manifest(name, digest)
    logger.info(
        f"Manifest deleted: repository='{name}', reference='{reference}', digest={digest}, "
        f"blobs removed={len(removed_blobs)}"
    )
    return Response(status=202)


# -------------------------------
# Application factory
# -------------------------------


def create_app(store: RegistryStore, throttle_ms: int | None = None, max_page_size: int | None = None) -> Flask:
    """
    Create the Flask application serving ``store``.

    Args:
        store: Registry state shared by all requests
        throttle_ms: Per-request delay; defaults to config.THROTTLE_MS
        max_page_size: Upper bound for ``n``; defaults to config.MAX_PAGE_SIZE
    """
    app = Flask(__name__)
    app.config["REGISTRY_THROTTLE_MS"] = config.THROTTLE_MS if throttle_ms is None else throttle_ms
    app.config["REGISTRY_MAX_PAGE_SIZE"] = config.MAX_PAGE_SIZE if max_page_size is None else max_page_size
    app.extensions["registry_store"] = store
    app.register_blueprint(bp)
    return app
