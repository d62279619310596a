"""
Manifest content negotiation.

Selects the representation of a stored manifest for a request's Accept
header. An exact media type match serves the stored body verbatim. Failing
that, OCI and Docker forms of the same kind (single-arch manifest, or
index/list) are treated as interchangeable and the body is served with its
mediaType rewritten. Real registries would address those as separate
digests; the simulator relaxes this so clients of either flavour can pull.
"""

import logging

from .models import DEFAULT_ACCEPT, ManifestEntry

logger = logging.getLogger(__name__)


def parse_accept(accept: str | None) -> set[str]:
    """
    Split an Accept header into bare media types.

    Parameters such as ``;q=0.5`` are dropped. A missing or empty header
    counts as the Docker v2 manifest type.
    """
    if not accept or not accept.strip():
        accept = DEFAULT_ACCEPT
    media_types = set()
    for token in accept.split(","):
        media_type = token.split(";", 1)[0].strip()
        if media_type:
            media_types.add(media_type)
    return media_types


def select_manifest_format(accept: str | None, entry: ManifestEntry) -> tuple[dict, str] | None:
    """
    Pick the body and content type to serve for ``entry``.

    Returns:
        (manifest_body, content_type), or None when nothing acceptable exists.
    """
    accepted = parse_accept(accept)
    content_type = entry.type.media_type

    if content_type in accepted:
        return entry.data, content_type

    for media_type in entry.type.interchangeable_media_types:
        if media_type in accepted:
            logger.debug(f"Serving {entry.type.value} manifest as {media_type}")
            return {**entry.data, "mediaType": media_type}, media_type

    return None
