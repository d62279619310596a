"""
Digest computation and validation module for the registry simulator.

Provides content addressing for stored artifacts, request-level digest checks,
and the structural and referential validation of database documents.
"""

import hashlib
import json
import logging

from jsonschema import Draft7Validator

from . import schemas
from .errors import DatabaseValidationError, DigestInvalid
from .models import Database, ManifestType

logger = logging.getLogger(__name__)

DIGEST_PREFIX = "sha256:"

_database_validator = Draft7Validator(schemas.database)


def compute_sha256(data: bytes) -> str:
    """
    Compute SHA256 digest in OCI/Docker format.

    Args:
        data: Bytes to hash

    Returns:
        String in format "sha256:<64 hex chars>"

    Example:
        >>> compute_sha256(b"hello")
        'sha256:2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'
    """
    h = hashlib.sha256()
    h.update(data)
    return "sha256:" + h.hexdigest()


def serialize(obj) -> bytes:
    """
    Serialize an artifact to the exact bytes its digest is computed over.

    Compact separators, insertion-ordered keys and unescaped non-ASCII text,
    so a document written and re-read keeps the same digests.
    """
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def content_digest(obj) -> str:
    """Digest of an artifact's serialized form."""
    return compute_sha256(serialize(obj))


def is_digest(reference: str) -> bool:
    """True when a manifest reference is a digest rather than a tag."""
    return reference.startswith(DIGEST_PREFIX)


def validate_digest(digest: str) -> None:
    """
    Validate a digest received in a request path.

    Raises:
        DigestInvalid: 400 if the digest is not sha256-prefixed
    """
    if not is_digest(digest):
        logger.warning(f"Invalid digest format: {digest}")
        raise DigestInvalid()

    logger.debug(f"Digest validated: {digest}")


def _as_document(data) -> dict:
    if isinstance(data, Database):
        return data.to_dict()
    return data


def _format_path(path) -> str:
    return ".".join(str(part) for part in path) or "root"


def validate_database(data) -> None:
    """
    Structural validation of a database document.

    Checks every entity against the JSON-Schema in schemas.py: field
    presence and primitive types, sha256-prefixed digests and keys, manifest
    kinds, and repository names.

    Args:
        data: Database instance or parsed JSON document

    Raises:
        DatabaseValidationError: with one "<path>: <message>" entry per violation
    """
    document = _as_document(data)
    errors = [
        f"{_format_path(error.absolute_path)}: {error.message}"
        for error in sorted(
            _database_validator.iter_errors(document),
            key=lambda e: [str(part) for part in e.absolute_path],
        )
    ]

    if errors:
        logger.warning(f"Database validation failed with {len(errors)} error(s)")
        raise DatabaseValidationError("Database validation failed", errors)

    logger.debug("Database validation passed")


def semantic_errors(data) -> list[str]:
    """
    Collect referential integrity violations without raising.

    Every tag must point at a stored manifest, every tagged repository must
    be declared, single-arch manifests must reference a stored config blob
    and multi-arch manifests must reference stored platform manifests.
    Repository names and tags within a repository must be unique.
    """
    document = _as_document(data)
    errors = []

    repositories = document.get("repositories", [])
    tags = document.get("tags", {})
    manifests = document.get("manifests", {})
    blobs = document.get("blobs", {})

    seen = set()
    for repo in repositories:
        name = repo.get("name")
        if name in seen:
            errors.append(f'Repository "{name}" is defined more than once')
        seen.add(name)

    for repo_name, entries in tags.items():
        if not isinstance(entries, list):
            continue
        seen_tags = set()
        for entry in entries:
            if entry["digest"] not in manifests:
                errors.append(
                    f'Repository "{repo_name}" tag "{entry["tag"]}" references '
                    f'non-existent manifest {entry["digest"]}'
                )
            if entry["tag"] in seen_tags:
                errors.append(
                    f'Repository "{repo_name}" tag "{entry["tag"]}" is defined more than once'
                )
            seen_tags.add(entry["tag"])

    for repo_name in tags:
        if repo_name not in seen:
            errors.append(
                f'Repository "{repo_name}" has tags but is not defined in repositories array'
            )

    for digest, manifest in manifests.items():
        config_digest = (manifest["data"].get("config") or {}).get("digest")
        if config_digest and config_digest not in blobs:
            errors.append(
                f"Manifest {digest} references non-existent config blob {config_digest}"
            )

    for digest, manifest in manifests.items():
        if not ManifestType(manifest["type"]).is_multiarch:
            continue
        for platform_manifest in manifest["data"].get("manifests") or []:
            if platform_manifest["digest"] not in manifests:
                errors.append(
                    f"Multi-arch manifest {digest} references non-existent "
                    f"platform manifest {platform_manifest['digest']}"
                )

    return errors


def validate_semantics(data) -> None:
    """
    Referential validation of a database document.

    Assumes the document already passed validate_database().

    Raises:
        DatabaseValidationError: listing every violation found
    """
    errors = semantic_errors(data)
    if errors:
        logger.warning(f"Semantic validation failed with {len(errors)} error(s)")
        raise DatabaseValidationError("Database semantic validation failed", errors)

    logger.debug("Semantic validation passed")


def check_database(data) -> None:
    """Run structural then referential validation."""
    validate_database(data)
    validate_semantics(data)


def find_digest_mismatches(data) -> list[str]:
    """
    Recompute the digest of every stored manifest body and config blob.

    Returns:
        One message per key that does not address its own content.
    """
    document = _as_document(data)
    mismatches = []

    for digest, manifest in document.get("manifests", {}).items():
        actual = content_digest(manifest["data"])
        if actual != digest:
            mismatches.append(f"Manifest {digest} content hashes to {actual}")

    for digest, blob in document.get("blobs", {}).items():
        actual = content_digest(blob)
        if actual != digest:
            mismatches.append(f"Blob {digest} content hashes to {actual}")

    return mismatches
