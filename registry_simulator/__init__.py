"""
Docker Registry HTTP API v2 simulator.

Serves a synthetic, content-addressed registry graph from a single JSON
document so registry clients can be tested without a real registry.

Features:
    - Catalog and tag listing with n/last cursor pagination
    - Manifest retrieval by tag or digest with Accept negotiation
    - ETag / If-None-Match conditional requests
    - Single-arch (OCI, Docker v2) and multi-arch (OCI index, Docker list) images
    - Config blob retrieval (layers are simulated as metadata only)
    - Bulk push from a template and manifest delete with blob garbage collection
    - Optional Basic authentication and per-request throttling
    - Synthetic data generation from YAML or JSON templates

Data Flow:
    Template -> Generator -> database document -> RegistryStore -> Flask app
"""

__version__ = "1.0.0"

# Import key components for convenience
from .config import Config
from .errors import DatabaseValidationError, RegistryError, TemplateError
from .generator import Generator
from .models import ConfigBlob, Database, ManifestEntry, ManifestType, RepositorySpec, Template
from .negotiation import select_manifest_format
from .routes import create_app
from .store import RegistryStore
from .templates import generate_template, load_template_file, parse_template
from .validation import (
    check_database,
    compute_sha256,
    content_digest,
    find_digest_mismatches,
    serialize,
    validate_database,
    validate_semantics,
)

__all__ = [
    "Config",
    "DatabaseValidationError",
    "RegistryError",
    "TemplateError",
    "Generator",
    "ConfigBlob",
    "Database",
    "ManifestEntry",
    "ManifestType",
    "RepositorySpec",
    "Template",
    "select_manifest_format",
    "create_app",
    "RegistryStore",
    "generate_template",
    "load_template_file",
    "parse_template",
    "check_database",
    "compute_sha256",
    "content_digest",
    "find_digest_mismatches",
    "serialize",
    "validate_database",
    "validate_semantics",
]
