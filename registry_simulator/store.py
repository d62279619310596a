"""
Registry store: the single in-memory Database shared by all request handlers.

All mutations go through RegistryStore. Each one is applied to a copy of the
current Database, validated, persisted and then swapped in while holding the
store lock, so concurrent pushes and deletes are serialized and a failed
mutation leaves both memory and disk untouched. Readers work on the snapshot
returned by ``snapshot()`` and never wait for a write.
"""

import copy
import json
import logging
import os
import tempfile
import threading

from . import schemas
from .errors import BlobUnknown, Denied, ManifestUnknown, NameUnknown
from .generator import Generator
from .models import Database, ManifestEntry
from .templates import parse_template
from .validation import check_database, is_digest, validate_digest

logger = logging.getLogger(__name__)


def read_document(path: str) -> dict:
    """Read a database document, or the empty default when ``path`` does not exist."""
    if not os.path.exists(path):
        logger.info(f"Database file {path} not found, starting from an empty registry")
        return copy.deepcopy(schemas.EmptyDatabase)
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def write_document(document: dict, path: str) -> None:
    """Replace ``path`` with ``document`` atomically (temp file + rename)."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".db-", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


class RegistryStore:
    """
    Owns the live Database and its persisted document.

    Args:
        database: Initial graph; must already be valid.
        path: Document to rewrite after every mutation, or None to keep the
            store purely in memory.
        generator: Generator used by push().
    """

    def __init__(self, database: Database, path: str | None = None, generator: Generator | None = None):
        self._database = database
        self.path = path
        self.generator = generator or Generator()
        self._lock = threading.RLock()

    @classmethod
    def load(cls, path: str, generator: Generator | None = None) -> "RegistryStore":
        """
        Load and validate a persisted document.

        Raises:
            DatabaseValidationError: the document is structurally or
                referentially invalid
            json.JSONDecodeError: the file is not JSON
        """
        missing = not os.path.exists(path)
        document = read_document(path)
        check_database(document)
        database = Database.from_dict(document)
        stats = database.stats()
        logger.info(
            f"Loaded database from {path}: {stats['repositories']} repositories, "
            f"{stats['tags']} tags, {stats['manifests']} manifests, {stats['blobs']} blobs"
        )
        store = cls(database, path=path, generator=generator)
        if missing:
            store.save()
        return store

    def snapshot(self) -> Database:
        """Current Database; treat as read-only."""
        return self._database

    def save(self, database: Database | None = None) -> None:
        if self.path is None:
            return
        write_document((database or self._database).to_dict(), self.path)
        logger.debug(f"Database written to {self.path}")

    def _commit(self, candidate: Database) -> None:
        check_database(candidate)
        self.save(candidate)
        self._database = candidate

    # -------------------------------
    # Queries
    # -------------------------------

    @property
    def auth_enabled(self) -> bool:
        return bool(self._database.auth)

    def check_credentials(self, username: str, password: str) -> bool:
        return any(
            user["username"] == username and user["password"] == password
            for user in self._database.auth
        )

    def list_repositories(self) -> list[str]:
        return sorted(self._database.repository_names())

    def list_tags(self, name: str) -> list[str]:
        db = self._database
        if not db.has_repository(name):
            raise NameUnknown()
        return sorted(entry["tag"] for entry in db.tags.get(name, []))

    def resolve_manifest(self, name: str, reference: str) -> tuple[str, ManifestEntry]:
        """
        Resolve a tag or digest reference within a repository.

        Raises:
            NameUnknown: repository does not exist
            ManifestUnknown: unknown tag or digest
        """
        db = self._database
        if not db.has_repository(name):
            raise NameUnknown()

        digest = reference
        if not is_digest(reference):
            tag_entry = db.find_tag(name, reference)
            if tag_entry is None:
                raise ManifestUnknown()
            digest = tag_entry["digest"]

        entry = db.manifests.get(digest)
        if entry is None:
            raise ManifestUnknown()
        return digest, entry

    def get_blob(self, name: str, digest: str) -> dict:
        """
        Look up a config blob.

        Raises:
            NameUnknown: repository does not exist
            DigestInvalid: ``digest`` is not sha256-prefixed
            BlobUnknown: no such blob
        """
        db = self._database
        if not db.has_repository(name):
            raise NameUnknown()
        validate_digest(digest)
        blob = db.blobs.get(digest)
        if blob is None:
            raise BlobUnknown()
        return blob

    # -------------------------------
    # Mutations
    # -------------------------------

    def push(self, payload: dict) -> Database:
        """
        Generate the template ``payload`` into the live graph and persist it.

        Additive; the credential list is never changed by a push.

        Raises:
            TemplateError: malformed payload
            DatabaseValidationError: the resulting graph is inconsistent
        """
        template = parse_template(payload)
        with self._lock:
            candidate = self._database.copy()
            self.generator.populate(candidate, template)
            self._commit(candidate)
        logger.info(f"Pushed {len(template.repositories)} repositories, {candidate.stats()}")
        return candidate

    def delete_manifest(self, name: str, digest: str) -> list[str]:
        """
        Delete a manifest, its tags in ``name`` and every config blob left unreferenced.

        Returns:
            Digests of the blobs that were garbage-collected.

        Raises:
            NameUnknown / ManifestUnknown: nothing to delete
            Denied: the manifest is still listed by another multi-arch
                manifest or tagged in another repository
        """
        with self._lock:
            candidate = self._database.copy()
            if not candidate.has_repository(name):
                raise NameUnknown()
            if digest not in candidate.manifests:
                raise ManifestUnknown()

            del candidate.manifests[digest]

            parents = [
                parent for parent, entry in candidate.manifests.items()
                if digest in entry.platform_digests
            ]
            if parents:
                logger.warning(f"Refusing to delete {digest}: referenced by {', '.join(parents)}")
                raise Denied(f"manifest is referenced by manifest list {parents[0]}")

            shared = [
                repo for repo, entries in candidate.tags.items()
                if repo != name and any(t["digest"] == digest for t in entries)
            ]
            if shared:
                logger.warning(f"Refusing to delete {digest}: tagged in {', '.join(shared)}")
                raise Denied(f"manifest is tagged in repository {shared[0]}")

            if name in candidate.tags:
                candidate.tags[name] = [t for t in candidate.tags[name] if t["digest"] != digest]

            referenced = candidate.referenced_blob_digests()
            orphaned = [blob for blob in candidate.blobs if blob not in referenced]
            for blob in orphaned:
                del candidate.blobs[blob]

            self._commit(candidate)

        logger.info(f"Deleted manifest {digest} from '{name}', removed {len(orphaned)} orphaned blob(s)")
        return orphaned
