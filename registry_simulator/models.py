"""
Data model for the simulated registry.

The persisted document is plain JSON; these classes wrap it so the rest of
the package can switch on manifest kind instead of probing dictionary keys.
Manifest bodies and config blobs keep their exact dictionary form because
their digests are computed over that form.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum

# Manifest media types
OCI_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_IMAGE_INDEX = "application/vnd.oci.image.index.v1+json"
DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"

# Config and layer media types
OCI_IMAGE_CONFIG = "application/vnd.oci.image.config.v1+json"
OCI_IMAGE_LAYER = "application/vnd.oci.image.layer.v1.tar+gzip"
DOCKER_CONTAINER_CONFIG = "application/vnd.docker.container.image.v1+json"
DOCKER_IMAGE_LAYER = "application/vnd.docker.image.rootfs.diff.tar.gzip"

BLOB_CONTENT_TYPE = "application/octet-stream"
DEFAULT_ACCEPT = DOCKER_MANIFEST_V2

SINGLE_ARCH_MEDIA_TYPES = (OCI_IMAGE_MANIFEST, DOCKER_MANIFEST_V2)
MULTI_ARCH_MEDIA_TYPES = (OCI_IMAGE_INDEX, DOCKER_MANIFEST_LIST)

DEFAULT_ARCHITECTURES = ["amd64", "arm64"]
DEFAULT_OS = "linux"


class ManifestType(str, Enum):
    """The four kinds of stored manifest."""

    OCI = "oci"
    DOCKER = "docker"
    OCI_INDEX = "oci-index"
    DOCKER_LIST = "docker-list"

    @property
    def media_type(self) -> str:
        return _MEDIA_TYPES[self]

    @property
    def is_multiarch(self) -> bool:
        return self in (ManifestType.OCI_INDEX, ManifestType.DOCKER_LIST)

    @property
    def interchangeable_media_types(self) -> tuple[str, ...]:
        """Media types this kind may be served as when the exact type is not accepted."""
        return MULTI_ARCH_MEDIA_TYPES if self.is_multiarch else SINGLE_ARCH_MEDIA_TYPES

    @property
    def index_type(self) -> "ManifestType":
        """Multi-arch kind that groups manifests of this single-arch kind."""
        if self.is_multiarch:
            return self
        return ManifestType.OCI_INDEX if self is ManifestType.OCI else ManifestType.DOCKER_LIST


_MEDIA_TYPES = {
    ManifestType.OCI: OCI_IMAGE_MANIFEST,
    ManifestType.DOCKER: DOCKER_MANIFEST_V2,
    ManifestType.OCI_INDEX: OCI_IMAGE_INDEX,
    ManifestType.DOCKER_LIST: DOCKER_MANIFEST_LIST,
}


@dataclass
class ManifestEntry:
    """A stored manifest: its kind plus the exact body that was digested."""

    type: ManifestType
    data: dict

    @classmethod
    def from_dict(cls, raw: dict) -> "ManifestEntry":
        return cls(type=ManifestType(raw["type"]), data=raw["data"])

    def to_dict(self) -> dict:
        return {"type": self.type.value, "data": self.data}

    @property
    def config_digest(self) -> str | None:
        if self.type.is_multiarch:
            return None
        return (self.data.get("config") or {}).get("digest")

    @property
    def platform_digests(self) -> list[str]:
        if not self.type.is_multiarch:
            return []
        return [entry["digest"] for entry in self.data.get("manifests") or []]


@dataclass
class ConfigBlob:
    """OCI image configuration as stored under ``blobs``."""

    architecture: str
    os: str
    created: str
    config: dict
    rootfs: dict
    history: list[dict]

    def to_dict(self) -> dict:
        # Field order is part of the serialized form and therefore the digest.
        return {
            "architecture": self.architecture,
            "os": self.os,
            "created": self.created,
            "config": self.config,
            "rootfs": self.rootfs,
            "history": self.history,
        }


@dataclass
class RepositorySpec:
    """One repository entry of a template."""

    name: str
    tags: list[str]
    format: ManifestType = ManifestType.OCI
    multiarch: bool = False
    architectures: list[str] = field(default_factory=lambda: list(DEFAULT_ARCHITECTURES))
    os: str = DEFAULT_OS

    @classmethod
    def from_dict(cls, raw: dict) -> "RepositorySpec":
        return cls(
            name=raw["name"],
            tags=list(raw["tags"]),
            format=ManifestType(raw.get("format") or "oci"),
            multiarch=bool(raw.get("multiarch", False)),
            architectures=list(raw.get("architectures") or DEFAULT_ARCHITECTURES),
            os=raw.get("os") or DEFAULT_OS,
        )

    @property
    def platform_architectures(self) -> list[str]:
        if self.multiarch:
            return list(self.architectures)
        return self.architectures[:1]


@dataclass
class Template:
    """Desired repositories, tags and platforms for the generator."""

    repositories: list[RepositorySpec]
    auth: list[dict] | None = None

    @classmethod
    def from_dict(cls, raw: dict) -> "Template":
        auth = raw.get("auth")
        return cls(
            repositories=[RepositorySpec.from_dict(repo) for repo in raw["repositories"]],
            auth=[dict(user) for user in auth] if auth is not None else None,
        )


@dataclass
class Database:
    """The whole registry graph, one persisted document."""

    auth: list[dict] = field(default_factory=list)
    repositories: list[dict] = field(default_factory=list)
    tags: dict[str, list[dict]] = field(default_factory=dict)
    manifests: dict[str, ManifestEntry] = field(default_factory=dict)
    blobs: dict[str, dict] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict) -> "Database":
        return cls(
            auth=list(raw.get("auth", [])),
            repositories=list(raw.get("repositories", [])),
            tags={name: list(entries) for name, entries in raw.get("tags", {}).items()},
            manifests={
                digest: ManifestEntry.from_dict(entry)
                for digest, entry in raw.get("manifests", {}).items()
            },
            blobs=dict(raw.get("blobs", {})),
        )

    def to_dict(self) -> dict:
        return {
            "auth": self.auth,
            "repositories": self.repositories,
            "tags": self.tags,
            "manifests": {digest: entry.to_dict() for digest, entry in self.manifests.items()},
            "blobs": self.blobs,
        }

    def copy(self) -> "Database":
        return copy.deepcopy(self)

    def repository_names(self) -> list[str]:
        return [repo["name"] for repo in self.repositories]

    def has_repository(self, name: str) -> bool:
        return any(repo["name"] == name for repo in self.repositories)

    def add_repository(self, name: str) -> None:
        if not self.has_repository(name):
            self.repositories.append({"name": name})
        self.tags.setdefault(name, [])

    def find_tag(self, name: str, tag: str) -> dict | None:
        for entry in self.tags.get(name, []):
            if entry["tag"] == tag:
                return entry
        return None

    def set_tag(self, name: str, tag: str, digest: str) -> None:
        """Point ``tag`` at ``digest``, keeping one entry per tag."""
        entry = self.find_tag(name, tag)
        if entry is None:
            self.tags.setdefault(name, []).append({"tag": tag, "digest": digest})
        else:
            entry["digest"] = digest

    def referenced_blob_digests(self) -> set[str]:
        return {
            entry.config_digest
            for entry in self.manifests.values()
            if entry.config_digest
        }

    def stats(self) -> dict:
        return {
            "repositories": len(self.repositories),
            "tags": sum(len(entries) for entries in self.tags.values()),
            "manifests": len(self.manifests),
            "blobs": len(self.blobs),
        }
