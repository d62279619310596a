"""
Synthetic data generator for the registry simulator.

Builds a self-consistent registry graph from a template: config blobs,
single-arch manifests and, for multi-arch repositories, an index or manifest
list per tag. Layer blobs are never materialized, only their digest and size.

Randomness comes from an injectable random.Random so tests can pin digests.
Descriptive text, versions and dates come from Faker, seeded from that same
source. The default source is unseeded and two runs over the same template produce
different (but individually consistent) graphs.
"""

import logging
import random
import uuid
from datetime import datetime, timedelta, timezone

from faker import Faker

from .models import (
    DOCKER_CONTAINER_CONFIG,
    DOCKER_IMAGE_LAYER,
    OCI_IMAGE_CONFIG,
    OCI_IMAGE_LAYER,
    ConfigBlob,
    Database,
    ManifestEntry,
    ManifestType,
    RepositorySpec,
    Template,
)
from .validation import check_database, compute_sha256, serialize

logger = logging.getLogger(__name__)

MIN_LAYERS = 1
MAX_LAYERS = 5
MIN_LAYER_SIZE = 1_000_000
MAX_LAYER_SIZE = 100_000_000
HISTORY_DAYS = 365
EMPTY_LAYER_PROBABILITY = 0.3

BUILD_COMMENT = "buildkit.dockerfile.v0"
BUILD_COMMANDS = [
    "RUN /bin/sh -c apt-get update && apt-get install -y --no-install-recommends",
    "COPY . /app",
    "RUN /bin/sh -c mkdir -p /app",
    "ENV NODE_VERSION=20.0.0",
    "WORKDIR /app",
]
LICENSES = ["Apache-2.0", "MIT", "BSD-3-Clause", "GPL-3.0", "ISC"]
DEFAULT_PATH = "PATH=/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"

# Curated runtime settings for well-known images, merged over the defaults.
KNOWN_IMAGES = {
    "postgres": {
        "port": "5432",
        "env": ["POSTGRES_VERSION=16", "PGDATA=/var/lib/postgresql/data"],
        "volume": "/var/lib/postgresql/data",
        "entrypoint": ["docker-entrypoint.sh"],
        "cmd": ["postgres"],
    },
    "redis": {
        "port": "6379",
        "env": ["REDIS_VERSION=7.2"],
        "volume": "/data",
        "cmd": ["redis-server"],
    },
    "nginx": {
        "port": "80",
        "env": ["NGINX_VERSION=1.25.3"],
        "cmd": ["nginx", "-g", "daemon off;"],
        "stop_signal": "SIGQUIT",
    },
}
KNOWN_IMAGE_USER = "999"


def isoformat(moment: datetime) -> str:
    """UTC timestamp with millisecond precision, e.g. 2024-05-01T09:30:00.000Z."""
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


class Generator:
    """
    Populate a Database from a Template.

    Args:
        rng: Random source; a fresh unseeded random.Random() when omitted.
        now: Reference "current time" for creation timestamps; defaults to
            the wall clock at each call.
    """

    def __init__(self, rng: random.Random | None = None, now: datetime | None = None):
        self.rng = rng or random.Random()
        self.now = now
        # Descriptive text and dates come from Faker, seeded off rng.
        self.fake = Faker()
        self.fake.seed_instance(self.rng.getrandbits(64))

    # -------------------------------
    # Random primitives
    # -------------------------------

    def _uuid(self) -> uuid.UUID:
        return uuid.UUID(int=self.rng.getrandbits(128), version=4)

    def _reference_time(self) -> datetime:
        return self.now or datetime.now(timezone.utc)

    def _recent_date(self, before: datetime) -> datetime:
        return self.fake.date_time_between(
            start_date=before - timedelta(days=HISTORY_DAYS), end_date=before, tzinfo=timezone.utc
        )

    def _semver(self) -> str:
        return f"{self.fake.random_digit()}.{self.fake.random_int(0, 20)}.{self.fake.random_int(0, 30)}"

    # -------------------------------
    # Artifact builders
    # -------------------------------

    def generate_layer_blob(self) -> dict:
        """Simulated layer: digest over a unique token, never any real bytes."""
        size = self.rng.randint(MIN_LAYER_SIZE, MAX_LAYER_SIZE)
        token = f"layer-{self._uuid()}-{size}"
        return {"digest": compute_sha256(token.encode("utf-8")), "size": size}

    def generate_history(self, os_name: str, layer_digests: list[str], created: datetime) -> list[dict]:
        history = []
        for index, _ in enumerate(layer_digests):
            layer_date = isoformat(self._recent_date(created))
            if index == 0:
                history.append({
                    "created": layer_date,
                    "created_by": f"# {os_name} base layer",
                    "comment": BUILD_COMMENT,
                })
                continue
            history.append({
                "created": layer_date,
                "created_by": BUILD_COMMANDS[index % len(BUILD_COMMANDS)],
                "comment": BUILD_COMMENT,
                "empty_layer": self.rng.random() < EMPTY_LAYER_PROBABILITY,
            })
        return history

    def generate_config_blob(self, arch: str, os_name: str, layer_digests: list[str], repo_name: str) -> ConfigBlob:
        created = self._recent_date(self._reference_time())
        now = isoformat(created)
        version = self._semver()

        image_config = {
            "Env": [DEFAULT_PATH, f"APP_VERSION={version}", f"APP_NAME={repo_name}"],
            "Cmd": ["/bin/sh", "-c", repo_name],
            "WorkingDir": "/app",
            "Labels": {
                "org.opencontainers.image.created": now,
                "org.opencontainers.image.title": repo_name,
                "org.opencontainers.image.description": self.fake.sentence(),
                "org.opencontainers.image.source": f"https://github.com/{self.fake.user_name()}/{repo_name}",
                "org.opencontainers.image.version": version,
                "org.opencontainers.image.licenses": self.rng.choice(LICENSES),
            },
            "StopSignal": "SIGTERM",
        }

        known = KNOWN_IMAGES.get(repo_name)
        if known:
            image_config["User"] = KNOWN_IMAGE_USER
            image_config["ExposedPorts"] = {f"{known['port']}/tcp": {}}
            image_config["Env"] = image_config["Env"] + known["env"]
            if "volume" in known:
                image_config["Volumes"] = {known["volume"]: {}}
            if "entrypoint" in known:
                image_config["Entrypoint"] = list(known["entrypoint"])
            image_config["Cmd"] = list(known["cmd"])
            if "stop_signal" in known:
                image_config["StopSignal"] = known["stop_signal"]

        return ConfigBlob(
            architecture=arch,
            os=os_name,
            created=now,
            config=image_config,
            rootfs={"type": "layers", "diff_ids": list(layer_digests)},
            history=self.generate_history(os_name, layer_digests, created),
        )

    @staticmethod
    def generate_manifest(image_format: ManifestType, config_digest: str, config_size: int, layers: list[dict]) -> dict:
        """Single-arch manifest body in OCI or Docker v2 form."""
        if image_format is ManifestType.OCI:
            config_type, layer_type = OCI_IMAGE_CONFIG, OCI_IMAGE_LAYER
        else:
            config_type, layer_type = DOCKER_CONTAINER_CONFIG, DOCKER_IMAGE_LAYER

        return {
            "schemaVersion": 2,
            "mediaType": image_format.media_type,
            "config": {
                "mediaType": config_type,
                "digest": config_digest,
                "size": config_size,
            },
            "layers": [
                {
                    "mediaType": layer_type,
                    "digest": layer["digest"],
                    "size": layer["size"],
                }
                for layer in layers
            ],
        }

    @staticmethod
    def generate_manifest_index(image_format: ManifestType, platform_manifests: list[dict]) -> dict:
        """OCI image index or Docker manifest list over per-platform manifests."""
        return {
            "schemaVersion": 2,
            "mediaType": image_format.index_type.media_type,
            "manifests": [
                {
                    "mediaType": image_format.media_type,
                    "digest": pm["digest"],
                    "size": pm["size"],
                    "platform": {
                        "architecture": pm["architecture"],
                        "os": pm["os"],
                    },
                }
                for pm in platform_manifests
            ],
        }

    # -------------------------------
    # Graph population
    # -------------------------------

    def build_platform_image(self, db: Database, repo: RepositorySpec, arch: str) -> dict:
        """Store config blob and manifest for one platform; return its descriptor."""
        layers = [self.generate_layer_blob() for _ in range(self.rng.randint(MIN_LAYERS, MAX_LAYERS))]
        layer_digests = [layer["digest"] for layer in layers]

        config_blob = self.generate_config_blob(arch, repo.os, layer_digests, repo.name).to_dict()
        config_bytes = serialize(config_blob)
        config_digest = compute_sha256(config_bytes)
        db.blobs[config_digest] = config_blob

        manifest = self.generate_manifest(repo.format, config_digest, len(config_bytes), layers)
        manifest_bytes = serialize(manifest)
        manifest_digest = compute_sha256(manifest_bytes)
        db.manifests[manifest_digest] = ManifestEntry(type=repo.format, data=manifest)

        logger.debug(
            f"Generated {repo.name} {arch}/{repo.os}: manifest={manifest_digest}, "
            f"config={config_digest}, layers={len(layers)}"
        )
        return {
            "digest": manifest_digest,
            "size": len(manifest_bytes),
            "architecture": arch,
            "os": repo.os,
        }

    def build_tag(self, db: Database, repo: RepositorySpec, tag: str) -> str:
        """Generate the manifest graph for one tag and point the tag at it."""
        platform_manifests = [
            self.build_platform_image(db, repo, arch) for arch in repo.platform_architectures
        ]

        if repo.multiarch:
            index = self.generate_manifest_index(repo.format, platform_manifests)
            digest = compute_sha256(serialize(index))
            db.manifests[digest] = ManifestEntry(type=repo.format.index_type, data=index)
        else:
            digest = platform_manifests[0]["digest"]

        db.set_tag(repo.name, tag, digest)
        return digest

    def populate(self, db: Database, template: Template) -> Database:
        """
        Add the template's repositories to ``db`` in place.

        Additive: existing repositories, tags, manifests and blobs are kept. A
        tag that already exists is moved to the newly generated manifest.
        Does not validate; callers run check_database() on the result.
        """
        for repo in template.repositories:
            db.add_repository(repo.name)
            for tag in repo.tags:
                self.build_tag(db, repo, tag)
            logger.info(
                f"Generated repository '{repo.name}': {len(repo.tags)} tag(s), "
                f"format={repo.format.value}, multiarch={repo.multiarch}"
            )
        return db

    def generate(self, template: Template) -> Database:
        """
        Build a new Database from a template and validate it.

        Raises:
            DatabaseValidationError: if the generated graph is inconsistent
        """
        db = Database(auth=list(template.auth or []))
        self.populate(db, template)
        check_database(db)
        return db
