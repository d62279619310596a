import base64
import random
from datetime import datetime, timezone

import pytest

from registry_simulator.generator import Generator
from registry_simulator.models import (
    OCI_IMAGE_CONFIG,
    OCI_IMAGE_LAYER,
    OCI_IMAGE_MANIFEST,
    Database,
    ManifestEntry,
    ManifestType,
    Template,
)
from registry_simulator.routes import create_app
from registry_simulator.store import RegistryStore
from registry_simulator.validation import compute_sha256, content_digest, serialize

FIXED_NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

TEMPLATE = {
    "repositories": [
        {"name": "alpine", "tags": ["latest", "3.19", "3.18"]},
        {"name": "nginx", "tags": ["latest", "1.25"], "format": "docker"},
        {"name": "busybox", "tags": ["latest"], "multiarch": True},
        {"name": "redis", "tags": ["7"], "format": "docker", "multiarch": True,
         "architectures": ["amd64", "arm64", "s390x"]},
        {"name": "postgres", "tags": ["16"]},
    ]
}


def seeded_generator(seed: int = 1234) -> Generator:
    return Generator(rng=random.Random(seed), now=FIXED_NOW)


def basic_auth(username: str, password: str) -> dict:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


def make_config_blob(arch: str = "amd64", marker: str = "base") -> dict:
    return {
        "architecture": arch,
        "os": "linux",
        "created": "2025-01-01T00:00:00.000Z",
        "config": {"Env": [f"MARKER={marker}"], "Cmd": ["/bin/sh"]},
        "rootfs": {"type": "layers", "diff_ids": []},
        "history": [],
    }


def make_oci_manifest(config_blob: dict, media_type: str = OCI_IMAGE_MANIFEST, layer_seed: str = "a") -> dict:
    return {
        "schemaVersion": 2,
        "mediaType": media_type,
        "config": {
            "mediaType": OCI_IMAGE_CONFIG,
            "digest": content_digest(config_blob),
            "size": len(serialize(config_blob)),
        },
        "layers": [
            {
                "mediaType": OCI_IMAGE_LAYER,
                "digest": compute_sha256(layer_seed.encode()),
                "size": 1234,
            }
        ],
    }


def add_manifest(db: Database, manifest_type: ManifestType, body: dict) -> str:
    digest = content_digest(body)
    db.manifests[digest] = ManifestEntry(type=manifest_type, data=body)
    return digest


@pytest.fixture
def template():
    return Template.from_dict(TEMPLATE)


@pytest.fixture
def database(template):
    return seeded_generator().generate(template)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "db.json")


@pytest.fixture
def store(database, db_path):
    return RegistryStore(database, path=db_path, generator=seeded_generator(99))


@pytest.fixture
def app(store):
    app = create_app(store, throttle_ms=0, max_page_size=1000)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_store(database, db_path):
    database.auth = [{"username": "admin", "password": "admin123"}]
    return RegistryStore(database, path=db_path, generator=seeded_generator(7))


@pytest.fixture
def auth_client(auth_store):
    app = create_app(auth_store, throttle_ms=0)
    app.config["TESTING"] = True
    return app.test_client()
