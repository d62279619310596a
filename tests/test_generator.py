"""Tests for the synthetic generator."""

import random
import re

import pytest

from registry_simulator.generator import (
    BUILD_COMMANDS,
    MAX_LAYER_SIZE,
    MAX_LAYERS,
    MIN_LAYER_SIZE,
    MIN_LAYERS,
    Generator,
)
from registry_simulator.models import (
    DOCKER_CONTAINER_CONFIG,
    DOCKER_IMAGE_LAYER,
    DOCKER_MANIFEST_LIST,
    DOCKER_MANIFEST_V2,
    OCI_IMAGE_INDEX,
    OCI_IMAGE_MANIFEST,
    Database,
    ManifestType,
    Template,
)
from registry_simulator.validation import (
    check_database,
    content_digest,
    find_digest_mismatches,
    semantic_errors,
    serialize,
)

from conftest import FIXED_NOW, TEMPLATE, seeded_generator


def random_template(rng: random.Random) -> Template:
    repositories = []
    for index in range(rng.randint(1, 4)):
        repo = {
            "name": f"repo{index}",
            "tags": [f"v{j}" for j in range(rng.randint(1, 3))],
            "format": rng.choice(["oci", "docker"]),
            "multiarch": rng.random() < 0.5,
        }
        if rng.random() < 0.3:
            repo["architectures"] = ["amd64", "arm64", "ppc64le"][: rng.randint(1, 3)]
        repositories.append(repo)
    return Template.from_dict({"repositories": repositories})


def tagged_entry(db: Database, repo: str, tag: str):
    digest = db.find_tag(repo, tag)["digest"]
    return digest, db.manifests[digest]


class TestGeneratedGraph:
    """Properties every generated database must satisfy."""

    @pytest.mark.parametrize("seed", range(12))
    def test_random_templates_are_consistent(self, seed):
        rng = random.Random(seed)
        db = Generator(rng=rng).generate(random_template(rng))

        check_database(db)
        assert semantic_errors(db) == []
        assert find_digest_mismatches(db) == []

    def test_every_key_addresses_its_content(self, database):
        for digest, entry in database.manifests.items():
            assert digest == content_digest(entry.data)
        for digest, blob in database.blobs.items():
            assert digest == content_digest(blob)

    def test_every_blob_is_referenced(self, database):
        assert set(database.blobs) == database.referenced_blob_digests()

    def test_repositories_and_tags(self, database):
        assert database.repository_names() == ["alpine", "nginx", "busybox", "redis", "postgres"]
        assert [t["tag"] for t in database.tags["alpine"]] == ["latest", "3.19", "3.18"]

    def test_layers_within_bounds(self, database):
        for entry in database.manifests.values():
            if entry.type.is_multiarch:
                continue
            layers = entry.data["layers"]
            assert MIN_LAYERS <= len(layers) <= MAX_LAYERS
            for layer in layers:
                assert MIN_LAYER_SIZE <= layer["size"] <= MAX_LAYER_SIZE
                assert layer["digest"].startswith("sha256:")

    def test_config_size_matches_serialized_blob(self, database):
        for entry in database.manifests.values():
            if entry.type.is_multiarch:
                continue
            blob = database.blobs[entry.config_digest]
            assert entry.data["config"]["size"] == len(serialize(blob))


class TestManifestShapes:
    """Test format specific media types."""

    def test_oci_single_arch(self, database):
        _, entry = tagged_entry(database, "alpine", "latest")
        assert entry.type is ManifestType.OCI
        assert entry.data["mediaType"] == OCI_IMAGE_MANIFEST
        assert entry.data["config"]["mediaType"] == "application/vnd.oci.image.config.v1+json"
        assert entry.data["schemaVersion"] == 2

    def test_docker_single_arch(self, database):
        _, entry = tagged_entry(database, "nginx", "latest")
        assert entry.type is ManifestType.DOCKER
        assert entry.data["mediaType"] == DOCKER_MANIFEST_V2
        assert entry.data["config"]["mediaType"] == DOCKER_CONTAINER_CONFIG
        assert all(layer["mediaType"] == DOCKER_IMAGE_LAYER for layer in entry.data["layers"])

    def test_single_arch_uses_first_architecture(self, database):
        _, entry = tagged_entry(database, "postgres", "16")
        assert database.blobs[entry.config_digest]["architecture"] == "amd64"

    def test_oci_index(self, database):
        digest, entry = tagged_entry(database, "busybox", "latest")
        assert entry.type is ManifestType.OCI_INDEX
        assert entry.data["mediaType"] == OCI_IMAGE_INDEX
        platforms = [m["platform"] for m in entry.data["manifests"]]
        assert platforms == [
            {"architecture": "amd64", "os": "linux"},
            {"architecture": "arm64", "os": "linux"},
        ]
        for child in entry.data["manifests"]:
            assert child["mediaType"] == OCI_IMAGE_MANIFEST
            assert database.manifests[child["digest"]].type is ManifestType.OCI
            assert child["size"] == len(serialize(database.manifests[child["digest"]].data))

    def test_docker_list_with_custom_architectures(self, database):
        _, entry = tagged_entry(database, "redis", "7")
        assert entry.type is ManifestType.DOCKER_LIST
        assert entry.data["mediaType"] == DOCKER_MANIFEST_LIST
        assert [m["platform"]["architecture"] for m in entry.data["manifests"]] == ["amd64", "arm64", "s390x"]
        assert all(m["mediaType"] == DOCKER_MANIFEST_V2 for m in entry.data["manifests"])


class TestConfigBlob:
    """Test config blob content."""

    def test_default_image_config(self, database):
        _, entry = tagged_entry(database, "alpine", "latest")
        blob = database.blobs[entry.config_digest]
        config = blob["config"]

        assert list(blob) == ["architecture", "os", "created", "config", "rootfs", "history"]
        assert config["Cmd"] == ["/bin/sh", "-c", "alpine"]
        assert config["WorkingDir"] == "/app"
        assert config["StopSignal"] == "SIGTERM"
        assert "APP_NAME=alpine" in config["Env"]
        assert "User" not in config
        labels = config["Labels"]
        assert labels["org.opencontainers.image.title"] == "alpine"
        assert labels["org.opencontainers.image.source"].endswith("/alpine")
        assert labels["org.opencontainers.image.licenses"] in {"Apache-2.0", "MIT", "BSD-3-Clause", "GPL-3.0", "ISC"}
        assert f"APP_VERSION={labels['org.opencontainers.image.version']}" in config["Env"]

    def test_history_matches_layers(self, database):
        _, entry = tagged_entry(database, "alpine", "3.19")
        blob = database.blobs[entry.config_digest]
        layer_digests = [layer["digest"] for layer in entry.data["layers"]]

        assert blob["rootfs"] == {"type": "layers", "diff_ids": layer_digests}
        assert len(blob["history"]) == len(layer_digests)
        assert blob["history"][0]["created_by"] == "# linux base layer"
        assert "empty_layer" not in blob["history"][0]
        for index, entry in enumerate(blob["history"][1:], start=1):
            assert entry["created_by"] == BUILD_COMMANDS[index % len(BUILD_COMMANDS)]
            assert isinstance(entry["empty_layer"], bool)

    def test_created_within_last_year(self, database):
        for blob in database.blobs.values():
            assert blob["created"].endswith("Z")
            assert "2024-06-01" <= blob["created"][:10] <= "2025-06-01"

    def test_curated_postgres(self, database):
        _, entry = tagged_entry(database, "postgres", "16")
        config = database.blobs[entry.config_digest]["config"]
        assert config["User"] == "999"
        assert config["ExposedPorts"] == {"5432/tcp": {}}
        assert config["Volumes"] == {"/var/lib/postgresql/data": {}}
        assert config["Entrypoint"] == ["docker-entrypoint.sh"]
        assert config["Cmd"] == ["postgres"]
        assert "POSTGRES_VERSION=16" in config["Env"]

    def test_curated_nginx(self, database):
        _, entry = tagged_entry(database, "nginx", "latest")
        config = database.blobs[entry.config_digest]["config"]
        assert config["ExposedPorts"] == {"80/tcp": {}}
        assert config["Cmd"] == ["nginx", "-g", "daemon off;"]
        assert config["StopSignal"] == "SIGQUIT"
        assert "Volumes" not in config


class TestDeterminism:
    """Test the injectable random source."""

    def test_same_seed_same_digests(self, template):
        first = seeded_generator(5).generate(template)
        second = seeded_generator(5).generate(template)
        assert first.to_dict() == second.to_dict()

    def test_different_seed_different_digests(self, template):
        first = seeded_generator(5).generate(template)
        second = seeded_generator(6).generate(template)
        assert set(first.manifests).isdisjoint(second.manifests)

    def test_descriptive_labels_follow_the_seed(self):
        labels = []
        for _ in range(2):
            blob = seeded_generator(21).generate_config_blob("amd64", "linux", [], "alpine")
            labels.append(blob.config["Labels"])
        assert labels[0] == labels[1]

        description = labels[0]["org.opencontainers.image.description"]
        assert description.endswith(".")
        assert re.fullmatch(r"\d\.\d{1,2}\.\d{1,2}", labels[0]["org.opencontainers.image.version"])
        assert re.fullmatch(r"https://github\.com/[^/]+/alpine", labels[0]["org.opencontainers.image.source"])

    def test_unseeded_runs_differ(self, template):
        assert set(Generator(now=FIXED_NOW).generate(template).blobs) != set(
            Generator(now=FIXED_NOW).generate(template).blobs
        )


class TestPopulate:
    """Test additive generation into an existing graph."""

    def test_additive(self, database):
        before = database.to_dict()
        seeded_generator(42).populate(
            database, Template.from_dict({"repositories": [{"name": "ubuntu", "tags": ["22.04"]}]})
        )

        assert database.has_repository("ubuntu")
        for digest in before["manifests"]:
            assert digest in database.manifests
        for digest in before["blobs"]:
            assert digest in database.blobs
        assert database.tags["alpine"] == before["tags"]["alpine"]
        check_database(database)

    def test_existing_tag_moves(self, database):
        old_digest = database.find_tag("alpine", "latest")["digest"]
        seeded_generator(42).populate(
            database, Template.from_dict({"repositories": [{"name": "alpine", "tags": ["latest", "edge"]}]})
        )

        assert database.repository_names().count("alpine") == 1
        tags = [t["tag"] for t in database.tags["alpine"]]
        assert tags == ["latest", "3.19", "3.18", "edge"]
        assert database.find_tag("alpine", "latest")["digest"] != old_digest
        assert old_digest in database.manifests
        check_database(database)

    def test_auth_from_template(self):
        template = Template.from_dict({
            "auth": [{"username": "admin", "password": "secret"}],
            "repositories": TEMPLATE["repositories"][:1],
        })
        db = seeded_generator().generate(template)
        assert db.auth == [{"username": "admin", "password": "secret"}]
