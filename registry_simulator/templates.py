"""
Template handling for the registry simulator.

Loads templates from YAML or JSON files (comments allowed), checks their
shape, and generates random templates for load testing.
"""

import json
import logging
import os
import random

import json5
import yaml
from jsonschema import Draft7Validator

from . import schemas
from .errors import TemplateError
from .models import Template

logger = logging.getLogger(__name__)

TEMPLATE_SCHEMA_URL = (
    "https://raw.githubusercontent.com/eznix86/docker-registry-api-simulator/main/template.schema.json"
)

KNOWN_REPOSITORIES = [
    "alpine", "ubuntu", "debian", "busybox", "nginx", "httpd", "redis", "postgres",
    "mysql", "mariadb", "mongo", "node", "python", "golang", "openjdk", "ruby",
    "php", "rust", "traefik", "haproxy", "memcached", "rabbitmq", "elasticsearch",
    "kibana", "grafana", "prometheus", "consul", "vault", "registry", "jenkins",
]

ADDITIONAL_SUFFIXES = [
    "dev", "server", "proxy", "cache", "broker",
    "gateway", "service", "monitor", "logger", "tracer",
    "runner", "agent", "tool", "mgr", "vault",
    "balancer", "node", "scheduler", "queue", "bus", "processor",
]

DEFAULT_AUTH = [{"username": "admin", "password": "admin123"}]

_template_validator = Draft7Validator(schemas.template)


def parse_template(raw) -> Template:
    """
    Check a parsed template document and convert it to a Template.

    Raises:
        TemplateError: if the document does not match the template schema
    """
    if not isinstance(raw, dict) or not isinstance(raw.get("repositories"), list):
        raise TemplateError('Template must contain a "repositories" array')

    errors = [
        f"{'.'.join(str(part) for part in error.absolute_path) or 'root'}: {error.message}"
        for error in _template_validator.iter_errors(raw)
    ]
    if errors:
        raise TemplateError("Invalid template: " + "; ".join(errors))

    return Template.from_dict(raw)


def load_template_file(path: str) -> Template:
    """
    Read a template from a .yaml, .yml, .json or .jsonc file.

    Raises:
        TemplateError: unsupported extension, unparsable content or bad shape
    """
    extension = os.path.splitext(path)[1].lower()
    if extension not in (".yaml", ".yml", ".json", ".jsonc"):
        raise TemplateError(f"Unsupported file format: {extension}. Use .yaml, .yml, .json or .jsonc")
    logger.info(f"Reading template from: {os.path.abspath(path)}")

    with open(path, encoding="utf-8") as f:
        content = f.read()

    try:
        if extension in (".yaml", ".yml"):
            raw = yaml.safe_load(content)
        else:
            # Comments and trailing commas are allowed in .json too.
            raw = json5.loads(content)
    except (yaml.YAMLError, ValueError) as e:
        raise TemplateError(f"Could not parse template {path}: {e}") from e

    return parse_template(raw)


def generate_tags(repo_index: int, count: int) -> list[str]:
    return [f"v{repo_index + 1}.{j}.0" for j in range(count)]


def pick_repository_name(rng: random.Random, used_names: set[str]) -> str:
    base_name = rng.choice(KNOWN_REPOSITORIES)
    if base_name not in used_names:
        return base_name

    for suffix in ADDITIONAL_SUFFIXES:
        name = f"{base_name}-{suffix}"
        if name not in used_names:
            return name

    counter = 1
    while f"{base_name}-{counter}" in used_names:
        counter += 1
    return f"{base_name}-{counter}"


def generate_template(repo_count: int, total_tags: int, auth: bool = False, rng: random.Random | None = None) -> dict:
    """
    Generate a template with ``repo_count`` repositories and ``total_tags`` tags.

    Tags are spread evenly with the remainder going to the first repository.
    Every third repository is multi-arch and every fifth uses the Docker format.
    """
    if repo_count < 1:
        raise TemplateError("Repository count must be at least 1")
    if total_tags < 0:
        raise TemplateError("Tag count must not be negative")

    rng = rng or random.Random()
    tags_per_repo, extra_tags = divmod(total_tags, repo_count)

    logger.info(f"Generating template with {repo_count} repos and {total_tags} tags")

    used_names = set()
    repositories = []
    for index in range(repo_count):
        name = pick_repository_name(rng, used_names)
        used_names.add(name)

        tag_count = tags_per_repo + extra_tags if index == 0 else tags_per_repo
        repo = {"name": name, "tags": generate_tags(index, tag_count)}
        if index % 5 == 0:
            repo["format"] = "docker"
        if index % 3 == 0:
            repo["multiarch"] = True
        repositories.append(repo)

    template = {"$schema": TEMPLATE_SCHEMA_URL, "repositories": repositories}
    if auth:
        template["auth"] = [dict(user) for user in DEFAULT_AUTH]
    return template


def write_template_file(template: dict, path: str) -> str:
    """Write a template as indented JSON, creating parent directories."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(template, f, indent=2)
    logger.info(f"Generated template: {path}")
    return path
