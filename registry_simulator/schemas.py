# for reference:
#   https://json-schema.org/understanding-json-schema/reference/object

schema_url = "http://json-schema.org/draft-07/schema"

REPOSITORY_NAME_PATTERN = r"^[a-z0-9]+(?:[._-][a-z0-9]+)*$"
DIGEST_PREFIX_PATTERN = r"^sha256:"
DIGEST_MIN_LENGTH = 15
TAG_PATTERN = r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$"

digestProperty = {"type": "string", "pattern": DIGEST_PREFIX_PATTERN, "minLength": DIGEST_MIN_LENGTH}
digestKey = {"pattern": DIGEST_PREFIX_PATTERN, "minLength": DIGEST_MIN_LENGTH}

descriptorProperties = {
    "mediaType": {"type": "string"},
    "digest": digestProperty,
    "size": {"type": "integer", "minimum": 0},
}

descriptor = {
    "type": "object",
    "required": ["mediaType", "digest", "size"],
    "properties": descriptorProperties,
}

platformDescriptor = {
    "type": "object",
    "required": ["mediaType", "digest", "size"],
    "properties": {
        **descriptorProperties,
        "platform": {
            "type": "object",
            "required": ["architecture", "os"],
            "properties": {
                "architecture": {"type": "string"},
                "os": {"type": "string"},
            },
        },
    },
}

authUser = {
    "type": "object",
    "required": ["username", "password"],
    "properties": {
        "username": {"type": "string", "minLength": 1},
        "password": {"type": "string", "minLength": 1},
    },
}

repository = {
    "type": "object",
    "required": ["name"],
    "properties": {
        "name": {"type": "string", "minLength": 1, "pattern": REPOSITORY_NAME_PATTERN},
    },
}

tag = {
    "type": "object",
    "required": ["tag", "digest"],
    "properties": {
        "tag": {"type": "string", "pattern": TAG_PATTERN},
        "digest": {
            "type": "string",
            "pattern": DIGEST_PREFIX_PATTERN,
            "minLength": DIGEST_MIN_LENGTH,
        },
    },
}

manifest = {
    "type": "object",
    "required": ["type", "data"],
    "properties": {
        "type": {"enum": ["oci", "docker", "oci-index", "docker-list"]},
        "data": {
            "type": "object",
            "required": ["schemaVersion", "mediaType"],
            "properties": {
                "schemaVersion": {"type": "integer", "minimum": 2},
                "mediaType": {"type": "string"},
                "config": descriptor,
                "layers": {"type": "array", "items": descriptor},
                "manifests": {"type": "array", "items": platformDescriptor},
            },
        },
    },
    "allOf": [
        {
            "if": {"properties": {"type": {"enum": ["oci", "docker"]}}},
            "then": {"properties": {"data": {"required": ["config", "layers"]}}},
        },
        {
            "if": {"properties": {"type": {"enum": ["oci-index", "docker-list"]}}},
            "then": {"properties": {"data": {"required": ["manifests"]}}},
        },
    ],
}

stringArray = {"type": "array", "items": {"type": "string"}}

configBlob = {
    "type": "object",
    "required": ["architecture", "os", "created", "config", "rootfs", "history"],
    "properties": {
        "architecture": {"type": "string"},
        "os": {"type": "string"},
        "created": {"type": "string"},
        "config": {
            "type": "object",
            "properties": {
                "User": {"type": "string"},
                "ExposedPorts": {"type": "object"},
                "Env": stringArray,
                "Entrypoint": stringArray,
                "Cmd": stringArray,
                "Volumes": {"type": "object"},
                "WorkingDir": {"type": "string"},
                "Labels": {
                    "type": "object",
                    "additionalProperties": {"type": "string"},
                },
                "StopSignal": {"type": "string"},
            },
        },
        "rootfs": {
            "type": "object",
            "required": ["type", "diff_ids"],
            "properties": {
                "type": {"type": "string"},
                "diff_ids": stringArray,
            },
        },
        "history": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "created": {"type": "string"},
                    "created_by": {"type": "string"},
                    "comment": {"type": "string"},
                    "empty_layer": {"type": "boolean"},
                },
            },
        },
    },
}

database = {
    "$schema": schema_url,
    "title": "Registry Database Schema",
    "type": "object",
    "required": ["auth", "repositories", "tags", "manifests", "blobs"],
    "properties": {
        "auth": {"type": "array", "items": authUser},
        "repositories": {"type": "array", "items": repository},
        "tags": {
            "type": "object",
            "additionalProperties": {"type": "array", "items": tag},
        },
        "manifests": {
            "type": "object",
            "propertyNames": digestKey,
            "additionalProperties": manifest,
        },
        "blobs": {
            "type": "object",
            "propertyNames": digestKey,
            "additionalProperties": configBlob,
        },
    },
}

templateRepository = {
    "type": "object",
    "required": ["name", "tags"],
    "properties": {
        "name": {"type": "string", "minLength": 1, "pattern": REPOSITORY_NAME_PATTERN},
        "tags": {"type": "array", "items": {"type": "string", "pattern": TAG_PATTERN}},
        "format": {"enum": ["oci", "docker"]},
        "multiarch": {"type": "boolean"},
        "architectures": {
            "type": "array",
            "minItems": 1,
            "items": {"type": "string", "minLength": 1},
        },
        "os": {"type": "string", "minLength": 1},
    },
}

template = {
    "$schema": schema_url,
    "title": "Registry Template Schema",
    "type": "object",
    "required": ["repositories"],
    "properties": {
        "$schema": {"type": "string"},
        "auth": {"type": "array", "items": authUser},
        "repositories": {"type": "array", "items": templateRepository},
    },
}

EmptyDatabase = {
    "auth": [],
    "repositories": [],
    "tags": {},
    "manifests": {},
    "blobs": {},
}
