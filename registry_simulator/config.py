"""
Configuration module for the registry simulator.

Loads all configuration from environment variables with sensible defaults.
"""

import os


class Config:
    """
    Simulator configuration from environment variables.

    Loads all configuration values from environment variables with sensible defaults.
    All settings can be overridden by setting the corresponding environment variable,
    and the CLI options override them again for a single run.
    """

    def __init__(self):
        """
        Initialize configuration from environment variables.

        Environment Variables:
            LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO
            FLASK_HOST: Server bind address. Default: 0.0.0.0
            FLASK_PORT: Server bind port. Default: 5001
            DB_FILE: Path of the persisted database document. Default: db.json
            THROTTLE_MS: Artificial delay applied to every request, in milliseconds. Default: 0
            DATA_DIR: Output directory for generated databases. Default: data
            MAX_PAGE_SIZE: Largest page size honoured for catalog/tag listing. Default: 10000
        """
        # Logging
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        # Server
        self.FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
        self.FLASK_PORT = int(os.getenv("FLASK_PORT", "5001"))
        self.THROTTLE_MS = int(os.getenv("THROTTLE_MS", "0"))

        # Storage
        self.DB_FILE = os.getenv("DB_FILE", "db.json")
        self.DATA_DIR = os.getenv("DATA_DIR", "data")

        # Pagination
        self.MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "10000"))

    def __repr__(self):
        """String representation for logging."""
        return (
            f"Config(LOG_LEVEL={self.LOG_LEVEL}, "
            f"FLASK_HOST={self.FLASK_HOST}, "
            f"FLASK_PORT={self.FLASK_PORT}, "
            f"DB_FILE={self.DB_FILE}, "
            f"THROTTLE_MS={self.THROTTLE_MS})"
        )


# Global config instance
config = Config()
