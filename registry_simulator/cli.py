"""
Command line interface for the registry simulator.

Commands:
    serve     Serve a database document over the Registry v2 HTTP API
    generate  Generate a database document from a template file
    validate  Validate a database document
    template  Generate a random template file

Environment Variables:
    LOG_LEVEL, FLASK_HOST, FLASK_PORT, DB_FILE, THROTTLE_MS, DATA_DIR, MAX_PAGE_SIZE

Example:
    $ registry-simulator generate templates/example.yaml -o db.json
    $ LOG_LEVEL=DEBUG registry-simulator serve -f db.json -p 5001
    $ curl -H "Accept: application/vnd.oci.image.manifest.v1+json" \\
        localhost:5001/v2/alpine/manifests/latest
"""

import json
import logging
import os
import random
import signal
import threading
import uuid

import click
from werkzeug.serving import make_server

from . import __version__
from .config import config
from .errors import DatabaseValidationError, TemplateError
from .generator import Generator
from .models import Database
from .routes import create_app
from .store import RegistryStore, write_document
from .templates import generate_template, load_template_file, write_template_file
from .validation import check_database, find_digest_mismatches

logger = logging.getLogger(__name__)


def format_stats(stats: dict) -> str:
    return (
        f"  Repositories: {stats['repositories']}\n"
        f"  Total tags: {stats['tags']}\n"
        f"  Manifests: {stats['manifests']}\n"
        f"  Blobs: {stats['blobs']}"
    )


def serve_app(app, host: str, port: int) -> None:
    """
    Serve ``app`` until SIGTERM or SIGINT.

    On a signal the server stops accepting connections, waits for in-flight
    request threads to finish, and returns.
    """
    server = make_server(host, port, app, threaded=True)
    # Track request threads so server_close() joins them on shutdown.
    server.daemon_threads = False

    def shutdown(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, shutting down gracefully...")
        # shutdown() blocks until serve_forever() returns, so it cannot run in this thread.
        threading.Thread(target=server.shutdown, daemon=True).start()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    logger.info(f"Registry simulator running on http://{host}:{server.port}")
    logger.info(f"Health check: http://{host}:{server.port}/v2/")
    try:
        server.serve_forever()
    finally:
        # Joins outstanding request threads and releases the socket.
        server.server_close()
        logger.info("Server closed")


@click.group()
@click.version_option(__version__, prog_name="registry-simulator")
@click.option("--log-level", default=None, help="Logging level (overrides LOG_LEVEL)")
def cli(log_level):
    """Docker Registry API v2 simulator."""
    logging.basicConfig(
        level=(log_level or config.LOG_LEVEL).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@cli.command()
@click.option("-f", "--db-file", default=None, help="Path to the database JSON file")
@click.option("-p", "--port", type=int, default=None, help="Port to listen on")
@click.option("--host", default=None, help="Address to bind")
@click.option("--throttle", type=click.IntRange(min=0), default=None, help="Delay per request in milliseconds")
def serve(db_file, port, host, throttle):
    """Start the registry simulator server."""
    db_file = db_file or config.DB_FILE
    host = host or config.FLASK_HOST
    port = config.FLASK_PORT if port is None else port
    throttle = config.THROTTLE_MS if throttle is None else throttle

    logger.info(f"Configuration: {config}")
    try:
        store = RegistryStore.load(db_file)
    except DatabaseValidationError as e:
        logger.error(e.report())
        raise click.ClickException(f"Refusing to serve invalid database {db_file}")
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Database {db_file} is not valid JSON: {e}")

    logger.info(f"Authentication: {'enabled' if store.auth_enabled else 'disabled'}")
    if throttle > 0:
        logger.info(f"Throttle: {throttle}ms delay per request")

    serve_app(create_app(store, throttle_ms=throttle), host, port)


@cli.command()
@click.argument("template", type=click.Path(exists=True, dir_okay=False))
@click.option("-o", "--output", default=None, help="Output database path (default: DATA_DIR/<uuid>.json)")
@click.option("--seed", type=int, default=None, help="Seed the random source for reproducible output")
def generate(template, output, seed):
    """Generate a database from a YAML or JSON template file."""
    try:
        parsed = load_template_file(template)
    except TemplateError as e:
        raise click.ClickException(str(e))

    output = output or os.path.join(config.DATA_DIR, f"{uuid.uuid4()}.json")
    rng = random.Random(seed) if seed is not None else None

    logger.info(
        f"Generating database from template: {len(parsed.repositories)} repositories, "
        f"authentication {'enabled' if parsed.auth else 'disabled'}"
    )
    try:
        db = Generator(rng=rng).generate(parsed)
    except DatabaseValidationError as e:
        logger.error(e.report())
        raise click.ClickException("Generated database failed validation")

    write_document(db.to_dict(), output)
    click.echo(f"Successfully generated database!\n  Output: {os.path.abspath(output)}")
    click.echo(format_stats(db.stats()))


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--verify-digests", is_flag=True, help="Also check that every key is the digest of its content")
def validate(file, verify_digests):
    """Validate a database JSON file."""
    try:
        with open(file, encoding="utf-8") as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"{file} is not valid JSON: {e}")

    try:
        check_database(document)
        if verify_digests:
            mismatches = find_digest_mismatches(document)
            if mismatches:
                raise DatabaseValidationError("Digest verification failed", mismatches)
    except DatabaseValidationError as e:
        raise click.ClickException(e.report())

    click.echo("Validation successful\n\nDatabase Statistics:")
    click.echo(format_stats(Database.from_dict(document).stats()))


@cli.command("template")
@click.option("-r", "--repos", type=click.IntRange(min=1), default=10, show_default=True, help="Number of repositories")
@click.option("-t", "--tags", type=click.IntRange(min=0), default=50, show_default=True, help="Total number of tags")
@click.option("--auth", is_flag=True, help="Include an admin/admin123 credential")
@click.option("-o", "--output", default=None, help="Output path (default: templates/<uuid>.json)")
@click.option("--seed", type=int, default=None, help="Seed the random source for reproducible output")
def template_command(repos, tags, auth, output, seed):
    """Generate a random template file."""
    rng = random.Random(seed) if seed is not None else None
    output = output or os.path.join("templates", f"{uuid.uuid4()}.json")

    write_template_file(generate_template(repos, tags, auth=auth, rng=rng), output)
    click.echo(f"Generated: {output}")
    click.echo(f"  Total repos: {repos}\n  Total tags: {tags}")
    click.echo(f"  Authentication: {'enabled' if auth else 'disabled'}")


def main():
    """Main entry point for the registry simulator."""
    cli()


if __name__ == "__main__":
    main()
