# main.py
import argparse
import logging
import sys
from pathlib import Path

# make local modules importable
BASE = Path(__file__).resolve().parents[0]
if str(BASE) not in sys.path:
    sys.path.append(str(BASE))

from client.ingest_client import IngestClient, IngestError
from config.config_loader import ConfigLoader, ConfigurationError, parse_collection_list
from connectors.connection import ConnectionFailure, ConnectionInfo
from metrics.errors import CollectorError
from orchestrator.collection_orchestrator import CollectionOrchestrator, configure_root_logger
from publisher.payload_store import PayloadStore
from utils.version import get_version, get_build

logger = logging.getLogger("pgcollector.main")


def _overrides(args) -> dict:
    """CLI values that were actually given; unset flags stay None."""
    overrides = {
        "hostname": args.hostname,
        "port": args.port,
        "username": args.username,
        "password": args.password,
        "database": args.database,
        "enable_ssl": args.enable_ssl,
        "trust_server_certificate": args.trust_server_certificate,
        "ssl_root_cert_location": args.ssl_root_cert_location,
        "ssl_cert_location": args.ssl_cert_location,
        "ssl_key_location": args.ssl_key_location,
        "timeout": args.timeout,
        "pgbouncer": args.pgbouncer,
        "collect_db_lock_metrics": args.collect_db_lock_metrics,
        "verbose": args.verbose,
        "log_file": args.log_file,
        "output": args.output,
        "publish_url": args.publish_url,
        "publish_token": args.publish_token,
    }
    if args.collection_list is not None:
        overrides["collection_list"] = parse_collection_list(args.collection_list)
    return overrides


def cmd_collect(args) -> int:
    try:
        arguments = ConfigLoader(args.config).load_arguments(_overrides(args))
        arguments.validate()
    except (ConfigurationError, FileNotFoundError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_root_logger(level="DEBUG" if arguments.verbose else None, log_file=arguments.log_file)
    logger.debug("Effective configuration: %s", arguments.sanitized())

    if not arguments.collection_list:
        logger.warning("collection_list is empty; only instance metrics will be collected")

    orchestrator = CollectionOrchestrator(
        ConnectionInfo(arguments),
        arguments.collection_list,
        collect_pgbouncer=arguments.pgbouncer,
        collect_db_locks=arguments.collect_db_lock_metrics,
    )

    try:
        run = orchestrator.run()
    except (CollectorError, ConnectionFailure) as e:
        logger.error("Collection aborted: %s", e)
        return 1

    try:
        payload, _ = PayloadStore(arguments.output).publish(run)
    except OSError as e:
        logger.error("Failed to write payload: %s", e)
        return 1

    if arguments.publish_url:
        client = IngestClient(arguments.publish_url, arguments.publish_token, timeout=int(arguments.timeout))
        try:
            client.send(payload)
        except IngestError as e:
            logger.error("Failed to publish payload: %s", e)
            return 1
        finally:
            client.close()

    return 0


def cmd_version(args) -> int:
    print(f"pgcollector {get_version()} (build {get_build()})")
    return 0


def build_parser():
    p = argparse.ArgumentParser(prog="pgcollector", description="pgcollector - collect PostgreSQL metrics")
    sp = p.add_subparsers(dest="cmd")

    # collect
    pc = sp.add_parser("collect", help="Run one metric collection pass.")
    pc.add_argument("--config", type=str, help="YAML config file")
    pc.add_argument("--hostname", type=str, help="PostgreSQL host (default: localhost)")
    pc.add_argument("--port", type=str, help="PostgreSQL port (default: 5432)")
    pc.add_argument("--username", type=str)
    pc.add_argument("--password", type=str, help="Prefer PGCOLLECTOR_PASSWORD in the environment")
    pc.add_argument("--database", type=str, help="Database of the primary connection (default: postgres)")
    pc.add_argument("--collection-list", type=str,
                    help='JSON map of databases to schemas, e.g. \'{"postgres": ["public"]}\'')
    pc.add_argument("--enable-ssl", action="store_true", default=None)
    pc.add_argument("--trust-server-certificate", action="store_true", default=None)
    pc.add_argument("--ssl-root-cert-location", type=str)
    pc.add_argument("--ssl-cert-location", type=str)
    pc.add_argument("--ssl-key-location", type=str)
    pc.add_argument("--timeout", type=str, help="Connect timeout in seconds (default: 10)")
    pc.add_argument("--pgbouncer", action="store_true", default=None, help="Collect pgbouncer metrics")
    pc.add_argument("--collect-db-lock-metrics", action="store_true", default=None,
                    help="Collect database lock metrics (needs the tablefunc extension)")
    pc.add_argument("--verbose", action="store_true", default=None, help="Debug logging")
    pc.add_argument("--log-file", type=str)
    pc.add_argument("--output", type=str, help="Payload file or directory (default: stdout)")
    pc.add_argument("--publish-url", type=str, help="Ingest endpoint to POST the payload to")
    pc.add_argument("--publish-token", type=str)
    pc.set_defaults(func=cmd_collect)

    # version
    pv = sp.add_parser("version", help="Show collector version")
    pv.set_defaults(func=cmd_version)

    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.cmd:
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
