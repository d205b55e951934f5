"""
Embedded Elasticsearch CLI — Command-Line Interface
===================================================

Usage:
    embedded-elasticsearch run /opt/elasticsearch-7.17.0 --index orders=orders.json
    embedded-elasticsearch health --port 9200
    embedded-elasticsearch documents orders customers --port 9200
    embedded-elasticsearch passwords /opt/elasticsearch-7.17.0
"""

import argparse
import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional

from .cluster import ElasticRestClient
from .core import EmbeddedElastic
from .errors import EmbeddedElasticError
from .index import IndexSettings
from .java_home import JavaHome
from .server import ElasticServer
from .transport import HttpClient


def executable_in(home: str, name: str) -> Path:
    """Path of a start script in ``<home>/bin``."""
    suffix = ".bat" if os.name == "nt" else ""
    return Path(home) / "bin" / f"{name}{suffix}"


def parse_java_home(value: Optional[str]) -> JavaHome:
    if value is None or value == "system":
        return JavaHome.use_system()
    if value == "java_home":
        return JavaHome.use_java_home()
    if value == "inherit":
        return JavaHome.inherit()
    return JavaHome.path(value)


def parse_named_files(values: Optional[List[str]]) -> Dict[str, Optional[str]]:
    """Turn ``name`` / ``name=path`` arguments into name → file contents."""
    named: Dict[str, Optional[str]] = {}
    for value in values or []:
        name, _, path = value.partition("=")
        named[name] = Path(path).read_text(encoding="utf-8") if path else None
    return named


def index_settings(body: str) -> IndexSettings:
    """An index file holds a full create-index body: settings, aliases, mappings."""
    document = json.loads(body)
    return IndexSettings(
        mapping=document.get("mappings"),
        settings=document.get("settings"),
        aliases=document.get("aliases")
    )


def http_client(args) -> HttpClient:
    return HttpClient(
        args.port,
        host=args.host,
        username=args.user,
        password=args.password
    )


def cmd_run(args):
    """Start a server and keep it running until interrupted."""
    indices = {
        name: index_settings(body) if body is not None else None
        for name, body in parse_named_files(args.index).items()
    }
    templates = {
        name: body
        for name, body in parse_named_files(args.template).items()
        if body is not None
    }

    elastic = EmbeddedElastic(
        executable=executable_in(args.home, "elasticsearch"),
        installation_directory=args.home,
        indices=indices,
        templates=templates,
        es_java_opts=args.java_opts,
        start_timeout=args.timeout,
        clean_installation_directory_on_stop=args.clean,
        java_home=parse_java_home(args.java_home),
        with_security=args.security,
        host=args.host
    )

    with elastic:
        print("\nElasticsearch is running")
        print(f"  HTTP port: {elastic.get_http_port()}")
        print(f"  Transport port: {elastic.get_transport_tcp_port()}")
        if args.security:
            print(f"  Password for elastic: {elastic.get_password('elastic')}")
        print("Press Ctrl+C to stop.")
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            print("\nStopping...")


def cmd_health(args):
    """Wait for the cluster to become yellow."""
    with http_client(args) as http:
        ElasticRestClient(http).wait_for_cluster_yellow()
    print(f"Cluster at {args.host}:{args.port} is healthy")


def cmd_documents(args):
    """Print the sources of all documents in the given indices."""
    with http_client(args) as http:
        documents = ElasticRestClient(http).fetch_all_documents(
            *args.indices, routing=args.routing
        )
    for document in documents:
        print(document)
    print(f"\n{len(documents)} documents", file=sys.stderr)


def cmd_passwords(args):
    """Generate built-in user passwords on a security-enabled installation."""
    server = ElasticServer(
        executable_in(args.home, "elasticsearch"),
        setup_passwords_executable=executable_in(args.home, "elasticsearch-setup-passwords"),
        java_home=parse_java_home(args.java_home)
    )
    for user, password in server.get_passwords().items():
        print(f"{user:<24} {password}")


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="embedded-elasticsearch",
        description="Run and provision a local Elasticsearch for test suites"
    )

    parser.add_argument("--host", default="localhost", help="Elasticsearch host")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log server output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run command
    run_parser = subparsers.add_parser("run", help="Start a server until interrupted")
    run_parser.add_argument("home", help="Installation directory")
    run_parser.add_argument(
        "--index", action="append",
        help="Index to create, as NAME or NAME=create-index-body.json (repeatable)"
    )
    run_parser.add_argument(
        "--template", action="append",
        help="Template to create, as NAME=template.json (repeatable)"
    )
    run_parser.add_argument("--timeout", type=float, default=15.0, help="Start timeout in seconds")
    run_parser.add_argument("--java-opts", dest="java_opts", default="", help="ES_JAVA_OPTS")
    run_parser.add_argument(
        "--java-home", dest="java_home", default=None,
        help="system, java_home, inherit or a JDK directory"
    )
    run_parser.add_argument("--clean", action="store_true", help="Delete installation directory on stop")
    run_parser.add_argument("--security", action="store_true", help="Bootstrap passwords and authenticate")

    # commands against a running server
    for name, help_text in (("health", "Wait for yellow cluster health"),
                            ("documents", "Print all documents")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--port", type=int, default=9200, help="HTTP port")
        sub.add_argument("--user", default=None, help="Basic auth user")
        sub.add_argument("--password", default=None, help="Basic auth password")
        if name == "documents":
            sub.add_argument("indices", nargs="*", help="Indices (default: all)")
            sub.add_argument("--routing", default=None, help="Routing key")

    # passwords command
    passwords_parser = subparsers.add_parser("passwords", help="Bootstrap built-in user passwords")
    passwords_parser.add_argument("home", help="Installation directory")
    passwords_parser.add_argument("--java-home", dest="java_home", default=None)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    commands = {
        "run": cmd_run,
        "health": cmd_health,
        "documents": cmd_documents,
        "passwords": cmd_passwords,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 0

    try:
        command(args)
    except EmbeddedElasticError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
