"""conoha-storage CLI - command-line front-end for the storage client.

Usage:
    conoha-storage [--config NAME] [--force-refresh] token
    conoha-storage list
    conoha-storage info CONTAINER
    conoha-storage stat CONTAINER OBJECT
    conoha-storage create CONTAINER
    conoha-storage delete CONTAINER
    conoha-storage upload FILE CONTAINER [--name OBJECT] [--content-type MIME]
    conoha-storage download CONTAINER OBJECT [--output PATH]
    conoha-storage rm CONTAINER OBJECT

Results are printed to stdout as JSON; logs go to stderr.

Exit codes:
    0: Operation succeeded
    1: Configuration or authentication error
    2: Operation failed (not found, conflict, HTTP or transport error)
"""

from __future__ import annotations

import argparse
import json
import logging
import mimetypes
import sys
from typing import Any

from conoha_storage.client import StorageClient, create_storage_client
from conoha_storage.config import DEFAULT_CONF_NAME
from conoha_storage.errors import ConoHaError
from conoha_storage.models import StorageResult

LOG_FORMAT = "%(asctime)s: [%(levelname)s] -- %(message)s"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, stream=sys.stderr)


def _output_json(data: Any) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2))


def _result_to_dict(result: StorageResult[Any]) -> dict[str, Any]:
    if result.ok:
        return {"ok": True, "status_code": result.status_code, "value": result.value}
    return {
        "error": str(result.error),
        "message": result.message,
        "ok": False,
        "status_code": result.status_code,
    }


def _guess_content_type(path: str) -> str:
    content_type, _ = mimetypes.guess_type(path)
    return content_type or DEFAULT_CONTENT_TYPE


def cmd_token(client: StorageClient, args: argparse.Namespace) -> StorageResult[Any]:
    """Report the expiry of the current token. The token itself is not printed."""
    token = client.token_manager.current_token()
    return StorageResult.success(
        {"expires_at": token.expires_at.isoformat(), "tenant_id": client.tenant_id}
    )


def cmd_list(client: StorageClient, args: argparse.Namespace) -> StorageResult[Any]:
    return client.list_containers()


def cmd_info(client: StorageClient, args: argparse.Namespace) -> StorageResult[Any]:
    return client.get_container_info(args.container)


def cmd_stat(client: StorageClient, args: argparse.Namespace) -> StorageResult[Any]:
    return client.get_object_metadata(args.container, args.object)


def cmd_create(client: StorageClient, args: argparse.Namespace) -> StorageResult[Any]:
    return client.create_container(args.container)


def cmd_delete(client: StorageClient, args: argparse.Namespace) -> StorageResult[Any]:
    return client.delete_container(args.container)


def cmd_upload(client: StorageClient, args: argparse.Namespace) -> StorageResult[Any]:
    content_type = args.content_type or _guess_content_type(args.file)
    return client.upload_object(args.file, content_type, args.container, args.name)


def cmd_download(client: StorageClient, args: argparse.Namespace) -> StorageResult[Any]:
    return client.download_object(args.container, args.object, args.output)


def cmd_rm(client: StorageClient, args: argparse.Namespace) -> StorageResult[Any]:
    return client.delete_object(args.container, args.object)


COMMAND_DISPATCH = {
    "token": cmd_token,
    "list": cmd_list,
    "info": cmd_info,
    "stat": cmd_stat,
    "create": cmd_create,
    "delete": cmd_delete,
    "upload": cmd_upload,
    "download": cmd_download,
    "rm": cmd_rm,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="conoha-storage",
        description="ConoHa object storage client",
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONF_NAME,
        metavar="NAME",
        help="Credential file name in CONOHA_CONFIG_DIR, without .json (default: default)",
    )
    parser.add_argument(
        "--force-refresh",
        action="store_true",
        default=False,
        help="Ignore the cached token and authenticate again",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level for stderr output (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("token", help="Obtain a token and show its expiry")
    subparsers.add_parser("list", help="List containers")

    info_parser = subparsers.add_parser("info", help="List objects in a container")
    info_parser.add_argument("container")

    stat_parser = subparsers.add_parser("stat", help="Show object metadata")
    stat_parser.add_argument("container")
    stat_parser.add_argument("object")

    create_container_parser = subparsers.add_parser("create", help="Create a container")
    create_container_parser.add_argument("container")

    delete_container_parser = subparsers.add_parser(
        "delete", help="Delete an empty container"
    )
    delete_container_parser.add_argument("container")

    upload_parser = subparsers.add_parser("upload", help="Upload a file as an object")
    upload_parser.add_argument("file", help="Local file to upload")
    upload_parser.add_argument("container")
    upload_parser.add_argument(
        "--name",
        default=None,
        metavar="OBJECT",
        help="Object name (default: the file's base name)",
    )
    upload_parser.add_argument(
        "--content-type",
        default=None,
        metavar="MIME",
        help="Content type (default: guessed from the file name)",
    )

    download_parser = subparsers.add_parser("download", help="Download an object")
    download_parser.add_argument("container")
    download_parser.add_argument("object")
    download_parser.add_argument(
        "--output",
        default=None,
        metavar="PATH",
        help="Destination file (default: object name in the current directory)",
    )

    rm_parser = subparsers.add_parser("rm", help="Delete an object")
    rm_parser.add_argument("container")
    rm_parser.add_argument("object")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Success
        1: Configuration or authentication error
        2: Operation failed
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    _configure_logging(args.log_level)

    try:
        with create_storage_client(args.config, args.force_refresh) as client:
            result = COMMAND_DISPATCH[args.command](client, args)
    except ConoHaError as e:
        _output_json({"error": type(e).__name__, "message": str(e), "ok": False})
        return 1

    _output_json(_result_to_dict(result))
    return 0 if result.ok else 2


if __name__ == "__main__":
    sys.exit(main())
