"""protobridge CLI: render schemas and reconcile arguments from a descriptor set."""

import argparse
import json
import logging
import sys
from importlib.metadata import version as get_version, PackageNotFoundError
from pathlib import Path

from google.protobuf import descriptor_pb2, descriptor_pool
from google.protobuf.message import DecodeError


def load_descriptor_pool(path: Path) -> descriptor_pool.DescriptorPool:
    """Load a serialized FileDescriptorSet into a fresh descriptor pool.

    The set must be self-contained (``protoc --include_imports``).
    """
    file_set = descriptor_pb2.FileDescriptorSet()
    file_set.ParseFromString(Path(path).read_bytes())
    pool = descriptor_pool.DescriptorPool()
    for file_proto in file_set.file:
        pool.AddSerializedFile(file_proto.SerializeToString())
    return pool


def _parse_extra(text: str):
    from .contracts import ExtraProperty

    name, _, flag = text.partition(":")
    if flag not in ("", "required"):
        raise argparse.ArgumentTypeError(f"Invalid extra property '{text}' (expected NAME or NAME:required)")
    return ExtraProperty(name=name, required=flag == "required")


def _read_input(text: str):
    if text == "-":
        return json.load(sys.stdin)
    if text.startswith("@"):
        return json.loads(Path(text[1:]).read_text(encoding="utf-8"))
    return json.loads(text)


def main():
    """Main CLI entry point for protobridge commands."""
    try:
        protobridge_version = get_version("protobridge")
    except PackageNotFoundError:
        protobridge_version = "dev"

    parser = argparse.ArgumentParser(
        prog="protobridge",
        description="protobridge: JSON Schema and argument reconciliation for protobuf messages"
    )
    parser.add_argument("--version", action="version", version=f"protobridge {protobridge_version}")
    # Common arguments
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument(
        "--descriptor-set",
        type=Path,
        required=True,
        help="Serialized FileDescriptorSet (protoc --descriptor_set_out --include_imports)"
    )
    parent_parser.add_argument(
        "--message",
        required=True,
        help="Fully qualified message name, e.g. example.v1.CreateExampleRequest"
    )
    parent_parser.add_argument(
        "--dialect",
        choices=["canonical", "restricted"],
        default="restricted",
        help="Schema dialect (default: restricted)"
    )
    parent_parser.add_argument(
        "--extra",
        dest="extras",
        action="append",
        type=_parse_extra,
        default=[],
        metavar="NAME[:required]",
        help="Extra string property carried beside the message (repeatable)"
    )
    parent_parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log reconciliation details to stderr."
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "schema",
        help="Print the JSON Schema of a message",
        parents=[parent_parser]
    )

    reconcile_parser = subparsers.add_parser(
        "reconcile",
        help="Reconcile tool-call arguments into the canonical shape and decode them",
        parents=[parent_parser]
    )
    reconcile_parser.add_argument(
        "--input",
        default="-",
        help="Arguments as JSON text, @FILE, or - for stdin (default)"
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    from google.protobuf import json_format, message_factory

    from ._internal.canonical_json import canonical_dumps
    from .api import prepare_request
    from .errors import ProtobridgeError
    from .kernel.types import SchemaDialect
    from .registry import SchemaRegistry

    try:
        pool = load_descriptor_pool(args.descriptor_set)
        descriptor = pool.FindMessageTypeByName(args.message)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyError:
        print(f"Error: message {args.message} not found in {args.descriptor_set}", file=sys.stderr)
        sys.exit(1)
    except (DecodeError, TypeError, ValueError) as e:
        print(f"Error: invalid descriptor set {args.descriptor_set}: {e}", file=sys.stderr)
        sys.exit(1)

    dialect = SchemaDialect(args.dialect)
    try:
        registry = SchemaRegistry.compile([descriptor], extras=args.extras)
        if args.command == "schema":
            schema = registry.schema(descriptor, dialect)
            print(json.dumps(schema, indent=2, sort_keys=True))
        elif args.command == "reconcile":
            arguments = _read_input(args.input)
            message_class = message_factory.GetMessageClass(descriptor)
            message, context, report = prepare_request(registry, message_class, arguments, dialect=dialect)
            for issue in report.issues:
                print(f"Warning: {issue.code.value} at {issue.path}: {issue.message}", file=sys.stderr)
            output = {
                "message": json_format.MessageToDict(message, preserving_proto_field_name=True),
                "context": dict(context),
            }
            print(canonical_dumps(output))
    except json.JSONDecodeError as e:
        print(f"Error: input is not valid JSON: {e}", file=sys.stderr)
        sys.exit(1)
    except ProtobridgeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
