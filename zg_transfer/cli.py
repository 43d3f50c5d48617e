"""Command-line entry point: split, upload and rebuild large files on 0G Storage."""

import argparse
import logging
import sys
from typing import List, Optional

from .config import TransferConfig
from .errors import TransferError
from .logging_config import setup_logging
from .pipeline import download_phase, run_all, split_phase, upload_phase

logger = logging.getLogger("zg_transfer")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="zg-transfer", description=__doc__)
    parser.add_argument("--env-file", help="path to a .env file (default: ./.env)")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--input", dest="input_file", help="file to split / original of the reconstruction")
    common.add_argument("--output-dir", help="directory for fragments and the manifest")
    common.add_argument("--fragment-size", type=int, help="fragment size in bytes")
    common.add_argument("--max-fragments", type=int, help="maximum number of fragments")
    common.add_argument("--workers", dest="max_workers", type=int, help="concurrent uploads")
    common.add_argument("--backend", help="storage backend: 0g or local")
    common.add_argument("--strict-manifest", dest="manifest_strict", action="store_true", default=None,
                        help="fail on malformed manifest lines instead of skipping them")
    common.add_argument("--verify-proof", action="store_true", default=None,
                        help="ask the backend to verify proofs on download")

    manifest = argparse.ArgumentParser(add_help=False)
    manifest.add_argument("--manifest", help="manifest path (default: <output-dir>/hash_map.txt)")
    output = argparse.ArgumentParser(add_help=False)
    output.add_argument("--output", help="reconstructed file (default: <input>.reconstructed)")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("split", parents=[common], help="split the input file into fragments")
    sub.add_parser("upload", parents=[common, manifest], help="split, upload and write the manifest")
    sub.add_parser("download", parents=[common, manifest, output], help="rebuild the file from an existing manifest")
    sub.add_parser("run", parents=[common, manifest, output], help="split, upload, download and compare")
    return parser


def _config_from_args(args: argparse.Namespace) -> TransferConfig:
    config = TransferConfig.from_env(args.env_file)
    return config.with_overrides(
        input_file=args.input_file,
        output_dir=args.output_dir,
        fragment_size=args.fragment_size,
        max_fragments=args.max_fragments,
        max_workers=args.max_workers,
        backend=args.backend.lower() if args.backend else None,
        manifest_strict=args.manifest_strict,
        verify_proof=args.verify_proof,
    )


def run_command(args: argparse.Namespace) -> int:
    config = _config_from_args(args)

    if args.command == "split":
        split_phase(config)
    elif args.command == "upload":
        fragments = split_phase(config)
        upload_phase(config, fragments, manifest_path=args.manifest)
    elif args.command == "download":
        download_phase(config, manifest_path=args.manifest, output_path=args.output)
    elif args.command == "run":
        report = run_all(config, manifest_path=args.manifest, output_path=args.output)
        if not report.verified:
            return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging("zg_transfer", log_level="DEBUG" if args.debug else None)

    try:
        return run_command(args)
    except TransferError as e:
        logger.error("%s failed: %s", e.phase or args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
