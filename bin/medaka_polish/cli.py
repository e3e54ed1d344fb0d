#!/usr/bin/env python3
"""medaka_consensus: polish a draft assembly with medaka."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from medaka_polish import __version__, tools
from medaka_polish.config import ConfigError, load_config
from medaka_polish.models import ModelInfo, RunConfig
from medaka_polish.pipeline import run_pipeline
from medaka_polish.tools import StageError, VersionCheckError


class _UsageParser(argparse.ArgumentParser):
    """ArgumentParser that prints the full help and exits 1 on bad usage."""

    def error(self, message):
        self.print_help(sys.stderr)
        self.exit(1, f"\n{self.prog}: error: {message}\n")


def _positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: '{value}'") from None
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {n}")
    return n


def _single_char(value: str) -> str:
    if len(value) != 1:
        raise argparse.ArgumentTypeError(f"fill character must be a single character, got '{value}'")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = _UsageParser(
        prog="medaka_consensus",
        description="Polish a draft assembly against basecalls with medaka. "
                    "Existing outputs in the output directory are reused unless -f is given.",
    )
    parser.add_argument("-i", dest="basecalls", type=Path, required=True,
                        help="fastx input basecalls (required)")
    parser.add_argument("-d", dest="draft", type=Path, required=True,
                        help="fasta input assembly (required)")
    parser.add_argument("-o", dest="output", type=Path, default=Path("medaka"),
                        help="output folder [%(default)s]")
    parser.add_argument("-m", dest="model", default=None,
                        help="medaka model name, or a model file from 'medaka train' "
                             "[default consensus model]")
    parser.add_argument("-v", dest="vcf", action="store_true",
                        help="also write a VCF, chain file and polished-regions bed "
                             "(not available for run-length models)")
    parser.add_argument("-f", dest="force", action="store_true",
                        help="force overwrite of outputs (default reuses existing outputs)")
    parser.add_argument("-x", dest="force_index", action="store_true",
                        help="force recreation of the alignment index")
    parser.add_argument("-t", dest="threads", type=_positive_int, default=1,
                        help="number of threads with which to create features [%(default)s]")
    parser.add_argument("-b", dest="batch_size", type=_positive_int, default=100,
                        help="batch size, controls memory use [%(default)s]")
    gaps = parser.add_mutually_exclusive_group()
    gaps.add_argument("-g", dest="no_fill", action="store_true",
                      help="don't fill gaps in consensus with draft sequence")
    gaps.add_argument("-r", dest="fill_char", type=_single_char, default=None,
                      help="fill gaps with this character instead of draft sequence")
    parser.add_argument("-c", dest="config", type=Path, default=None,
                        help="TOML file naming the external tools to run")
    parser.add_argument("-V", "--version", action="version",
                        version=f"%(prog)s {__version__}")
    return parser


def _resolve_model_arg(model: str) -> str:
    """Make a model given as a file path absolute; leave names alone."""
    path = Path(model)
    if path.is_file():
        return str(path.resolve())
    return model


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        polish = load_config(args.config)
    except ConfigError as e:
        sys.exit(f"[medaka_consensus] Error: {e}")

    basecalls = args.basecalls.resolve()
    draft = args.draft.resolve()
    for label, path in [("basecalls", basecalls), ("draft", draft)]:
        if not path.is_file():
            sys.exit(f"[medaka_consensus] Error: {label} file not found: {path}")

    try:
        print(tools.version_report(polish.tools))
    except VersionCheckError as e:
        sys.exit(f"[medaka_consensus] Error: version check failed.\n{e}")

    try:
        available, default = tools.list_models(polish.tools)
        model = _resolve_model_arg(args.model) if args.model else default
        if not model:
            sys.exit("[medaka_consensus] Error: no model given and no default model available.")
        if available:
            print(f"[medaka_consensus] Available models: {', '.join(available)}")

        resolved = tools.resolve_model(polish.tools, model)
        info = ModelInfo(
            name=model,
            resolved=resolved,
            is_rle=tools.is_rle_model(polish.tools, resolved),
        )
        print(f"[medaka_consensus] Using model: {info.resolved}"
              f"{' (run-length encoded)' if info.is_rle else ''}")

        cfg = RunConfig(
            basecalls=basecalls,
            draft=draft,
            output_dir=args.output.resolve(),
            model=info.resolved,
            threads=args.threads,
            batch_size=args.batch_size,
            force=args.force,
            vcf_output=args.vcf,
            fill_gaps=not args.no_fill,
            fill_char=args.fill_char,
            force_index=args.force_index,
        )
        run_pipeline(cfg, info, polish)
    except StageError as e:
        sys.exit(f"[medaka_consensus] Error: {e.message}")

    print("[medaka_consensus] All done.")


if __name__ == "__main__":
    main()
