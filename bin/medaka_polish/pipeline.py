"""Run the polishing stages in order, propagating force downstream."""
from __future__ import annotations

import sys
from pathlib import Path

from medaka_polish import __version__, stages
from medaka_polish.config import PolishConfig
from medaka_polish.manifest import Manifest
from medaka_polish.models import (
    ALIGN, COMPRESS, CONSENSUS, STITCH, VARIANT,
    Artifacts, ModelInfo, RunConfig,
)
from medaka_polish.tools import StageError


def prepare_output_dir(output_dir: Path, force: bool) -> None:
    """Create the output directory, or warn about reusing an existing one.

    Nothing is deleted here; each stage overwrites its own outputs. Raises
    StageError when the path is taken by a file or cannot be created.
    """
    if output_dir.exists() and not output_dir.is_dir():
        raise StageError("output", f"Output {output_dir} exists and is not a directory.")
    if not output_dir.exists():
        try:
            output_dir.mkdir(parents=True)
        except OSError as e:
            raise StageError(
                "output", f"Could not create output {output_dir}: {e.strerror or e}"
            ) from None
        return
    if force:
        print(f"[medaka_consensus] Warning: Output {output_dir} already exists, "
              f"outputs will be overwritten.", file=sys.stderr)
    else:
        print(f"[medaka_consensus] Warning: Output {output_dir} already exists, "
              f"may use old results.", file=sys.stderr)


def run_pipeline(cfg: RunConfig, model: ModelInfo, polish: PolishConfig | None = None) -> Manifest:
    """Execute compression, alignment, consensus and final-consensus stages.

    Each stage is forced when the user asked for it or when any upstream
    stage ran in this invocation. Raises StageError on the first failure.
    """
    polish = polish or PolishConfig()
    artifacts = Artifacts(cfg.output_dir)
    prepare_output_dir(cfg.output_dir, cfg.force)

    manifest = Manifest(
        basecalls=str(cfg.basecalls),
        draft=str(cfg.draft),
        model=model.name,
        resolved_model=model.resolved,
        is_rle=model.is_rle,
        vcf_output=stages.use_vcf_path(cfg, model),
        version=__version__,
    )

    force = cfg.force
    basecalls, draft = cfg.basecalls, cfg.draft

    try:
        if model.is_rle:
            ran = stages.compress_inputs(cfg, artifacts, polish, force)
            manifest.record(COMPRESS, ran)
            force = force or ran
            basecalls = artifacts.compressed_basecalls
            draft = artifacts.compressed_draft

        ran = stages.align_basecalls(basecalls, draft, cfg, model, artifacts, polish, force)
        manifest.record(ALIGN, ran)
        force = force or ran

        ran = stages.compute_consensus_probs(cfg, model, artifacts, polish, force)
        manifest.record(CONSENSUS, ran)
        force = force or ran

        ran = stages.build_consensus(draft, cfg, model, artifacts, polish, force)
        manifest.record(VARIANT if manifest.vcf_output else STITCH, ran)
    finally:
        manifest.save(artifacts.manifest)
    return manifest
