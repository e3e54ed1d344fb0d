"""Pipeline stages.

Every stage takes a ``force`` flag and returns whether it actually ran. A
stage is skipped when its output already exists and ``force`` is false.
Failures raise ``StageError``.
"""
from __future__ import annotations

from pathlib import Path

from medaka_polish import tools
from medaka_polish.config import STITCH_THREAD_CAP, PolishConfig
from medaka_polish.models import (
    ALIGN, COMPRESS, CONSENSUS, STITCH, VARIANT,
    Artifacts, ModelInfo, RunConfig,
)
from medaka_polish.tools import StageError


def _require_output(path: Path, stage: str, message: str) -> None:
    if not path.exists():
        raise StageError(stage, f"{message} ({path.name} was not written)")


# ---------------------------------------------------------------------------
# 1. Run-length compression
# ---------------------------------------------------------------------------


def compress_inputs(
    cfg: RunConfig, artifacts: Artifacts, polish: PolishConfig, force: bool,
) -> bool:
    """Run-length compress basecalls and draft for an RLE model."""
    if (
        artifacts.compressed_basecalls.exists()
        and artifacts.compressed_draft.exists()
        and not force
    ):
        print(f"[medaka_consensus] Not compressing basecalls and draft, "
              f"{artifacts.compressed_basecalls.name} and "
              f"{artifacts.compressed_draft.name} exist.")
        return False

    message = "Failed to compress basecalls and draft."
    bgzip = tools.build_bgzip_command(polish.tools)
    for source, target in [
        (cfg.basecalls, artifacts.compressed_basecalls),
        (cfg.draft, artifacts.compressed_draft),
    ]:
        print(f"[medaka_consensus] Compressing {source.name} -> {target.name}")
        tools.run_pipe(
            tools.build_fastrle_command(polish.tools, source), bgzip,
            target, COMPRESS, message, cwd=artifacts.output_dir,
        )
    return True


# ---------------------------------------------------------------------------
# 2. Alignment
# ---------------------------------------------------------------------------


def align_basecalls(
    basecalls: Path,
    draft: Path,
    cfg: RunConfig,
    model: ModelInfo,
    artifacts: Artifacts,
    polish: PolishConfig,
    force: bool,
) -> bool:
    """Align basecalls to the draft, producing a sorted and indexed BAM."""
    if artifacts.alignment.exists() and not force:
        print(f"[medaka_consensus] Not aligning basecalls to draft, "
              f"{artifacts.alignment.name} exists.")
        return False

    message = "Failed to run alignment of reads to draft."
    params = tools.alignment_params(polish.tools, model.resolved)
    cmd = tools.build_align_command(
        polish.tools, draft, basecalls, artifacts.alignment_prefix,
        cfg.threads, params, force_index=cfg.force_index,
    )
    print("[medaka_consensus] Aligning basecalls to draft")
    tools.run_command(cmd, ALIGN, message, cwd=artifacts.output_dir)
    _require_output(artifacts.alignment, ALIGN, message)

    if artifacts.alignment_index.exists():
        mapped = tools.count_mapped_reads(artifacts.alignment)
        print(f"[medaka_consensus] {artifacts.alignment.name}: {mapped} mapped reads")
    return True


# ---------------------------------------------------------------------------
# 3. Consensus probabilities
# ---------------------------------------------------------------------------


def compute_consensus_probs(
    cfg: RunConfig,
    model: ModelInfo,
    artifacts: Artifacts,
    polish: PolishConfig,
    force: bool,
) -> bool:
    """Run network inference over the alignment into the probability store."""
    probs = artifacts.probs
    if probs.exists() and not force:
        print(f"[medaka_consensus] Not running medaka consensus, {probs.name} exists.")
        return False

    probs.unlink(missing_ok=True)
    message = "Failed to run medaka consensus."
    cmd = tools.build_consensus_command(
        polish.tools, artifacts.alignment, probs,
        model.resolved, cfg.batch_size, cfg.threads,
    )
    print(f"[medaka_consensus] Running medaka consensus -> {probs.name}")
    tools.run_command(cmd, CONSENSUS, message, cwd=artifacts.output_dir)
    _require_output(probs, CONSENSUS, message)
    return True


# ---------------------------------------------------------------------------
# 4. Final consensus
# ---------------------------------------------------------------------------


def use_vcf_path(cfg: RunConfig, model: ModelInfo) -> bool:
    """Variant calling is only available for non run-length models."""
    return cfg.vcf_output and not model.is_rle


def build_consensus(
    draft: Path,
    cfg: RunConfig,
    model: ModelInfo,
    artifacts: Artifacts,
    polish: PolishConfig,
    force: bool,
) -> bool:
    """Produce the polished assembly by stitching or by applying variants."""
    if artifacts.consensus.exists() and not force:
        print(f"[medaka_consensus] Consensus {artifacts.consensus.name} exists, "
              f"remove {artifacts.output_dir} and try again.")
        return False

    if use_vcf_path(cfg, model):
        _variant_and_apply(draft, artifacts, polish)
    else:
        _stitch(draft, cfg, model, artifacts, polish)
    return True


def _stitch(
    draft: Path,
    cfg: RunConfig,
    model: ModelInfo,
    artifacts: Artifacts,
    polish: PolishConfig,
) -> None:
    threads = min(STITCH_THREAD_CAP, polish.stitch.max_threads, cfg.threads)
    # RLE drafts are in compressed space, so never fill from them
    stitch_draft = None if model.is_rle else draft
    cmd = tools.build_stitch_command(
        polish.tools, artifacts.probs, artifacts.consensus, threads,
        draft=stitch_draft, fill_gaps=cfg.fill_gaps, fill_char=cfg.fill_char,
    )
    message = "Failed to stitch consensus chunks."
    print(f"[medaka_consensus] Stitching consensus -> {artifacts.consensus.name}")
    tools.run_command(cmd, STITCH, message, cwd=artifacts.output_dir)
    _require_output(artifacts.consensus, STITCH, message)

    print(f"[medaka_consensus] Polished assembly written to {artifacts.consensus}")
    if stitch_draft is not None:
        print(f"[medaka_consensus] Gaps in draft which were not polished are in "
              f"{artifacts.gaps_bed}")


def _variant_and_apply(draft: Path, artifacts: Artifacts, polish: PolishConfig) -> None:
    for stale in artifacts.variant_outputs():
        stale.unlink(missing_ok=True)

    cmd = tools.build_variant_command(polish.tools, draft, artifacts.probs, artifacts.variants)
    message = "Failed to run medaka variant."
    print(f"[medaka_consensus] Calling variants -> {artifacts.variants.name}")
    tools.run_command(cmd, VARIANT, message, cwd=artifacts.output_dir)
    _require_output(artifacts.variants, VARIANT, message)

    vcf_gz = tools.compress_and_index_vcf(artifacts.variants)

    cmd = tools.build_apply_command(polish.tools, draft, vcf_gz, artifacts.chain)
    print(f"[medaka_consensus] Applying variants to draft -> {artifacts.consensus.name}")
    tools.run_command(
        cmd, VARIANT, "Failed to apply variants to draft.",
        cwd=artifacts.output_dir, stdout_path=artifacts.consensus,
    )

    cmd = tools.build_polished_regions_command(
        polish.tools, artifacts.probs, artifacts.polished_bed,
    )
    try:
        tools.run_command(
            cmd, VARIANT, "Failed to annotate polished regions.",
            cwd=artifacts.output_dir,
        )
    except StageError:
        # consensus.fasta marks the stage complete, so drop it
        artifacts.consensus.unlink(missing_ok=True)
        raise

    print(f"[medaka_consensus] Variants written to {vcf_gz}")
    print(f"[medaka_consensus] Polished assembly written to {artifacts.consensus}, "
          f"chain file mapping draft to consensus coordinates is {artifacts.chain}")
    print(f"[medaka_consensus] Polished regions (draft coordinates) are in "
          f"{artifacts.polished_bed}")
