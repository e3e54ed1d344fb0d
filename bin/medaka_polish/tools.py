"""Wrappers around the external programs the polishing pipeline drives.

Command builders are pure and return argument lists; the ``run_*`` helpers
execute them and turn process failures into ``StageError``.
"""
from __future__ import annotations

import shlex
import subprocess
from pathlib import Path

from medaka_polish.config import ToolPaths


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class StageError(Exception):
    """An external tool failed while running a pipeline stage."""

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage
        self.message = message


class VersionCheckError(Exception):
    """The tool version / compatibility report failed."""


# ---------------------------------------------------------------------------
# Process runners
# ---------------------------------------------------------------------------


def _launch_error(cmd: list[str], e: OSError) -> str:
    """Describe why *cmd* could not be started."""
    if isinstance(e, FileNotFoundError) and e.filename in (None, cmd[0]):
        return f"{cmd[0]}: command not found"
    return f"{cmd[0]}: {e.strerror or e}"


def run_command(
    cmd: list[str],
    stage: str,
    message: str,
    cwd: Path | None = None,
    stdout_path: Path | None = None,
) -> None:
    """Run *cmd* to completion, optionally writing its stdout to a file.

    Raises StageError with *message* if the executable cannot be started or
    exits nonzero. A partially written *stdout_path* is removed on failure.
    """
    try:
        if stdout_path is not None:
            with open(stdout_path, "wb") as out_fh:
                subprocess.run(cmd, stdout=out_fh, cwd=cwd, check=True)
        else:
            subprocess.run(cmd, cwd=cwd, check=True)
    except subprocess.CalledProcessError as e:
        _discard(stdout_path)
        raise StageError(
            stage, f"{message} ({cmd[0]} exited with status {e.returncode})"
        ) from None
    except OSError as e:
        _discard(stdout_path)
        raise StageError(stage, f"{message} ({_launch_error(cmd, e)})") from None


def _discard(path: Path | None) -> None:
    if path is not None and Path(path).is_file():
        Path(path).unlink(missing_ok=True)


def run_pipe(
    producer: list[str],
    consumer: list[str],
    output: Path,
    stage: str,
    message: str,
    cwd: Path | None = None,
) -> None:
    """Run ``producer | consumer > output``; both sides must exit 0.

    *output* is removed when either side fails.
    """
    try:
        out_fh = open(output, "wb")
    except OSError as e:
        raise StageError(stage, f"{message} ({output}: {e.strerror or e})") from None

    with out_fh:
        try:
            prod = subprocess.Popen(producer, stdout=subprocess.PIPE, cwd=cwd)
        except OSError as e:
            out_fh.close()
            _discard(output)
            raise StageError(stage, f"{message} ({_launch_error(producer, e)})") from None
        try:
            cons = subprocess.Popen(consumer, stdin=prod.stdout, stdout=out_fh, cwd=cwd)
        except OSError as e:
            prod.kill()
            prod.wait()
            out_fh.close()
            _discard(output)
            raise StageError(stage, f"{message} ({_launch_error(consumer, e)})") from None
        # Let the producer see SIGPIPE if the consumer exits early
        prod.stdout.close()
        cons_rc = cons.wait()
        prod_rc = prod.wait()

    # A failed consumer also kills the producer, so report it first
    if cons_rc != 0:
        _discard(output)
        raise StageError(stage, f"{message} ({consumer[0]} exited with status {cons_rc})")
    if prod_rc != 0:
        _discard(output)
        raise StageError(stage, f"{message} ({producer[0]} exited with status {prod_rc})")


# ---------------------------------------------------------------------------
# Version and model queries
# ---------------------------------------------------------------------------


def version_report(tools: ToolPaths) -> str:
    """Run the version/compatibility report and return its output."""
    try:
        result = subprocess.run(
            [tools.version_report], capture_output=True, text=True,
        )
    except OSError as e:
        raise VersionCheckError(_launch_error([tools.version_report], e)) from None
    report = (result.stdout + result.stderr).strip()
    if result.returncode != 0:
        raise VersionCheckError(report or f"{tools.version_report} exited with status {result.returncode}")
    return report


def parse_model_listing(text: str) -> tuple[list[str], str | None]:
    """Parse ``medaka tools list_models`` output into (available, default).

    Expected lines::

        Available: r941_min_high_g303, r941_min_fast_g303, ...
        Default consensus: r941_min_high_g303
    """
    available: list[str] = []
    default = None
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip().lower()
        if key == "available":
            available = [m.strip() for m in value.split(",") if m.strip()]
        elif key == "default consensus":
            default = value.strip() or None
    return available, default


def list_models(tools: ToolPaths) -> tuple[list[str], str | None]:
    """Query the bundled models and the default consensus model."""
    cmd = [tools.medaka, "tools", "list_models"]
    return parse_model_listing(_capture(cmd, "Failed to list available models."))


def resolve_model(tools: ToolPaths, model: str) -> str:
    """Resolve a model name or file to the value the other tools accept."""
    cmd = [tools.medaka, "tools", "resolve_model", "--model", model]
    resolved = _capture(cmd, f"Failed to resolve model '{model}'.").strip()
    if not resolved:
        raise StageError("model", f"Failed to resolve model '{model}'.")
    return resolved


def is_rle_model(tools: ToolPaths, model: str) -> bool:
    """True when the model works on run-length (homopolymer) compressed reads.

    The query answers through its exit status: 0 for yes, 1 with nothing on
    stderr for no. Anything else means the query itself failed.
    """
    cmd = [tools.medaka, "tools", "is_rle_model", "--model", model]
    message = f"Failed to query model '{model}'."
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise StageError("model", f"{message} ({_launch_error(cmd, e)})") from None
    if result.returncode == 0:
        return True
    detail = (result.stderr or "").strip()
    if result.returncode == 1 and not detail:
        return False
    if not detail:
        detail = f"(exited with status {result.returncode})"
    raise StageError("model", f"{message} {detail}")


def alignment_params(tools: ToolPaths, model: str) -> list[str]:
    """Model-specific aligner options, split into arguments."""
    cmd = [tools.medaka, "tools", "get_alignment_params", "--model", model]
    return shlex.split(_capture(cmd, "Failed to get alignment parameters.", stage="align"))


def _capture(cmd: list[str], message: str, stage: str = "model") -> str:
    """Run a query command and return its stdout."""
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or "").strip()
        raise StageError(stage, f"{message} {detail}".strip()) from None
    except OSError as e:
        raise StageError(stage, f"{message} ({_launch_error(cmd, e)})") from None
    return result.stdout


# ---------------------------------------------------------------------------
# Command builders
# ---------------------------------------------------------------------------


def build_fastrle_command(tools: ToolPaths, path: Path) -> list[str]:
    """Run-length compress a fasta/fastq file to stdout."""
    return [tools.medaka, "fastrle", str(path)]


def build_bgzip_command(tools: ToolPaths) -> list[str]:
    """Block-compress stdin to stdout."""
    return [tools.bgzip, "-c"]


def build_align_command(
    tools: ToolPaths,
    draft: Path,
    basecalls: Path,
    prefix: Path,
    threads: int,
    params: list[str] | None = None,
    force_index: bool = False,
) -> list[str]:
    """Build the mini_align command producing ``<prefix>.bam``."""
    cmd = [
        tools.mini_align, "-P", "-m",
        "-r", str(draft),
        "-i", str(basecalls),
        "-t", str(threads),
        "-p", str(prefix),
    ]
    if force_index:
        cmd.append("-f")
    if params:
        cmd.extend(params)
    return cmd


def build_consensus_command(
    tools: ToolPaths,
    bam: Path,
    probs: Path,
    model: str,
    batch_size: int,
    threads: int,
) -> list[str]:
    return [
        tools.medaka, "consensus", str(bam), str(probs),
        "--model", model,
        "--batch_size", str(batch_size),
        "--threads", str(threads),
    ]


def build_stitch_command(
    tools: ToolPaths,
    probs: Path,
    consensus: Path,
    threads: int,
    draft: Path | None = None,
    fill_gaps: bool = True,
    fill_char: str | None = None,
) -> list[str]:
    """Build the stitch command.

    The draft is only passed when gaps may be filled from it; without a
    draft the stitcher emits polished regions only.
    """
    cmd = [
        tools.medaka, "stitch", str(probs), str(consensus),
        "--threads", str(threads),
    ]
    if draft is not None:
        cmd.extend(["--draft", str(draft)])
        if not fill_gaps:
            cmd.append("--no-fillgaps")
        elif fill_char is not None:
            cmd.extend(["--fill_char", fill_char])
    return cmd


def build_variant_command(tools: ToolPaths, draft: Path, probs: Path, vcf: Path) -> list[str]:
    return [tools.medaka, "variant", str(draft), str(probs), str(vcf)]


def build_apply_command(tools: ToolPaths, draft: Path, vcf_gz: Path, chain: Path) -> list[str]:
    """bcftools consensus; the polished fasta is written to stdout."""
    return [
        tools.bcftools, "consensus",
        "-f", str(draft),
        str(vcf_gz),
        "-c", str(chain),
    ]


def build_polished_regions_command(tools: ToolPaths, probs: Path, bed: Path) -> list[str]:
    return [tools.medaka, "tools", "polished_regions", str(probs), str(bed)]


# ---------------------------------------------------------------------------
# In-process helpers (pysam)
# ---------------------------------------------------------------------------


def compress_and_index_vcf(vcf: Path) -> Path:
    """Block-compress and tabix-index a VCF, returning the ``.vcf.gz`` path.

    The uncompressed VCF is replaced by the compressed one.
    """
    import pysam

    try:
        out = pysam.tabix_index(str(vcf), preset="vcf", force=True)
    except (OSError, ValueError) as e:
        raise StageError("variant", f"Failed to compress and index {vcf.name}: {e}") from None
    return Path(out)


def count_mapped_reads(bam: Path) -> int:
    """Number of mapped reads, read from the BAM index statistics."""
    import pysam

    with pysam.AlignmentFile(str(bam), "rb") as f:
        return f.mapped
