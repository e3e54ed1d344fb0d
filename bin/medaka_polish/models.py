"""Data models for medaka-polish."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

# Stage names, in pipeline order
COMPRESS = "compress"
ALIGN = "align"
CONSENSUS = "consensus"
STITCH = "stitch"
VARIANT = "variant"


@dataclass(frozen=True)
class RunConfig:
    """Resolved invocation options. All paths are absolute."""

    basecalls: Path
    draft: Path
    output_dir: Path
    model: str
    threads: int = 1
    batch_size: int = 100
    force: bool = False
    vcf_output: bool = False
    fill_gaps: bool = True
    fill_char: str | None = None
    force_index: bool = False


@dataclass(frozen=True)
class Artifacts:
    """Fixed artifact layout inside an output directory."""

    output_dir: Path

    @property
    def compressed_basecalls(self) -> Path:
        return self.output_dir / "basecalls.fastrle.gz"

    @property
    def compressed_draft(self) -> Path:
        return self.output_dir / "draft.fastrle.gz"

    @property
    def alignment_prefix(self) -> Path:
        return self.output_dir / "calls_to_draft"

    @property
    def alignment(self) -> Path:
        return self.output_dir / "calls_to_draft.bam"

    @property
    def alignment_index(self) -> Path:
        return self.output_dir / "calls_to_draft.bam.bai"

    @property
    def probs(self) -> Path:
        return self.output_dir / "consensus_probs.hdf"

    @property
    def consensus(self) -> Path:
        return self.output_dir / "consensus.fasta"

    @property
    def gaps_bed(self) -> Path:
        return self.output_dir / "consensus.fasta.gaps_in_draft_coords.bed"

    @property
    def variants(self) -> Path:
        return self.output_dir / "consensus.vcf"

    @property
    def variants_gz(self) -> Path:
        return self.output_dir / "consensus.vcf.gz"

    @property
    def variants_index(self) -> Path:
        return self.output_dir / "consensus.vcf.gz.tbi"

    @property
    def chain(self) -> Path:
        return self.output_dir / "consensus_chain.chain"

    @property
    def polished_bed(self) -> Path:
        return self.output_dir / "consensus.fasta.polished_regions_draft_coords.bed"

    @property
    def manifest(self) -> Path:
        return self.output_dir / "polish_manifest.json"

    def variant_outputs(self) -> list[Path]:
        """Files written by the variant path, removed before it re-runs."""
        return [
            self.variants,
            self.variants_gz,
            self.variants_index,
            self.chain,
            self.polished_bed,
        ]


@dataclass
class ModelInfo:
    """What the model queries reported about the selected model."""

    name: str
    resolved: str
    is_rle: bool
