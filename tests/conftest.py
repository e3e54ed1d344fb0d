"""Shared fixtures: a fake medaka toolchain standing in for the external programs."""
from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from medaka_polish.tools import StageError

LIST_MODELS_OUTPUT = (
    "Available: r941_min_high_g303, r941_prom_high_g303, r941_min_high_g303_rle\n"
    "Default consensus: r941_min_high_g303\n"
)

QUERIES = {
    "medaka_version_report",
    "medaka tools list_models",
    "medaka tools resolve_model",
    "medaka tools is_rle_model",
    "medaka tools get_alignment_params",
}


def tool_key(cmd: list[str]) -> str:
    """Short name of a command: 'mini_align', 'medaka stitch', 'medaka tools X'."""
    if Path(cmd[0]).name != "medaka":
        return Path(cmd[0]).name
    if cmd[1] == "tools":
        return f"medaka tools {cmd[2]}"
    return f"medaka {cmd[1]}"


class FakeToolbox:
    """Records invocations and writes the files each real tool would write."""

    def __init__(self):
        self.calls: list[list[str]] = []
        self.rle = False
        self.fail: str | None = None

    def keys(self) -> list[str]:
        return [tool_key(c) for c in self.calls]

    def stage_keys(self) -> list[str]:
        return [k for k in self.keys() if k not in QUERIES]

    def command(self, key: str) -> list[str]:
        for c in self.calls:
            if tool_key(c) == key:
                return c
        raise AssertionError(f"{key} was not invoked; calls: {self.keys()}")

    def reset(self) -> None:
        self.calls.clear()

    # -- subprocess.run replacement ------------------------------------------

    def run(self, cmd, *args, **kwargs):
        cmd = [str(c) for c in cmd]
        self.calls.append(cmd)
        key = tool_key(cmd)
        stdout = ""

        if key == self.fail:
            if kwargs.get("check"):
                raise subprocess.CalledProcessError(1, cmd, output="", stderr="boom")
            return subprocess.CompletedProcess(cmd, 1, "", "boom")

        if key == "medaka_version_report":
            stdout = "medaka 1.0.3\nAll dependencies satisfied.\n"
        elif key == "medaka tools list_models":
            stdout = LIST_MODELS_OUTPUT
        elif key == "medaka tools resolve_model":
            stdout = cmd[-1] + "\n"
        elif key == "medaka tools is_rle_model":
            return subprocess.CompletedProcess(cmd, 0 if self.rle else 1, "", "")
        elif key == "medaka tools get_alignment_params":
            stdout = "-x map-ont\n"
        elif key == "mini_align":
            prefix = cmd[cmd.index("-p") + 1]
            Path(prefix + ".bam").write_bytes(b"BAM")
        elif key in ("medaka consensus", "medaka stitch"):
            Path(cmd[3]).write_bytes(b"data")
        elif key == "medaka variant":
            Path(cmd[4]).write_text("##fileformat=VCFv4.2\n")
        elif key == "bcftools":
            Path(cmd[cmd.index("-c") + 1]).write_text("chain\n")
            kwargs["stdout"].write(b">ctg1\nACGT\n")
        elif key == "medaka tools polished_regions":
            Path(cmd[4]).write_text("ctg1\t0\t4\n")
        return subprocess.CompletedProcess(cmd, 0, stdout, "")

    # -- tools.run_pipe replacement ------------------------------------------

    def pipe(self, producer, consumer, output, stage, message, cwd=None):
        producer = [str(c) for c in producer]
        self.calls.append(producer)
        if tool_key(producer) == self.fail:
            raise StageError(stage, message)
        self.calls.append([str(c) for c in consumer])
        Path(output).write_bytes(b"\x1f\x8b")

    # -- tools.compress_and_index_vcf replacement ----------------------------

    def index_vcf(self, vcf):
        self.calls.append(["tabix", str(vcf)])
        gz = Path(f"{vcf}.gz")
        gz.write_bytes(b"\x1f\x8b")
        Path(f"{gz}.tbi").write_bytes(b"TBI")
        Path(vcf).unlink()
        return gz


@pytest.fixture
def toolbox(monkeypatch):
    box = FakeToolbox()
    monkeypatch.setattr("medaka_polish.tools.subprocess.run", box.run)
    monkeypatch.setattr("medaka_polish.tools.run_pipe", box.pipe)
    monkeypatch.setattr("medaka_polish.tools.compress_and_index_vcf", box.index_vcf)
    return box


@pytest.fixture
def inputs(tmp_path):
    """A basecalls fastq and a draft fasta on disk."""
    basecalls = tmp_path / "reads.fastq"
    basecalls.write_text("@r1\nACGTACGT\n+\nIIIIIIII\n")
    draft = tmp_path / "draft.fasta"
    draft.write_text(">ctg1\nACGTACGT\n")
    return basecalls, draft
