"""Provenance manifest written alongside the pipeline outputs."""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class Manifest:
    """Record of one pipeline invocation.

    Informational only: skip decisions are made from the artifacts
    themselves, never from this file.
    """

    basecalls: str
    draft: str
    model: str
    resolved_model: str = ""
    is_rle: bool = False
    vcf_output: bool = False
    version: str = ""
    timestamp: str = ""
    stages_run: list[str] = field(default_factory=list)
    stages_skipped: list[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = time.strftime("%Y-%m-%dT%H:%M:%S")

    def record(self, stage: str, ran: bool) -> None:
        target = self.stages_run if ran else self.stages_skipped
        if stage not in target:
            target.append(stage)

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.__dict__, f, indent=2, default=str)
