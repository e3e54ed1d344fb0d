"""Tests for the provenance manifest."""
from __future__ import annotations

import json

from medaka_polish.manifest import Manifest


class TestManifest:

    def test_create_and_save(self, tmp_path):
        m = Manifest(
            basecalls="/r.fq", draft="/d.fa", model="r941_min_high_g303",
            resolved_model="/models/r941_min_high_g303_model.hdf5",
        )
        m.record("align", ran=True)
        m.record("consensus", ran=False)
        path = tmp_path / "out" / "polish_manifest.json"
        m.save(path)
        data = json.loads(path.read_text())
        assert data["model"] == "r941_min_high_g303"
        assert data["resolved_model"] == "/models/r941_min_high_g303_model.hdf5"
        assert data["stages_run"] == ["align"]
        assert data["stages_skipped"] == ["consensus"]
        assert data["timestamp"]

    def test_record_is_idempotent(self):
        m = Manifest(basecalls="/r.fq", draft="/d.fa", model="m")
        m.record("align", ran=True)
        m.record("align", ran=True)
        assert m.stages_run == ["align"]
