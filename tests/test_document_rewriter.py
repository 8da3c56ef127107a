"""Document rewriting: counters, untouched fields, per-material isolation."""

import json
import logging
from pathlib import Path

from matmigrate.document import DocumentRewriter, is_texture_key
from matmigrate.document import sjson
from matmigrate.resolver import ReferenceResolver, ResolutionContext


def _rewriter(game, dest_dir, copy_local=False):
    ctx = ResolutionContext.for_map(
        "myMap",
        destination_dir=dest_dir,
        central_bundles=sorted(game.central_dir.glob("*.zip")),
        level_bundle_dir=game.levels_dir,
        copy_local=copy_local,
    )
    return DocumentRewriter(ReferenceResolver(ctx))


def test_texture_keys_are_recognized_by_suffix():
    assert is_texture_key("colorMap")
    assert is_texture_key("someFutureMap")
    assert not is_texture_key("mapTo")
    assert not is_texture_key("colormap")


def test_rewrites_fixed_and_counts_skipped(game, dest_dir):
    game.level_bundle("west_coast_usa", {"art/shapes/t.png": b"T"})
    game.central_bundle("a.zip", {"materials/terrain/x.png": b""})
    doc = {
        "rock": {
            "mapTo": "rock",
            "Stages": [
                {
                    "colorMap": "/levels/west_coast_usa/art/shapes/t.png",
                    "normalMap": "/levels/myMap/art/remote_assets/n.png",
                    "specularPower": 1.0,
                },
                {"detailMap": "/assets/old/x.png"},
            ],
        }
    }
    report = _rewriter(game, dest_dir).rewrite(doc)
    stages = doc["rock"]["Stages"]
    assert stages[0]["colorMap"] == "/levels/myMap/art/remote_assets/t.png"
    assert stages[0]["normalMap"] == "/levels/myMap/art/remote_assets/n.png"
    assert stages[0]["specularPower"] == 1.0
    assert stages[1]["detailMap"] == "/materials/terrain/x.png"
    assert doc["rock"]["mapTo"] == "rock"
    assert (report.fixed, report.skipped, report.not_found) == (2, 1, 0)


def test_not_found_and_non_root_values_are_left_alone(game, dest_dir):
    doc = {
        "m": {
            "Stages": [
                {
                    "colorMap": "/old/path/missing.png",
                    "normalMap": "relative/x.png",
                    "roughnessMap": "",
                    "opacityMap": 3,
                    "aoMap": None,
                }
            ]
        }
    }
    before = json.loads(json.dumps(doc))
    report = _rewriter(game, dest_dir).rewrite(doc)
    assert doc == before
    assert (report.fixed, report.skipped) == (0, 0)
    assert report.not_found == 1


def test_malformed_material_is_skipped_siblings_processed(
    game, dest_dir, caplog
):
    game.central_bundle("a.zip", {"m/t.png": b""})
    text = """{
      "bad": {"Stages": [{"colorMap": "/old/t.png", "colorMap": "/old/t.png"}]},
      "notAnObject": "oops",
      "good": {"Stages": [{"colorMap": "/old/t.png"}]},
    }"""
    doc = sjson.loads(text)
    caplog.set_level(logging.WARNING, logger="matmigrate")
    report = _rewriter(game, dest_dir).rewrite(doc)
    assert doc["good"]["Stages"][0]["colorMap"] == "/m/t.png"
    assert doc["bad"]["Stages"][0]["colorMap"] == "/old/t.png"
    assert report.fixed == 1
    assert report.skipped_materials == ["bad", "notAnObject"]
    warnings = [r.getMessage() for r in caplog.records]
    assert any("'bad' has duplicate keys" in m for m in warnings)
    assert any("'notAnObject' is not an object" in m for m in warnings)


def test_duplicate_material_names_last_write_wins(game, dest_dir):
    game.central_bundle("a.zip", {"m/t.png": b""})
    doc = sjson.loads(
        '{"m": {"Stages": [{"colorMap": "/old/first.png"}]},'
        ' "m": {"Stages": [{"colorMap": "/old/t.png"}]}}'
    )
    report = _rewriter(game, dest_dir).rewrite(doc)
    assert report.fixed == 1
    assert doc["m"]["Stages"][0]["colorMap"] == "/m/t.png"


def test_material_without_stages_is_ignored(game, dest_dir):
    doc = {"m": {"class": "Material"}, "n": {"Stages": "not a list"}}
    report = _rewriter(game, dest_dir).rewrite(doc)
    assert (report.fixed, report.skipped, report.skipped_materials) == (
        0,
        0,
        [],
    )


def test_rewrite_file_saves_pretty_printed(game, dest_dir, tmp_path: Path):
    game.central_bundle("a.zip", {"m/t.png": b""})
    p = tmp_path / "main.materials.json"
    p.write_text('{"m": {"Stages": [{"colorMap": "/old/t.png",}]}}')
    report = _rewriter(game, dest_dir).rewrite_file(p)
    assert report.path == p
    assert report.fixed == 1
    text = p.read_text(encoding="utf-8")
    assert json.loads(text) == {"m": {"Stages": [{"colorMap": "/m/t.png"}]}}
    assert text.startswith('{\n  "m": {')


def test_rewrite_file_without_write_leaves_disk_untouched(
    game, dest_dir, tmp_path: Path
):
    game.central_bundle("a.zip", {"m/t.png": b""})
    p = tmp_path / "main.materials.json"
    original = '{"m": {"Stages": [{"colorMap": "/old/t.png"}]}}'
    p.write_text(original)
    report = _rewriter(game, dest_dir).rewrite_file(p, write=False)
    assert report.fixed == 1
    assert p.read_text() == original
