"""Resolution order tests: already-local, level bundle, central passes."""

from pathlib import Path

from matmigrate.archive import BundleAccessor, BundleIndex
from matmigrate.resolver import (
    Outcome,
    ReferenceResolver,
    ResolutionContext,
    ResolutionResult,
    SkipReason,
    Strategy,
)


def _ctx(game, dest_dir: Path, copy_local: bool = False, bundles=None):
    if bundles is None:
        bundles = sorted(game.central_dir.glob("*.zip"))
    return ResolutionContext.for_map(
        "myMap",
        destination_dir=dest_dir,
        central_bundles=bundles,
        level_bundle_dir=game.levels_dir,
        copy_local=copy_local,
    )


def test_level_bundle_reference_is_copied_into_target_map(game, dest_dir):
    game.level_bundle(
        "west_coast_usa", {"levels/west_coast_usa/art/shapes/t.png": b"T"}
    )
    resolver = ReferenceResolver(_ctx(game, dest_dir))
    result = resolver.resolve("/levels/west_coast_usa/art/shapes/t.png")
    assert result == ResolutionResult.fixed(
        "/levels/myMap/art/remote_assets/t.png", Strategy.LEVEL_BUNDLE, "t.png"
    )
    assert (dest_dir / "t.png").read_bytes() == b"T"


def test_reference_under_target_map_is_skipped(game, dest_dir):
    game.central_bundle("a.zip", {"x/t.png": b""})
    resolver = ReferenceResolver(_ctx(game, dest_dir))
    result = resolver.resolve("/levels/myMap/art/remote_assets/t.png")
    assert result.outcome is Outcome.SKIPPED
    assert result.reason is SkipReason.ALREADY_LOCAL
    assert result.new_reference is None


def test_target_map_comparison_ignores_case(game, dest_dir):
    resolver = ReferenceResolver(_ctx(game, dest_dir))
    assert (
        resolver.resolve("/LEVELS/mymap/art/t.png").outcome is Outcome.SKIPPED
    )


def test_resolving_a_fixed_reference_again_is_skipped(game, dest_dir):
    game.level_bundle("other", {"art/t.png": b"T"})
    resolver = ReferenceResolver(_ctx(game, dest_dir))
    first = resolver.resolve("/levels/other/art/t.png")
    assert first.is_fixed
    second = resolver.resolve(first.new_reference)
    assert second == ResolutionResult.already_local()


def test_level_bundle_wins_over_central_bundle(game, dest_dir):
    game.level_bundle("x", {"art/t.png": b"level"})
    game.central_bundle("a.zip", {"materials/t.png": b"central"})
    resolver = ReferenceResolver(_ctx(game, dest_dir, copy_local=False))
    result = resolver.resolve("/levels/x/art/t.png")
    assert result.strategy is Strategy.LEVEL_BUNDLE
    assert result.new_reference == "/levels/myMap/art/remote_assets/t.png"
    assert (dest_dir / "t.png").read_bytes() == b"level"


def test_missing_level_bundle_falls_through_to_central(game, dest_dir):
    game.central_bundle("a.zip", {"materials/terrain/t.png": b""})
    resolver = ReferenceResolver(_ctx(game, dest_dir))
    result = resolver.resolve("/levels/gone/art/t.png")
    assert result.strategy is Strategy.CENTRAL_EXACT
    assert result.new_reference == "/materials/terrain/t.png"


def test_central_reference_keeps_bundle_subdirectory(game, dest_dir):
    game.central_bundle("a.zip", {"materials/terrain/x.png": b""})
    resolver = ReferenceResolver(_ctx(game, dest_dir))
    result = resolver.resolve("/assets/old/x.png")
    assert result.new_reference == "/materials/terrain/x.png"
    assert not (dest_dir / "x.png").exists()


def test_central_match_is_copied_in_local_mode(game, dest_dir):
    game.central_bundle("a.zip", {"materials/terrain/x.png": b"X"})
    resolver = ReferenceResolver(_ctx(game, dest_dir, copy_local=True))
    result = resolver.resolve("/assets/old/x.png")
    assert result.new_reference == "/levels/myMap/art/remote_assets/x.png"
    assert (dest_dir / "x.png").read_bytes() == b"X"


def test_first_central_bundle_in_given_order_wins(game, dest_dir):
    a = game.central_bundle("a.zip", {"from_a/t.png": b"a"})
    b = game.central_bundle("b.zip", {"from_b/t.png": b"b"})
    forward = ReferenceResolver(_ctx(game, dest_dir, bundles=[a, b]))
    backward = ReferenceResolver(_ctx(game, dest_dir, bundles=[b, a]))
    assert forward.resolve("/old/t.png").new_reference == "/from_a/t.png"
    assert backward.resolve("/old/t.png").new_reference == "/from_b/t.png"


def test_parallel_scan_keeps_bundle_order(game, dest_dir):
    bundles = [
        game.central_bundle(f"{i:02d}.zip", {f"b{i}/filler.png": b""})
        for i in range(6)
    ]
    bundles.append(game.central_bundle("06.zip", {"b6/t.png": b""}))
    bundles.append(game.central_bundle("07.zip", {"b7/t.png": b""}))
    ctx = _ctx(game, dest_dir, bundles=bundles)
    for _ in range(5):
        with ReferenceResolver(ctx, max_workers=8) as resolver:
            assert resolver.resolve("/old/t.png").new_reference == "/b6/t.png"


def test_corrupt_central_bundle_is_skipped(game, dest_dir):
    bad = game.central_dir / "a_bad.zip"
    bad.write_bytes(b"not a zip")
    good = game.central_bundle("b_good.zip", {"ok/t.png": b""})
    resolver = ReferenceResolver(_ctx(game, dest_dir, bundles=[bad, good]))
    assert resolver.resolve("/old/t.png").new_reference == "/ok/t.png"


def test_failed_copy_counts_as_not_found(game, tmp_path):
    game.central_bundle("a.zip", {"x/t.png": b"a"})
    missing_dest = tmp_path / "no_such_dir"
    resolver = ReferenceResolver(
        _ctx(game, missing_dest, copy_local=True)
    )
    assert resolver.resolve("/old/t.png").outcome is Outcome.NOT_FOUND
    assert not missing_dest.exists()


def test_failed_copy_moves_on_to_next_bundle(game, dest_dir):
    class FlakyAccessor(BundleAccessor):
        def materialize(self, entry, destination):
            if entry.bundle.name == "a.zip":
                return False
            return super().materialize(entry, destination)

    game.central_bundle("a.zip", {"x/t.png": b"a"})
    game.central_bundle("b.zip", {"y/t.png": b"b"})
    resolver = ReferenceResolver(
        _ctx(game, dest_dir, copy_local=True), FlakyAccessor()
    )
    result = resolver.resolve("/old/t.png")
    assert result.new_reference == "/levels/myMap/art/remote_assets/t.png"
    assert (dest_dir / "t.png").read_bytes() == b"b"


def test_central_search_runs_two_passes_before_giving_up(game, dest_dir):
    calls = []

    class CountingAccessor(BundleAccessor):
        def lookup(self, bundle_path, filename):
            calls.append((Path(bundle_path).name, filename))
            return super().lookup(bundle_path, filename)

    game.central_bundle("a.zip", {"x/other.dds": b""})
    resolver = ReferenceResolver(
        _ctx(game, dest_dir), CountingAccessor(BundleIndex())
    )
    assert resolver.resolve("/old/t.dds").outcome is Outcome.NOT_FOUND
    # Pass B and pass C, no extension retry for a .dds name.
    assert calls == [("a.zip", "t.dds"), ("a.zip", "t.dds")]


def test_unknown_reference_is_not_found(game, dest_dir):
    game.central_bundle("a.zip", {"x/other.png": b""})
    resolver = ReferenceResolver(_ctx(game, dest_dir))
    result = resolver.resolve("/old/path/missing.png")
    assert result == ResolutionResult.not_found()


def test_damaged_level_bundle_falls_through_to_central(
    game, dest_dir, damaged_zip
):
    damaged_zip(
        game.levels_dir / "src.zip", "art/t.png", {"art/t.png": b"texture" * 64}
    )
    game.central_bundle("b.zip", {"ok/t.png": b"ok"})
    resolver = ReferenceResolver(_ctx(game, dest_dir))
    result = resolver.resolve("/levels/src/art/t.png")
    assert result.new_reference == "/ok/t.png"
    assert result.strategy is Strategy.CENTRAL_EXACT
    assert list(dest_dir.iterdir()) == []


def test_source_level_prefix_ignores_case(game, dest_dir):
    # Upper-case "/LEVELS/" still selects the source level's bundle.
    game.level_bundle("src", {"art/t.png": b"T"})
    resolver = ReferenceResolver(_ctx(game, dest_dir))
    result = resolver.resolve("/LEVELS/src/art/t.png")
    assert result.strategy is Strategy.LEVEL_BUNDLE
    assert result.new_reference == "/levels/myMap/art/remote_assets/t.png"
    assert (dest_dir / "t.png").read_bytes() == b"T"
