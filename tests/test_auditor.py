from distupdates.auditor import Auditor, audit
from distupdates.collaborators import StaticInstalledState
from distupdates.models import ComponentSpec, DistributionManifest


def _manifest(core="2.0.0", modules=(), themes=()):
    return DistributionManifest(
        core=ComponentSpec("core", core, "https://example.com/core.zip"),
        modules=tuple(ComponentSpec(mid, version, f"https://example.com/{mid}.zip")
                      for mid, version in modules),
        themes=tuple(ComponentSpec(tid, version, f"https://example.com/{tid}.zip")
                     for tid, version in themes),
    )


def test_audit_lists_outdated_and_absent_components():
    manifest = _manifest(modules=[("alpha", "1.2"), ("beta", "3.0")])
    installed = StaticInstalledState(core="1.9.0", modules={"alpha": "1.1"})

    plan = audit(manifest, installed)

    assert plan.core.from_version == "1.9.0"
    assert plan.core.to_version == "2.0.0"
    assert list(plan.modules) == ["alpha", "beta"]
    assert plan.modules["alpha"].from_version == "1.1"
    assert plan.modules["beta"].from_version is None
    assert plan.modules["beta"].is_fresh_install
    assert plan.themes == {}
    assert not any(entry.downloaded for _, entry in plan.entries())


def test_audit_skips_equal_and_newer_versions():
    manifest = _manifest(core="2.0.0", modules=[("alpha", "1.2"), ("beta", "3.0")],
                         themes=[("dusk", "0.5")])
    installed = StaticInstalledState(core="2.0.0", modules={"alpha": "1.2", "beta": "3.1"},
                                     themes={"dusk": "0.5"})

    plan = audit(manifest, installed)

    assert plan.is_empty()
    assert plan.count() == 0


def test_version_zero_is_distinct_from_absent():
    manifest = _manifest(modules=[("zero", "0")])
    plan = audit(manifest, StaticInstalledState(core="2.0.0", modules={"zero": "0"}))
    assert plan.modules == {}

    plan = audit(manifest, StaticInstalledState(core="2.0.0"))
    assert plan.modules["zero"].from_version is None


def test_audit_preserves_manifest_order_and_is_deterministic():
    manifest = _manifest(modules=[("zeta", "1"), ("alpha", "1"), ("mid", "1")],
                         themes=[("b", "1"), ("a", "1")])
    installed = StaticInstalledState(core="1.0.0")

    first = audit(manifest, installed)
    second = audit(manifest, installed)

    assert list(first.modules) == ["zeta", "alpha", "mid"]
    assert list(first.themes) == ["b", "a"]
    assert first.to_dict() == second.to_dict()


def test_entries_yield_core_then_modules_then_themes():
    manifest = _manifest(modules=[("alpha", "1")], themes=[("dusk", "1")])
    plan = audit(manifest, StaticInstalledState())

    assert [(kind, entry.component_id) for kind, entry in plan.entries()] == [
        ("core", "core"), ("module", "alpha"), ("theme", "dusk"),
    ]


def test_fallback_comparisons_are_reported():
    manifest = _manifest(modules=[("odd", "build-12")])
    installed = StaticInstalledState(core="2.0.0", modules={"odd": "build-7"})
    seen = []

    plan = Auditor().audit(manifest, installed,
                           on_fallback=lambda kind, cid, old, new: seen.append((kind, cid, old, new)))

    assert "odd" in plan.modules
    assert seen == [("module", "odd", "build-7", "build-12")]


def test_format_lines_reports_every_group():
    manifest = _manifest(modules=[("alpha", "1.2")])
    plan = audit(manifest, StaticInstalledState(core="2.0.0", modules={"alpha": "1.1"}))

    assert plan.format_lines() == [
        "Core is up to date.",
        "Module updates available:",
        "alpha: 1.1 => 1.2",
        "All themes are up to date.",
    ]
