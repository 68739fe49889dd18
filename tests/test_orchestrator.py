"""
End-to-end runs of the code update against a distribution on disk.
"""

import pytest

from conftest import snapshot
from distupdates.collaborators import Credentials, FilesystemInventory, StaticAuthenticator
from distupdates.config import load_manifest, parse_manifest
from distupdates.errors import AuthenticationFailed, CredentialsMissing, LockError, RestoreFailedError
from distupdates.models import OUTCOME_FAILED, OUTCOME_PARTIAL, OUTCOME_SUCCESS
from distupdates.orchestrator import (
    STATE_AUDITING, STATE_AWAITING_CONFIRMATION, STATE_DONE, STATE_IDLE, STATE_INSTALLING_CORE,
    STATE_INSTALLING_MODULES, STATE_INSTALLING_THEMES, UpdateOrchestrator,
)
from distupdates.utils.backup_swap import BackupSwapper
from distupdates.utils.fetcher import ArchiveFetcher
from distupdates.utils.lock import RunLock


class Decline:
    def __init__(self):
        self.prompts = []

    def confirm(self, prompt):
        self.prompts.append(prompt)
        return False


class RejectAll:
    def authenticate(self, credentials):
        return False


def build(dist, manifest=None, **kwargs):
    if manifest is None:
        manifest = load_manifest(str(dist.manifest_path))
    kwargs.setdefault("fetcher", ArchiveFetcher(scratch_dir=str(dist.scratch)))
    return UpdateOrchestrator(
        public_dir=str(dist.public),
        manifest=manifest,
        installed_state=FilesystemInventory(str(dist.public)),
        **kwargs
    )


def preserved_snapshot(public):
    return {name: snapshot(public / name) for name in ("config", "files", "logs", "themes")}


def test_plan_matches_installed_state(distribution):
    plan = build(distribution).audit()

    assert plan.core.from_version == "1.9.0"
    assert plan.core.to_version == "2.0.0"
    assert list(plan.modules) == ["alpha", "beta"]
    assert plan.modules["alpha"].from_version == "1.1"
    assert plan.modules["beta"].from_version is None
    assert plan.themes == {}


def test_full_update(distribution):
    public = distribution.public
    preserved_before = preserved_snapshot(public)
    orchestrator = build(distribution)

    summary = orchestrator.run()

    assert summary.outcome == OUTCOME_SUCCESS
    assert not summary.aborted
    assert [(r.kind, r.component_id, r.status) for r in summary.results] == [
        ("core", "core", "success"), ("module", "alpha", "success"), ("module", "beta", "success"),
    ]
    assert all(entry.downloaded for _, entry in orchestrator.plan.entries())

    # New core files in place, files the new core no longer ships are gone.
    assert (public / "index.php").read_bytes() == b"<?php // 2.0.0\n"
    assert (public / "vendor" / "autoload.php").exists()
    assert not (public / "obsolete.php").exists()
    assert not (public / "update_temp").exists()

    # Preserved subtrees are byte-identical and never receive archive content.
    assert preserved_snapshot(public) == preserved_before
    assert not (public / "config" / "database.ini").exists()

    # Modules are replaced, not merged over the old files.
    assert (public / "modules" / "alpha" / "Module.php").read_bytes() == b"<?php // alpha 1.2\n"
    assert not (public / "modules" / "alpha" / "removed_in_1_2.php").exists()
    assert (public / "modules" / "beta" / "Module.php").exists()
    assert sorted(p.name for p in (public / "modules").iterdir()) == ["alpha", "beta"]

    # Every scratch archive was removed.
    assert list(distribution.scratch.iterdir()) == []


def test_core_fetch_failure_stops_the_run(distribution, tmp_path):
    data = dict(distribution.manifest_data)
    data["core"] = {"version": "2.0.0", "url": (tmp_path / "missing-core.zip").as_uri()}
    before = snapshot(distribution.public)

    summary = build(distribution, manifest=parse_manifest(data)).run()

    assert summary.outcome == OUTCOME_FAILED
    assert not summary.succeeded
    assert [(r.component_id, r.status) for r in summary.results] == [("core", "failed")]
    assert summary.result_for("module", "alpha") is None
    assert snapshot(distribution.public) == before
    assert not any(entry.downloaded for _, entry in summary.plan.entries())


def test_corrupt_core_archive_is_rejected_before_the_wipe(distribution, corrupt_zip):
    data = dict(distribution.manifest_data)
    data["core"] = {"version": "2.0.0", "url": corrupt_zip.as_uri()}
    before = snapshot(distribution.public)

    summary = build(distribution, manifest=parse_manifest(data)).run()

    assert summary.outcome == OUTCOME_FAILED
    assert snapshot(distribution.public) == before


def test_module_failure_is_isolated(distribution, corrupt_zip):
    data = dict(distribution.manifest_data)
    data["modules"] = [
        {"name": "alpha", "version": "1.2", "url": corrupt_zip.as_uri()},
        {"name": "beta", "version": "3.0", "url": distribution.archives.beta.as_uri()},
    ]
    alpha_dir = distribution.public / "modules" / "alpha"
    alpha_before = snapshot(alpha_dir)

    summary = build(distribution, manifest=parse_manifest(data)).run()

    assert summary.outcome == OUTCOME_PARTIAL
    assert summary.succeeded
    assert summary.result_for("core", "core").status == "success"
    assert summary.result_for("module", "alpha").status == "failed"
    assert summary.result_for("module", "beta").status == "success"
    assert summary.plan.modules["alpha"].downloaded is False
    assert summary.plan.modules["beta"].downloaded is True

    assert snapshot(alpha_dir) == alpha_before
    assert not (distribution.public / "modules" / "alpha_bkp").exists()
    assert (distribution.public / "modules" / "beta" / "config" / "module.ini").exists()
    assert (distribution.public / "application" / "Module.php").read_text().count("2.0.0") == 1


def test_archive_writing_outside_its_directory_is_refused(distribution, make_zip):
    rogue = make_zip("beta-rogue.zip", {
        "beta/Module.php": b"<?php // beta\n",
        "alpha/Module.php": b"<?php // hijacked\n",
    })
    data = dict(distribution.manifest_data)
    data["modules"] = [{"name": "beta", "version": "3.0", "url": rogue.as_uri()}]

    summary = build(distribution, manifest=parse_manifest(data)).run()

    assert summary.outcome == OUTCOME_PARTIAL
    assert summary.result_for("module", "beta").status == "failed"
    assert (distribution.public / "modules" / "alpha" / "Module.php").read_bytes() == b"<?php // alpha 1.1\n"
    assert not (distribution.public / "modules" / "beta").exists()


def test_themes_are_installed_under_themes(distribution):
    data = dict(distribution.manifest_data)
    data["themes"] = [{"name": "dusk", "version": "0.5", "url": distribution.archives.dusk.as_uri()}]

    summary = build(distribution, manifest=parse_manifest(data)).run()

    assert summary.outcome == OUTCOME_SUCCESS
    assert summary.result_for("theme", "dusk").status == "success"
    assert (distribution.public / "themes" / "dusk" / "view" / "layout.phtml").exists()
    assert (distribution.public / "themes" / "default" / "config" / "theme.ini").exists()


def test_second_run_is_a_no_op(distribution):
    assert build(distribution).run().outcome == OUTCOME_SUCCESS
    after_first = snapshot(distribution.public)

    second = build(distribution)
    summary = second.run()

    assert summary.outcome == OUTCOME_SUCCESS
    assert summary.plan.is_empty()
    assert summary.results == []
    assert second.state == STATE_DONE
    assert snapshot(distribution.public) == after_first


def test_declined_confirmation_installs_nothing(distribution):
    before = snapshot(distribution.public)
    confirmer = Decline()

    summary = build(distribution, confirmer=confirmer).run()

    assert summary.aborted
    assert summary.outcome == OUTCOME_SUCCESS
    assert summary.results == []
    assert confirmer.prompts == ["Would you like to continue?"]
    assert snapshot(distribution.public) == before


def test_state_transitions(distribution):
    transitions = []
    orchestrator = build(distribution, on_transition=lambda old, new: transitions.append(new))
    assert orchestrator.state == STATE_IDLE

    orchestrator.run()

    assert transitions == [
        STATE_AUDITING, STATE_AWAITING_CONFIRMATION, STATE_INSTALLING_CORE,
        STATE_INSTALLING_MODULES, STATE_INSTALLING_THEMES, STATE_DONE,
    ]


def test_core_failure_skips_module_states(distribution, tmp_path):
    data = dict(distribution.manifest_data)
    data["core"] = {"version": "2.0.0", "url": (tmp_path / "missing.zip").as_uri()}
    transitions = []

    build(distribution, manifest=parse_manifest(data),
          on_transition=lambda old, new: transitions.append(new)).run()

    assert transitions == [STATE_AUDITING, STATE_AWAITING_CONFIRMATION, STATE_INSTALLING_CORE, STATE_DONE]


def test_up_to_date_core_goes_straight_to_modules(distribution):
    data = dict(distribution.manifest_data)
    data["core"] = {"version": "1.9.0", "url": distribution.archives.core.as_uri()}
    transitions = []

    summary = build(distribution, manifest=parse_manifest(data),
                    on_transition=lambda old, new: transitions.append(new)).run()

    assert STATE_INSTALLING_CORE not in transitions
    assert summary.result_for("core", "core") is None
    assert (distribution.public / "obsolete.php").exists()


def test_failed_authentication_touches_nothing(distribution):
    before = snapshot(distribution.public)
    orchestrator = build(distribution, authenticator=RejectAll(),
                         credentials=Credentials("admin@example.com", "wrong"))

    with pytest.raises(AuthenticationFailed):
        orchestrator.run()

    assert orchestrator.state == STATE_DONE
    assert orchestrator.plan is None
    assert snapshot(distribution.public) == before


def test_missing_credentials_with_authenticator(distribution):
    with pytest.raises(CredentialsMissing):
        build(distribution, authenticator=StaticAuthenticator()).run()


def test_concurrent_session_is_refused(distribution):
    before = snapshot(distribution.public)
    holder = RunLock(distribution.root)
    holder.acquire()
    try:
        with pytest.raises(LockError):
            build(distribution, lock=RunLock(distribution.root)).run()
    finally:
        holder.release()
    assert snapshot(distribution.public) == before


def test_restore_failure_fails_the_run(distribution):
    class BrokenSwapper(BackupSwapper):
        def swap(self, target_dir, install_fn, component=None):
            raise RestoreFailedError("could not restore", component=component,
                                     backup_path=str(self.backup_path(target_dir)))

    summary = build(distribution, swapper=BrokenSwapper()).run()

    assert summary.outcome == OUTCOME_FAILED
    assert summary.result_for("module", "alpha").status == "restore_failed"
    assert summary.result_for("module", "beta").status == "restore_failed"
    assert summary.result_for("core", "core").status == "success"


def test_component_errors_name_the_component_once(distribution, corrupt_zip, caplog):
    data = dict(distribution.manifest_data)
    data["modules"] = [{"name": "alpha", "version": "1.2", "url": corrupt_zip.as_uri()}]
    caplog.set_level("ERROR", logger="distupdates")

    summary = build(distribution, manifest=parse_manifest(data)).run()

    error = summary.result_for("module", "alpha").error
    assert error.startswith("Failed to open archive")
    assert "Failed to update module alpha: Failed to open archive" in caplog.text
    assert "alpha: alpha:" not in caplog.text
