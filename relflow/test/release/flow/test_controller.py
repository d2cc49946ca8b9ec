from __future__ import annotations

import threading
from pathlib import Path

import pytest

from relflow.core.config import PipelineConfig
from relflow.core.result import Ok, Result
from relflow.output.console import MockConsole
from relflow.release.domain.version import Version
from relflow.release.errors import ReleaseError
from relflow.release.flow.controller import PipelineDeps, PipelineRun, run_pipeline
from relflow.release.model import Decision, Stage, Trigger, TriggerKind

HEAD = "abcd123" + "0" * 33
MERGE_SHA = "e" * 40


def _config(tmp_path: Path) -> PipelineConfig:
    return PipelineConfig(
        project_root=tmp_path,
        manifest=tmp_path / "package.json",
        repo="owner/pkg",
    )


def _write_manifest(tmp_path: Path, version: str) -> None:
    (tmp_path / "package.json").write_text(
        f'{{"name": "pkg", "version": "{version}"}}', encoding="utf-8"
    )


def _deps(tmp_path: Path, *, registry, store, steps, console, base: str = "1.2.2") -> PipelineDeps:
    def resolve_base(trigger: Trigger) -> Result[Version, ReleaseError]:
        del trigger
        major, minor, patch = (int(part) for part in base.split("."))
        return Ok(Version(major, minor, patch))

    return PipelineDeps(
        config=_config(tmp_path),
        registry=registry,
        publisher=store,
        steps=steps,
        resolve_base=resolve_base,
        console=console,
    )


def _run(trigger: Trigger, deps: PipelineDeps) -> PipelineRun:
    result = run_pipeline(trigger, deps)
    assert isinstance(result, Ok)
    return result.value


def _merge_trigger() -> Trigger:
    return Trigger(kind=TriggerKind.MERGE, revision=MERGE_SHA, merge_commit=MERGE_SHA)


# PR updates


def test_pr_update_allows_bumped_version(tmp_path, registry, store, steps, console) -> None:
    _write_manifest(tmp_path, "1.2.3")
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    run = _run(Trigger(kind=TriggerKind.PR_UPDATE, revision=HEAD), deps)

    assert run.success
    assert run.stages == (Stage.IDLE, Stage.VALIDATING, Stage.DONE)
    assert run.decision is Decision.ALLOWED
    assert steps.ran == ["lint", "build", "test"]
    assert registry.calls == []
    assert store.items == {}


def test_pr_update_blocks_unbumped_version(tmp_path, registry, store, steps, console) -> None:
    _write_manifest(tmp_path, "1.2.3")
    deps = _deps(
        tmp_path, registry=registry, store=store, steps=steps, console=console, base="1.2.3"
    )

    run = _run(Trigger(kind=TriggerKind.PR_UPDATE, revision=HEAD), deps)

    assert not run.success
    assert run.stages == (Stage.IDLE, Stage.VALIDATING, Stage.BLOCKED, Stage.FAILED)
    assert run.decision is Decision.BLOCKED_NOT_BUMPED
    assert run.error is not None and run.error.kind == "not_bumped"


def test_step_failure_stops_before_decision(tmp_path, registry, store, steps, console) -> None:
    steps.failing = frozenset({"test"})
    _write_manifest(tmp_path, "1.2.3")
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    run = _run(Trigger(kind=TriggerKind.PR_UPDATE, revision=HEAD), deps)

    assert run.stage is Stage.FAILED
    assert run.error is not None and run.error.kind == "step_failed"
    assert run.decision is None
    assert steps.ran == ["lint", "build", "test"]


def test_unreadable_manifest_fails(tmp_path, registry, store, steps, console) -> None:
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    run = _run(Trigger(kind=TriggerKind.PR_UPDATE, revision=HEAD), deps)

    assert run.error is not None and run.error.kind == "manifest_unreadable"


# Labels


def test_verify_runs_e2e_without_deciding(tmp_path, registry, store, steps, console) -> None:
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    run = _run(Trigger(kind=TriggerKind.LABEL_VERIFY, revision=HEAD), deps)

    assert run.success
    assert steps.ran == ["build", "e2e"]
    assert run.decision is None
    assert registry.calls == []


def test_publish_stores_candidate(tmp_path, registry, store, steps, console) -> None:
    _write_manifest(tmp_path, "1.2.3")
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    run = _run(Trigger(kind=TriggerKind.LABEL_PUBLISH, revision=HEAD), deps)

    assert run.success
    assert run.candidate == "1.2.3-rc-abcd123"
    assert store.items == {"1.2.3-rc-abcd123": b"tarball-bytes"}
    assert run.artifact == Path("/artifacts/1.2.3-rc-abcd123")
    assert steps.ran == ["build", "package"]
    assert "create_tag" not in registry.call_names()


def test_publish_blocked_when_version_already_released(
    tmp_path, registry, store, steps, console
) -> None:
    _write_manifest(tmp_path, "2.0.0")
    registry.tags["v2.0.0"] = "f" * 40
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    run = _run(Trigger(kind=TriggerKind.LABEL_PUBLISH, revision=HEAD), deps)

    assert run.decision is Decision.BLOCKED_ALREADY_RELEASED
    assert run.error is not None and run.error.kind == "already_released"
    assert store.items == {}
    assert steps.ran == []


def test_publish_twice_for_same_revision_fails_to_store(
    tmp_path, registry, store, steps, console
) -> None:
    _write_manifest(tmp_path, "1.2.3")
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)
    trigger = Trigger(kind=TriggerKind.LABEL_PUBLISH, revision=HEAD)

    assert _run(trigger, deps).success
    second = _run(trigger, deps)

    assert second.error is not None and second.error.kind == "store_failure"


# Merge


def test_merge_tags_releases_and_stores(tmp_path, registry, store, steps, console) -> None:
    _write_manifest(tmp_path, "1.2.3")
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    run = _run(_merge_trigger(), deps)

    assert run.success
    assert run.stages == (Stage.IDLE, Stage.VALIDATING, Stage.MERGING, Stage.DONE)
    assert run.tag == "v1.2.3"
    assert registry.tags == {"v1.2.3": MERGE_SHA}
    assert registry.releases == {"v1.2.3": (steps.tarball,)}
    assert store.items == {"1.2.3": b"tarball-bytes"}
    assert steps.ran == ["lint", "build", "test", "e2e", "package"]
    assert registry.call_names() == [
        "tag_exists",
        "tag_exists",
        "create_tag",
        "release_exists",
        "create_release",
    ]


def test_second_merge_of_same_version_is_blocked(
    tmp_path, registry, store, steps, console
) -> None:
    _write_manifest(tmp_path, "1.2.3")
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    assert _run(_merge_trigger(), deps).success
    second = _run(_merge_trigger(), deps)

    assert second.error is not None and second.error.kind == "already_released"
    assert registry.call_names().count("create_tag") == 1


def test_tag_created_between_recheck_and_create_is_a_conflict(
    tmp_path, registry, store, steps, console
) -> None:
    _write_manifest(tmp_path, "1.2.3")
    original = registry.tag_exists
    seen: list[str] = []

    def racing_tag_exists(name: str) -> Result[bool, ReleaseError]:
        result = original(name)
        seen.append(name)
        if len(seen) == 2:
            registry.tags[name] = "9" * 40
        return result

    registry.tag_exists = racing_tag_exists
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    run = _run(_merge_trigger(), deps)

    assert run.error is not None and run.error.kind == "tag_conflict"
    assert registry.tags == {"v1.2.3": "9" * 40}
    assert registry.releases == {}
    assert store.items == {}


def test_concurrent_merges_release_exactly_once(tmp_path, registry, store, make_steps) -> None:
    _write_manifest(tmp_path, "1.2.3")
    barrier = threading.Barrier(2, timeout=5)
    runs: list[PipelineRun] = []
    lock = threading.Lock()

    def worker() -> None:
        steps = make_steps(barrier=barrier)
        deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=MockConsole())
        run = _run(_merge_trigger(), deps)
        with lock:
            runs.append(run)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert len(runs) == 2
    winners = [run for run in runs if run.success]
    losers = [run for run in runs if not run.success]
    assert len(winners) == 1
    assert len(losers) == 1
    assert losers[0].error is not None
    assert losers[0].error.kind in {"tag_conflict", "already_released"}
    assert list(registry.releases) == ["v1.2.3"]
    assert list(store.items) == ["1.2.3"]


def test_release_failure_rolls_back_tag(tmp_path, registry, store, steps, console) -> None:
    _write_manifest(tmp_path, "1.2.3")
    registry.release_error = ReleaseError(kind="registry_failed", message="upload failed")
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    run = _run(_merge_trigger(), deps)

    assert run.error is not None and run.error.kind == "registry_failed"
    assert registry.tags == {}
    assert registry.call_names()[-1] == "delete_tag"
    assert store.items == {}
    assert console.has_warning()


def test_failed_rollback_is_reported(tmp_path, registry, store, steps, console) -> None:
    _write_manifest(tmp_path, "1.2.3")
    registry.release_error = ReleaseError(kind="registry_failed", message="upload failed")
    registry.delete_error = ReleaseError(kind="registry_failed", message="delete failed")
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    run = _run(_merge_trigger(), deps)

    assert run.error is not None
    assert run.error.message == "upload failed"
    assert run.error.hint is not None
    assert "rollback of v1.2.3 failed" in run.error.hint


def test_store_failure_on_merge_rolls_back_release_and_tag(
    tmp_path, registry, store, steps, console
) -> None:
    _write_manifest(tmp_path, "1.2.3")
    store.error = ReleaseError(kind="store_failure", message="disk full")
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    run = _run(_merge_trigger(), deps)

    assert run.stage is Stage.FAILED
    assert run.error is not None and run.error.kind == "store_failure"
    assert registry.tags == {}
    assert registry.releases == {}
    assert registry.call_names()[-2:] == ["delete_release", "delete_tag"]
    assert run.tag is None


def test_merge_after_store_failure_can_be_rerun(
    tmp_path, registry, store, steps, console
) -> None:
    _write_manifest(tmp_path, "1.2.3")
    store.items["1.2.3"] = b"leftover"
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    first = _run(_merge_trigger(), deps)
    assert first.error is not None and first.error.kind == "store_failure"

    del store.items["1.2.3"]
    second = _run(_merge_trigger(), deps)

    assert second.success
    assert registry.tags == {"v1.2.3": MERGE_SHA}
    assert store.items == {"1.2.3": b"tarball-bytes"}


def test_failed_release_delete_keeps_the_tag(tmp_path, registry, store, steps, console) -> None:
    _write_manifest(tmp_path, "1.2.3")
    store.error = ReleaseError(kind="store_failure", message="disk full")
    registry.delete_release_error = ReleaseError(kind="registry_failed", message="delete failed")
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    run = _run(_merge_trigger(), deps)

    assert run.error is not None and run.error.message == "disk full"
    assert run.error.hint is not None
    assert "rollback of v1.2.3 failed" in run.error.hint
    assert "delete_tag" not in registry.call_names()
    assert registry.tags == {"v1.2.3": MERGE_SHA}


def test_existing_release_is_a_conflict_without_rollback(
    tmp_path, registry, store, steps, console
) -> None:
    _write_manifest(tmp_path, "1.2.3")
    registry.releases["v1.2.3"] = ()
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    run = _run(_merge_trigger(), deps)

    assert run.error is not None and run.error.kind == "release_conflict"
    assert "delete_tag" not in registry.call_names()


def test_merge_package_failure_creates_nothing(tmp_path, registry, store, steps, console) -> None:
    _write_manifest(tmp_path, "1.2.3")
    steps.failing = frozenset({"package"})
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    run = _run(_merge_trigger(), deps)

    assert run.error is not None and run.error.kind == "step_failed"
    assert "create_tag" not in registry.call_names()


@pytest.mark.parametrize("kind", list(TriggerKind))
def test_every_run_ends_in_a_terminal_stage(
    tmp_path, registry, store, steps, console, kind: TriggerKind
) -> None:
    _write_manifest(tmp_path, "1.2.3")
    deps = _deps(tmp_path, registry=registry, store=store, steps=steps, console=console)

    run = _run(Trigger(kind=kind, revision=MERGE_SHA, merge_commit=MERGE_SHA), deps)

    assert run.stage in {Stage.DONE, Stage.FAILED}
    assert run.stages[0] is Stage.IDLE

