"""Pipeline controller.

One entry point per trigger kind, all sharing the same stage graph:

    IDLE -> VALIDATING -> BLOCKED | CANDIDATE_BUILD | MERGING -> DONE | FAILED

A run keeps no memory between invocations. Versions come from the
manifest of the checkout under evaluation and every existence question
is asked of the registry at the moment it matters, so two runs racing
to the same version are arbitrated by the registry alone.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path

from relflow.core.config import PipelineConfig
from relflow.core.result import Err, Ok, Result
from relflow.output.console import ConsoleProtocol, Style
from relflow.release.contracts import ArtifactPublisher, ReleaseRegistry, StepRunner
from relflow.release.domain.candidate import compose_candidate
from relflow.release.domain.comparator import decide, decision_error
from relflow.release.domain.version import Version, read_manifest_version
from relflow.release.errors import ReleaseError
from relflow.release.flow.fsm import FINISH, StepHandler, StepOutcome, advance, run_state_machine
from relflow.release.model import Decision, DecisionRules, Stage, Trigger, TriggerKind

BaseResolver = Callable[[Trigger], Result[Version, ReleaseError]]

_VALIDATION_STEPS: dict[TriggerKind, tuple[str, ...]] = {
    TriggerKind.PR_UPDATE: ("lint", "build", "test"),
    TriggerKind.LABEL_VERIFY: ("build", "e2e"),
    TriggerKind.LABEL_PUBLISH: (),
    TriggerKind.MERGE: ("lint", "build", "test", "e2e"),
}

_DECISION_RULES: dict[TriggerKind, DecisionRules | None] = {
    TriggerKind.PR_UPDATE: DecisionRules.NOT_BUMPED_ONLY,
    TriggerKind.LABEL_VERIFY: None,
    TriggerKind.LABEL_PUBLISH: DecisionRules.FULL,
    TriggerKind.MERGE: DecisionRules.FULL,
}

_ALLOWED_NEXT: dict[TriggerKind, Stage] = {
    TriggerKind.PR_UPDATE: Stage.DONE,
    TriggerKind.LABEL_VERIFY: Stage.DONE,
    TriggerKind.LABEL_PUBLISH: Stage.CANDIDATE_BUILD,
    TriggerKind.MERGE: Stage.MERGING,
}


@dataclass(frozen=True, slots=True)
class PipelineRun:
    """State of one run; the final value doubles as its report."""

    trigger: Trigger
    stage: Stage = Stage.IDLE
    stages: tuple[Stage, ...] = (Stage.IDLE,)
    version: Version | None = None
    base: Version | None = None
    decision: Decision | None = None
    candidate: str | None = None
    tag: str | None = None
    artifact: Path | None = None
    error: ReleaseError | None = None

    @property
    def success(self) -> bool:
        return self.stage is Stage.DONE and self.error is None


@dataclass(frozen=True, slots=True)
class PipelineDeps:
    config: PipelineConfig
    registry: ReleaseRegistry
    publisher: ArtifactPublisher
    steps: StepRunner
    resolve_base: BaseResolver
    console: ConsoleProtocol


_StageFn = Callable[[PipelineDeps, PipelineRun], Result[StepOutcome[PipelineRun], ReleaseError]]


def _goto(run: PipelineRun, stage: Stage, **changes: object) -> StepOutcome[PipelineRun]:
    return advance(replace(run, stage=stage, stages=(*run.stages, stage), **changes))


def _fail(run: PipelineRun, error: ReleaseError) -> PipelineRun:
    return replace(run, stage=Stage.FAILED, stages=(*run.stages, Stage.FAILED), error=error)


def _read_tarball(path: Path) -> Result[bytes, ReleaseError]:
    try:
        return Ok(path.read_bytes())
    except OSError as e:
        return Err(
            ReleaseError(
                kind="store_failure",
                message=f"failed to read package output: {e}",
                hint=str(path),
            )
        )


def _step_idle(
    deps: PipelineDeps, run: PipelineRun
) -> Result[StepOutcome[PipelineRun], ReleaseError]:
    deps.console.header(f"relflow: {run.trigger.kind} @ {run.trigger.revision[:12]}")
    return Ok(_goto(run, Stage.VALIDATING))


def _step_validating(
    deps: PipelineDeps, run: PipelineRun
) -> Result[StepOutcome[PipelineRun], ReleaseError]:
    kind = run.trigger.kind
    for name in _VALIDATION_STEPS[kind]:
        step = deps.steps.run(name)
        if isinstance(step, Err):
            return step

    rules = _DECISION_RULES[kind]
    if rules is None:
        return Ok(_goto(run, _ALLOWED_NEXT[kind]))

    # Decide only once the steps have passed.
    version = read_manifest_version(deps.config.manifest)
    if isinstance(version, Err):
        return version
    base = deps.resolve_base(run.trigger)
    if isinstance(base, Err):
        return base

    decision = decide(version.value, base.value, deps.registry, rules=rules)
    if isinstance(decision, Err):
        return decision

    deps.console.print(
        f"version {version.value} vs base {base.value}: {decision.value}", Style.INFO
    )
    updated = replace(run, version=version.value, base=base.value, decision=decision.value)
    if not decision.value.allowed:
        return Ok(_goto(updated, Stage.BLOCKED))
    return Ok(_goto(updated, _ALLOWED_NEXT[kind]))


def _step_blocked(
    deps: PipelineDeps, run: PipelineRun
) -> Result[StepOutcome[PipelineRun], ReleaseError]:
    del deps
    assert run.decision is not None and run.version is not None and run.base is not None
    return Err(decision_error(run.decision, candidate=run.version, base=run.base))


def _step_candidate_build(
    deps: PipelineDeps, run: PipelineRun
) -> Result[StepOutcome[PipelineRun], ReleaseError]:
    assert run.version is not None
    candidate = compose_candidate(run.version, deps.config.rc_suffix, run.trigger.revision)
    if isinstance(candidate, Err):
        return candidate
    deps.console.print(f"candidate: {candidate.value}", Style.INFO)

    built = deps.steps.run("build")
    if isinstance(built, Err):
        return built
    tarball = deps.steps.package()
    if isinstance(tarball, Err):
        return tarball
    data = _read_tarball(tarball.value)
    if isinstance(data, Err):
        return data

    stored = deps.publisher.store(candidate.value, data.value)
    if isinstance(stored, Err):
        return stored
    deps.console.success(f"stored candidate artifact {candidate.value}")
    return Ok(_goto(run, Stage.DONE, candidate=candidate.value, artifact=stored.value))


def _step_merging(
    deps: PipelineDeps, run: PipelineRun
) -> Result[StepOutcome[PipelineRun], ReleaseError]:
    assert run.version is not None
    version = run.version
    tag = version.to_tag()
    commit = run.trigger.merge_commit or run.trigger.revision

    # Fresh package from the merged tree; never the PR-time candidate.
    tarball = deps.steps.package()
    if isinstance(tarball, Err):
        return tarball
    data = _read_tarball(tarball.value)
    if isinstance(data, Err):
        return data

    # Re-check right before each create: packaging took real time.
    exists = deps.registry.tag_exists(tag)
    if isinstance(exists, Err):
        return exists
    if exists.value:
        blocked = Decision.BLOCKED_ALREADY_RELEASED
        return Err(decision_error(blocked, candidate=version, base=version))

    created = deps.registry.create_tag(tag, commit)
    if isinstance(created, Err):
        return created
    deps.console.success(f"tag {tag} -> {commit[:12]}")

    released = _create_release(deps, tag=tag, tarball=tarball.value)
    if isinstance(released, Err):
        return released
    deps.console.success(f"release {tag}")

    # A store failure undoes the release and tag so a re-run starts clean.
    stored = deps.publisher.store(str(version), data.value)
    if isinstance(stored, Err):
        return _rollback(deps, tag, stored.error, release=True)
    return Ok(_goto(run, Stage.DONE, tag=tag, artifact=stored.value))


def _create_release(deps: PipelineDeps, *, tag: str, tarball: Path) -> Result[None, ReleaseError]:
    """Create the release for a tag this run just created.

    Any failure other than a concurrent release deletes the tag again, so
    no tag is left without its release. A concurrent release means the
    tag is complete and belongs to the winner; it is left alone.
    """
    exists = deps.registry.release_exists(tag)
    if isinstance(exists, Err):
        result: Result[None, ReleaseError] = exists
    elif exists.value:
        return Err(
            ReleaseError(
                kind="release_conflict",
                message=f"release {tag} already exists",
                hint="Another run released this tag first",
            )
        )
    else:
        result = deps.registry.create_release(tag, [tarball])

    if isinstance(result, Ok) or result.error.kind == "release_conflict":
        return result
    return _rollback(deps, tag, result.error, release=False)


def _rollback(
    deps: PipelineDeps, tag: str, error: ReleaseError, *, release: bool
) -> Err[ReleaseError]:
    """Undo what this run created for ``tag`` and return ``error``.

    The release goes first: a tag is never deleted from under a release
    that is still there. A failed undo step stops the rollback and is
    appended to the hint of ``error``.
    """
    undo: list[Callable[[str], Result[None, ReleaseError]]] = [deps.registry.delete_tag]
    if release:
        undo.insert(0, deps.registry.delete_release)
    deps.console.warning(f"rolling back {tag} ({error.kind})")
    for step in undo:
        undone = step(tag)
        if isinstance(undone, Err):
            note = f"rollback of {tag} failed: {undone.error.pretty()}"
            return Err(replace(error, hint=f"{error.hint}; {note}" if error.hint else note))
    return Err(error)


def _step_terminal(
    deps: PipelineDeps, run: PipelineRun
) -> Result[StepOutcome[PipelineRun], ReleaseError]:
    del deps
    del run
    return Ok(FINISH)


def run_pipeline(trigger: Trigger, deps: PipelineDeps) -> Result[PipelineRun, ReleaseError]:
    """Run the stage graph for ``trigger``.

    ``Ok`` carries the final run, successful or not (check ``success``);
    ``Err`` only reports a broken stage table.
    """
    steps: dict[Stage, _StageFn] = {
        Stage.IDLE: _step_idle,
        Stage.VALIDATING: _step_validating,
        Stage.BLOCKED: _step_blocked,
        Stage.CANDIDATE_BUILD: _step_candidate_build,
        Stage.MERGING: _step_merging,
        Stage.DONE: _step_terminal,
        Stage.FAILED: _step_terminal,
    }
    handlers: dict[Stage, StepHandler[PipelineRun]] = {
        stage: (lambda run, fn=fn: fn(deps, run)) for stage, fn in steps.items()
    }

    def on_enter(run: PipelineRun) -> None:
        deps.console.print(f"-> {run.stage}", Style.DIM)

    return run_state_machine(
        initial_state=PipelineRun(trigger=trigger),
        get_step=lambda run: run.stage,
        handlers=handlers,
        fail=_fail,
        on_enter=on_enter,
    )
