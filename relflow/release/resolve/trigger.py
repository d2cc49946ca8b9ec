"""Map platform events onto the closed set of trigger kinds."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path

from relflow.core.result import Err, Ok, Result
from relflow.core.structured import StrDict, as_str_dict, get_bool, get_list, get_str, get_table
from relflow.release.errors import ReleaseError
from relflow.release.model import PUBLISH_LABEL, VERIFY_LABEL, Trigger, TriggerKind

ENV_EVENT_NAME = "GITHUB_EVENT_NAME"
ENV_EVENT_PATH = "GITHUB_EVENT_PATH"

_PR_EVENTS = frozenset({"pull_request", "pull_request_target"})
_PR_UPDATE_ACTIONS = frozenset({"opened", "synchronize", "reopened"})

_LABEL_KINDS: dict[str, TriggerKind] = {
    VERIFY_LABEL: TriggerKind.LABEL_VERIFY,
    PUBLISH_LABEL: TriggerKind.LABEL_PUBLISH,
}


def kind_for_label(label: str) -> TriggerKind | None:
    return _LABEL_KINDS.get(label.strip().lower())


def load_github_event(env: Mapping[str, str]) -> Result[tuple[str, StrDict], ReleaseError]:
    name = (env.get(ENV_EVENT_NAME) or "").strip()
    path = (env.get(ENV_EVENT_PATH) or "").strip()
    if not name or not path:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message="no GitHub event in environment",
                hint=f"Set {ENV_EVENT_NAME} and {ENV_EVENT_PATH}, or use an explicit command",
            )
        )

    try:
        obj: object = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"failed to read event payload: {e}",
                hint=path,
            )
        )

    payload = as_str_dict(obj)
    if payload is None:
        return Err(ReleaseError(kind="invalid_input", message="event payload must be an object"))
    return Ok((name, payload))


def _label_names(pr: StrDict) -> frozenset[str]:
    names: set[str] = set()
    for item in get_list(pr, "labels") or []:
        label = as_str_dict(item)
        name = get_str(label, "name") if label is not None else None
        if name is not None:
            names.add(name.lower())
    return frozenset(names)


def trigger_from_event(event_name: str, payload: StrDict) -> Result[Trigger | None, ReleaseError]:
    """Resolve a GitHub ``pull_request`` event.

    Returns ``Ok(None)`` for events that start nothing: other labels,
    PRs closed without merging, merges without the publish label.
    """
    if event_name not in _PR_EVENTS:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"unsupported event: {event_name}",
                hint="relflow runs on pull_request events",
            )
        )

    action = get_str(payload, "action")
    pr = get_table(payload, "pull_request")
    head = get_table(pr, "head") if pr is not None else None
    base = get_table(pr, "base") if pr is not None else None
    head_sha = get_str(head, "sha") if head is not None else None
    base_sha = get_str(base, "sha") if base is not None else None
    if action is None or pr is None or head_sha is None or base_sha is None:
        return Err(ReleaseError(kind="invalid_input", message="incomplete pull_request payload"))

    if action in _PR_UPDATE_ACTIONS:
        return Ok(Trigger(kind=TriggerKind.PR_UPDATE, revision=head_sha, base_ref=base_sha))

    if action == "labeled":
        label_tbl = get_table(payload, "label")
        label = get_str(label_tbl, "name") if label_tbl is not None else None
        kind = kind_for_label(label) if label is not None else None
        if kind is None:
            return Ok(None)
        return Ok(Trigger(kind=kind, revision=head_sha, base_ref=base_sha, label=label))

    if action == "closed":
        if not get_bool(pr, "merged") or PUBLISH_LABEL not in _label_names(pr):
            return Ok(None)
        merge_sha = get_str(pr, "merge_commit_sha")
        if merge_sha is None:
            return Err(
                ReleaseError(kind="invalid_input", message="merged PR has no merge_commit_sha")
            )
        # base_ref stays unset: the base is the merge commit's first parent.
        return Ok(Trigger(kind=TriggerKind.MERGE, revision=merge_sha, merge_commit=merge_sha))

    return Ok(None)


def trigger_from_options(
    *,
    kind: TriggerKind,
    revision: str,
    base_version: str | None,
    base_ref: str | None,
    merge_commit: str | None = None,
) -> Result[Trigger, ReleaseError]:
    rev = revision.strip()
    if not rev:
        return Err(ReleaseError(kind="invalid_input", message="missing --revision"))

    # A merge without a base ref falls back to the merge commit's first parent.
    needs_base = kind in (TriggerKind.PR_UPDATE, TriggerKind.LABEL_PUBLISH)
    if needs_base and not base_version and not base_ref:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"{kind} needs a base version",
                hint="Pass --base-version X.Y.Z or --base-ref <sha|branch>",
            )
        )

    return Ok(
        Trigger(
            kind=kind,
            revision=rev,
            base_version=base_version,
            base_ref=base_ref,
            merge_commit=(merge_commit or rev) if kind is TriggerKind.MERGE else None,
        )
    )
