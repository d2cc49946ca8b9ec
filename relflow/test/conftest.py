"""In-memory stand-ins for the registry, artifact store and steps."""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from relflow.core.result import Err, Ok, Result
from relflow.output.console import MockConsole
from relflow.release.errors import ReleaseError


@dataclass
class InMemoryRegistry:
    """Registry whose create calls are atomic, like the real remote."""

    tags: dict[str, str] = field(default_factory=dict)
    releases: dict[str, tuple[Path, ...]] = field(default_factory=dict)
    calls: list[tuple[str, str]] = field(default_factory=list)
    release_error: ReleaseError | None = None
    delete_error: ReleaseError | None = None
    delete_release_error: ReleaseError | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def tag_exists(self, name: str) -> Result[bool, ReleaseError]:
        self.calls.append(("tag_exists", name))
        return Ok(name in self.tags)

    def create_tag(self, name: str, commit: str) -> Result[None, ReleaseError]:
        with self._lock:
            self.calls.append(("create_tag", name))
            if name in self.tags:
                return Err(ReleaseError(kind="tag_conflict", message=f"{name} exists"))
            self.tags[name] = commit
        return Ok(None)

    def release_exists(self, tag: str) -> Result[bool, ReleaseError]:
        self.calls.append(("release_exists", tag))
        return Ok(tag in self.releases)

    def create_release(self, tag: str, assets: Sequence[Path]) -> Result[None, ReleaseError]:
        with self._lock:
            self.calls.append(("create_release", tag))
            if self.release_error is not None:
                return Err(self.release_error)
            if tag in self.releases:
                return Err(ReleaseError(kind="release_conflict", message=f"{tag} exists"))
            self.releases[tag] = tuple(assets)
        return Ok(None)

    def delete_release(self, tag: str) -> Result[None, ReleaseError]:
        self.calls.append(("delete_release", tag))
        if self.delete_release_error is not None:
            return Err(self.delete_release_error)
        self.releases.pop(tag, None)
        return Ok(None)

    def delete_tag(self, name: str) -> Result[None, ReleaseError]:
        self.calls.append(("delete_tag", name))
        if self.delete_error is not None:
            return Err(self.delete_error)
        self.tags.pop(name, None)
        return Ok(None)

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@dataclass
class MemoryStore:
    items: dict[str, bytes] = field(default_factory=dict)
    error: ReleaseError | None = None

    def store(self, name: str, data: bytes) -> Result[Path, ReleaseError]:
        if self.error is not None:
            return Err(self.error)
        if name in self.items:
            return Err(ReleaseError(kind="store_failure", message=f"already stored: {name}"))
        self.items[name] = data
        return Ok(Path("/artifacts") / name)

    def retrieve(self, name: str) -> bytes | None:
        return self.items.get(name)


@dataclass
class FakeSteps:
    tarball: Path
    failing: frozenset[str] = frozenset()
    barrier: threading.Barrier | None = None
    ran: list[str] = field(default_factory=list)

    def run(self, name: str) -> Result[None, ReleaseError]:
        self.ran.append(name)
        if name in self.failing:
            return Err(ReleaseError(kind="step_failed", message=f"{name} failed (exit 1)"))
        return Ok(None)

    def package(self) -> Result[Path, ReleaseError]:
        self.ran.append("package")
        if "package" in self.failing:
            return Err(ReleaseError(kind="step_failed", message="package failed (exit 1)"))
        # Holds concurrent runs until all of them have packaged.
        if self.barrier is not None:
            self.barrier.wait()
        return Ok(self.tarball)


@pytest.fixture
def registry() -> InMemoryRegistry:
    return InMemoryRegistry()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def console() -> MockConsole:
    return MockConsole()


@pytest.fixture
def tarball(tmp_path: Path) -> Path:
    path = tmp_path / "pkg-1.0.0.tgz"
    path.write_bytes(b"tarball-bytes")
    return path


@pytest.fixture
def steps(tarball: Path) -> FakeSteps:
    return FakeSteps(tarball=tarball)


@pytest.fixture
def make_steps(tarball: Path) -> Callable[..., FakeSteps]:
    """Build independent step runners for tests that need more than one."""

    def make(**kwargs: Any) -> FakeSteps:
        return FakeSteps(tarball=tarball, **kwargs)

    return make
