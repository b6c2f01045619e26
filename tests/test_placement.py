"""Tests for the placement engine."""

from __future__ import annotations

import errno
import os
from pathlib import Path
from types import SimpleNamespace

import pytest

from modelorg.classification import Category
from modelorg.ingestion.models import CacheIdentity, Candidate, SourceKind
from modelorg.organization import (
    FailureKind,
    PlacementEngine,
    PlacementMethod,
    PlacementStatus,
    SetupError,
)
from modelorg.organization import placement as placement_module

GB = 1024 * 1024 * 1024


def _source(
    tmp_path: Path, name: str = "model.safetensors", payload: bytes = b"abc" * 100
) -> Candidate:
    source = tmp_path / "downloads" / name
    source.parent.mkdir(parents=True, exist_ok=True)
    source.write_bytes(payload)
    return Candidate(source_path=source, size_bytes=len(payload))


def _engine(tmp_path: Path, **kwargs) -> PlacementEngine:
    return PlacementEngine(tmp_path / "library", **kwargs)


def _refuse(*_args, **_kwargs):
    raise PermissionError("operation not permitted")


def test_symlink_is_preferred(tmp_path: Path) -> None:
    candidate = _source(tmp_path)
    engine = _engine(tmp_path)

    outcome = engine.place(candidate, Category.LORA)

    destination = tmp_path / "library" / "loras" / "model.safetensors"
    assert outcome.status is PlacementStatus.PLACED
    assert outcome.method is PlacementMethod.SYMLINK
    assert outcome.destination_path == destination
    assert destination.is_symlink()
    assert Path(os.readlink(destination)) == candidate.source_path.resolve()
    assert not (tmp_path / "library" / "checkpoints" / "model.safetensors").exists()


def test_second_placement_is_skipped(tmp_path: Path) -> None:
    candidate = _source(tmp_path)
    engine = _engine(tmp_path)
    first = engine.place(candidate, Category.CHECKPOINT)
    before = sorted(p.name for p in (tmp_path / "library" / "checkpoints").iterdir())

    second = engine.place(candidate, Category.CHECKPOINT)

    assert first.status is PlacementStatus.PLACED
    assert second.status is PlacementStatus.SKIPPED_EXISTS
    assert second.method is None
    assert sorted(p.name for p in (tmp_path / "library" / "checkpoints").iterdir()) == before


def test_existing_destination_is_never_overwritten(tmp_path: Path) -> None:
    candidate = _source(tmp_path)
    engine = _engine(tmp_path)
    occupied = tmp_path / "library" / "vae" / "model.safetensors"
    occupied.parent.mkdir(parents=True)
    occupied.write_bytes(b"original")

    outcome = engine.place(candidate, Category.VAE)

    assert outcome.status is PlacementStatus.SKIPPED_EXISTS
    assert occupied.read_bytes() == b"original"


def test_dangling_destination_link_counts_as_existing(tmp_path: Path) -> None:
    candidate = _source(tmp_path)
    engine = _engine(tmp_path)
    dangling = tmp_path / "library" / "unet" / "model.safetensors"
    dangling.parent.mkdir(parents=True)
    os.symlink(tmp_path / "gone", dangling)

    outcome = engine.place(candidate, Category.UNET)

    assert outcome.status is PlacementStatus.SKIPPED_EXISTS
    assert os.readlink(dangling) == str(tmp_path / "gone")


def test_cache_identity_names_destination(tmp_path: Path) -> None:
    base = _source(tmp_path)
    candidate = base.model_copy(
        update={
            "source_kind": SourceKind.CACHE_SNAPSHOT,
            "cache_identity": CacheIdentity(
                kind="models", namespace="acme", repository="bigmodel", revision="abcd1234"
            ),
        }
    )
    engine = _engine(tmp_path)

    outcome = engine.place(candidate, Category.CHECKPOINT)

    assert outcome.destination_path.name == "acme_bigmodel_model.safetensors"
    assert outcome.destination_path.is_symlink()


def test_vanished_source_fails(tmp_path: Path) -> None:
    candidate = _source(tmp_path)
    candidate.source_path.unlink()

    outcome = _engine(tmp_path).place(candidate, Category.LORA)

    assert outcome.status is PlacementStatus.FAILED
    assert outcome.failure_kind is FailureKind.SOURCE
    assert outcome.error_detail == "source vanished"


def test_insufficient_space_fails_without_partial_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    candidate = _source(tmp_path).model_copy(update={"size_bytes": 10 * GB})
    monkeypatch.setattr(
        placement_module.shutil,
        "disk_usage",
        lambda _path: SimpleNamespace(total=100 * GB, used=99 * GB, free=1 * GB),
    )

    outcome = _engine(tmp_path).place(candidate, Category.CHECKPOINT)

    assert outcome.status is PlacementStatus.FAILED
    assert outcome.failure_kind is FailureKind.SPACE
    assert outcome.error_detail == "insufficient space"
    assert list((tmp_path / "library" / "checkpoints").iterdir()) == []


def test_copy_fallback_is_verified(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    candidate = _source(tmp_path, payload=os.urandom(4096))
    monkeypatch.setattr(placement_module.os, "symlink", _refuse)

    outcome = _engine(tmp_path).place(candidate, Category.EMBEDDING)

    destination = tmp_path / "library" / "embeddings" / "model.safetensors"
    assert outcome.status is PlacementStatus.PLACED
    assert outcome.method is PlacementMethod.COPY_VERIFIED
    assert not destination.is_symlink()
    assert destination.read_bytes() == candidate.source_path.read_bytes()
    assert [p.name for p in destination.parent.iterdir()] == ["model.safetensors"]


def test_copy_mismatch_removes_partial(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    candidate = _source(tmp_path)
    monkeypatch.setattr(placement_module.os, "symlink", _refuse)
    monkeypatch.setattr(placement_module.filecmp, "cmp", lambda *_a, **_k: False)

    outcome = _engine(tmp_path).place(candidate, Category.LORA)

    assert outcome.status is PlacementStatus.FAILED
    assert outcome.failure_kind is FailureKind.INTEGRITY
    assert list((tmp_path / "library" / "loras").iterdir()) == []


def test_interrupted_copy_leaves_no_partial(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    candidate = _source(tmp_path)

    def _interrupt(*_args, **_kwargs):
        raise KeyboardInterrupt

    monkeypatch.setattr(placement_module.os, "symlink", _refuse)
    monkeypatch.setattr(placement_module.filecmp, "cmp", _interrupt)

    with pytest.raises(KeyboardInterrupt):
        _engine(tmp_path).place(candidate, Category.CHECKPOINT)

    assert list((tmp_path / "library" / "checkpoints").iterdir()) == []


def test_copy_never_replaces_a_concurrent_destination(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    candidate = _source(tmp_path, payload=b"x")
    destination = tmp_path / "library" / "checkpoints" / "model.safetensors"

    def _compare_then_race(*_args, **_kwargs):
        destination.write_bytes(b"OTHER WORKER")
        return True

    monkeypatch.setattr(placement_module.os, "symlink", _refuse)
    monkeypatch.setattr(placement_module.filecmp, "cmp", _compare_then_race)

    outcome = _engine(tmp_path).place(candidate, Category.CHECKPOINT)

    assert outcome.status is PlacementStatus.SKIPPED_EXISTS
    assert destination.read_bytes() == b"OTHER WORKER"
    assert [p.name for p in destination.parent.iterdir()] == ["model.safetensors"]


def test_copy_without_hardlink_support(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    candidate = _source(tmp_path)

    def _no_links(*_args, **_kwargs):
        raise OSError(errno.EPERM, "hard links not supported")

    monkeypatch.setattr(placement_module.os, "symlink", _refuse)
    monkeypatch.setattr(placement_module.os, "link", _no_links)

    outcome = _engine(tmp_path).place(candidate, Category.VAE)

    destination = tmp_path / "library" / "vae" / "model.safetensors"
    assert outcome.method is PlacementMethod.COPY_VERIFIED
    assert destination.read_bytes() == candidate.source_path.read_bytes()
    assert [p.name for p in destination.parent.iterdir()] == ["model.safetensors"]


def test_strategies_after_a_failed_copy_are_tried(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    candidate = _source(tmp_path)

    def _broken_copy(*_args, **_kwargs):
        raise OSError(errno.EIO, "input/output error")

    monkeypatch.setattr(placement_module.shutil, "copy2", _broken_copy)
    engine = _engine(tmp_path, strategies=("copy", "symlink"))

    outcome = engine.place(candidate, Category.LORA)

    assert outcome.status is PlacementStatus.PLACED
    assert outcome.method is PlacementMethod.SYMLINK
    assert [p.name for p in (tmp_path / "library" / "loras").iterdir()] == ["model.safetensors"]


def test_hardlink_strategy(tmp_path: Path) -> None:
    candidate = _source(tmp_path)
    engine = _engine(tmp_path, strategies=("hardlink", "copy"))

    outcome = engine.place(candidate, Category.CLIP)

    assert outcome.method is PlacementMethod.HARDLINK
    assert outcome.destination_path.stat().st_ino == candidate.source_path.stat().st_ino


def test_links_only_reports_io_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    candidate = _source(tmp_path)
    monkeypatch.setattr(placement_module.os, "symlink", _refuse)
    engine = _engine(tmp_path, strategies=("symlink",))

    outcome = engine.place(candidate, Category.LORA)

    assert outcome.status is PlacementStatus.FAILED
    assert outcome.failure_kind is FailureKind.IO
    assert "operation not permitted" in (outcome.error_detail or "")


def test_destination_for_has_no_side_effects(tmp_path: Path) -> None:
    candidate = _source(tmp_path)
    engine = _engine(tmp_path)

    destination = engine.destination_for(candidate, Category.UPSCALER)

    assert destination == tmp_path / "library" / "upscale_models" / "model.safetensors"
    assert not (tmp_path / "library").exists()


def test_prepare_creates_category_tree(tmp_path: Path) -> None:
    engine = _engine(tmp_path)

    engine.prepare()
    engine.prepare()

    assert sorted(p.name for p in (tmp_path / "library").iterdir()) == [
        "checkpoints",
        "clip",
        "controlnet",
        "embeddings",
        "loras",
        "unet",
        "upscale_models",
        "vae",
    ]


def test_prepare_failure_raises_setup_error(tmp_path: Path) -> None:
    blocker = tmp_path / "library"
    blocker.write_text("not a directory", encoding="utf-8")

    with pytest.raises(SetupError):
        _engine(tmp_path).prepare()
