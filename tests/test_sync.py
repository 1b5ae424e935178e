"""Tests for payload sync."""

import os
import tempfile
from pathlib import Path

import pytest

from linkforge.core.config import EngineConfig
from linkforge.core.errors import NotFoundError
from linkforge.core.journal import StepKind, rollback
from linkforge.fs.links import get_link_ops
from linkforge.manifest.tree_manifest import Manifest
from linkforge.sync.applier import SyncApplier, install_payload


def write(path: Path, content: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


@pytest.fixture
def workdir():
    """Create a temporary working directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config(workdir):
    """Engine config isolated from the user's home."""
    return EngineConfig(override_store_path=str(workdir / "overrides.json"))


@pytest.fixture
def applier(config):
    return SyncApplier(config)


@pytest.fixture
def src(workdir):
    root = workdir / "src"
    write(root / "a.txt", b"0123456789")
    write(root / "b" / "c.txt", b"abcdefghijklmnopqrst")
    return root


@pytest.fixture
def dest(workdir):
    root = workdir / "dest"
    root.mkdir()
    return root


class TestApply:
    """Tests for SyncApplier.apply."""

    def test_copy_into_empty_destination(self, applier, src, dest):
        """Every file should be copied and a manifest persisted."""
        report = applier.apply(src, dest)

        assert report.copied == 2
        assert report.replaced == 0
        assert report.backed_up == 0
        assert (dest / "a.txt").read_bytes() == b"0123456789"
        assert (dest / "b" / "c.txt").read_bytes() == b"abcdefghijklmnopqrst"

        manifest = Manifest.load(dest / ".linkforge-manifest.json")
        assert manifest.paths() == ["a.txt", "b/c.txt"]
        assert report.manifest_fingerprint == manifest.fingerprint

    def test_creates_missing_destination(self, applier, src, workdir):
        """Destination directories should be created on demand."""
        dest = workdir / "new" / "install"
        report = applier.apply(src, dest)
        assert report.copied == 2
        assert (dest / "b" / "c.txt").is_file()

    def test_replace_with_backup(self, applier, src, dest, workdir):
        """Overwritten files should be backed up with their original bytes."""
        write(dest / "a.txt", b"original destination bytes")
        backup = workdir / "backup"

        report = applier.apply(src, dest, backup_root=backup)

        assert report.replaced == 1
        assert report.backed_up == 1
        assert report.copied == 1
        assert (backup / "a.txt").read_bytes() == b"original destination bytes"
        assert (dest / "a.txt").read_bytes() == b"0123456789"

    def test_replace_without_backup(self, applier, src, dest):
        """Without a backup root files are simply replaced."""
        write(dest / "a.txt", b"old")
        report = applier.apply(src, dest)
        assert report.replaced == 1
        assert report.backed_up == 0

    def test_second_apply_is_noop(self, applier, src, dest, workdir):
        """An unchanged source should not be copied twice."""
        applier.apply(src, dest, backup_root=workdir / "backup")
        report = applier.apply(src, dest, backup_root=workdir / "backup")

        assert report.already_applied
        assert (report.copied, report.replaced, report.backed_up) == (0, 0, 0)

    def test_existing_backup_never_overwritten(self, applier, src, dest, workdir):
        """A later apply must keep the first backup of a path."""
        backup = workdir / "backup"
        write(dest / "a.txt", b"pristine")
        applier.apply(src, dest, backup_root=backup)

        write(src / "a.txt", b"second payload version")
        report = applier.apply(src, dest, backup_root=backup)

        assert report.replaced == 2
        # only b/c.txt is new to the backup root
        assert report.backed_up == 1
        assert (backup / "a.txt").read_bytes() == b"pristine"
        assert (dest / "a.txt").read_bytes() == b"second payload version"

    def test_destination_drift_reapplied(self, applier, src, dest):
        """Edits at the destination should be detected and repaired."""
        applier.apply(src, dest)
        write(dest / "b" / "c.txt", b"tampered tampered!!!")

        report = applier.apply(src, dest)
        assert not report.already_applied
        assert (dest / "b" / "c.txt").read_bytes() == b"abcdefghijklmnopqrst"

    def test_custom_manifest_path(self, applier, src, dest, workdir):
        """An explicit manifest path should be used instead of the default."""
        manifest_path = workdir / "state" / "payload.json"
        applier.apply(src, dest, manifest_path=manifest_path)

        assert manifest_path.is_file()
        assert not (dest / ".linkforge-manifest.json").exists()

    def test_missing_source(self, applier, workdir, dest):
        """A missing source should raise NotFoundError."""
        with pytest.raises(NotFoundError):
            applier.apply(workdir / "missing", dest)

    def test_journal_records_steps(self, applier, src, dest, workdir):
        """The report journal should list copies and backups."""
        write(dest / "a.txt", b"old")
        report = applier.apply(src, dest, backup_root=workdir / "backup")

        assert len(report.journal.of_kind(StepKind.COPY_FILE)) == 2
        assert len(report.journal.of_kind(StepKind.BACKUP_FILE)) == 1

    def test_dangling_link_not_written_through(self, applier, src, dest, workdir):
        """A link at the destination is replaced, not followed."""
        outside = workdir / "outside.txt"
        os.symlink(outside, dest / "a.txt")
        backup = workdir / "backup"

        report = applier.apply(src, dest, backup_root=backup)

        assert report.replaced == 1
        assert not os.path.lexists(outside)
        assert not (dest / "a.txt").is_symlink()
        assert (dest / "a.txt").read_bytes() == b"0123456789"
        assert os.readlink(backup / "a.txt") == str(outside)

    def test_rollback_restores_link(self, applier, src, dest, workdir):
        """Rolling back puts a replaced link back as a link."""
        outside = write(workdir / "outside.txt", b"keep me")
        os.symlink(outside, dest / "a.txt")
        report = applier.apply(src, dest, backup_root=workdir / "backup")

        result = rollback(report.journal, get_link_ops())

        assert result.ok
        assert (dest / "a.txt").is_symlink()
        assert outside.read_bytes() == b"keep me"

    def test_journal_rollback(self, applier, src, dest, workdir):
        """Rolling back the journal should restore the previous destination."""
        write(dest / "a.txt", b"old")
        report = applier.apply(src, dest, backup_root=workdir / "backup")

        result = rollback(report.journal, get_link_ops())

        assert result.ok
        assert (dest / "a.txt").read_bytes() == b"old"
        assert not (dest / "b" / "c.txt").exists()


class TestInstall:
    """Tests for the install wrapper."""

    def test_first_install(self, config, src, dest):
        """A first install should report applied counts."""
        result = install_payload(src, dest, config=config)
        data = result.to_dict()

        assert data["already"] is False
        assert data["applied"] is True
        assert data["copied"] == 2
        assert data["replaced"] == 0
        assert data["manifest_fingerprint"] == Manifest.load(dest / ".linkforge-manifest.json").fingerprint
        assert data["source"] == str(src)
        assert data["dest"] == str(dest)

    def test_repeat_install(self, config, src, dest):
        """A repeat install should short-circuit."""
        install_payload(src, dest, config=config)
        data = install_payload(src, dest, config=config).to_dict()

        assert data == {
            "already": True,
            "applied": False,
            "source": str(src),
            "dest": str(dest),
        }

    def test_is_applied(self, applier, src, dest):
        """is_applied should reflect the destination state."""
        assert not applier.is_applied(src, dest)
        applier.apply(src, dest)
        assert applier.is_applied(src, dest)
