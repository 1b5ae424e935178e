"""Tests for directory link substitution."""

import os
import tempfile
from pathlib import Path

import pytest

from linkforge.core.config import EngineConfig
from linkforge.core.errors import (
    AlreadyExistsError,
    LinkCreationError,
    SerializationError,
    SyncIOError,
)
from linkforge.core.json_canonical import canonical_json_loads
from linkforge.fs.links import SymlinkOps
from linkforge.links.manager import LinkManager, LinkRecord
from linkforge.manifest.builder import build_manifest


def write(path: Path, content: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


class FailingRemoveOps(SymlinkOps):
    """Symlink ops that cannot remove one particular link."""

    def __init__(self, stuck: Path):
        self.stuck = stuck

    def remove_link(self, link_path: Path) -> None:
        if Path(link_path) == self.stuck:
            raise SyncIOError("link is in use", link_path)
        super().remove_link(link_path)


class FailingCreateOps(SymlinkOps):
    """Symlink ops whose link primitive always fails."""

    def create_link(self, link_path: Path, target: Path) -> None:
        raise LinkCreationError("privilege not held", link_path)


@pytest.fixture
def workdir():
    """Create a temporary working directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def config(workdir):
    return EngineConfig(override_store_path=str(workdir / "overrides.json"))


@pytest.fixture
def manager(config):
    return LinkManager(config, SymlinkOps())


class TestLinkRecord:
    """Tests for LinkRecord model."""

    def test_lock_file_format(self, workdir):
        """Lock file should be {links: [...], backups: [[orig, backup]]}."""
        path = workdir / "lock.json"
        LinkRecord(links=["/a"], backups=[("/b", "/b.bak")]).save(path)

        data = canonical_json_loads(path.read_text())
        assert data == {"links": ["/a"], "backups": [["/b", "/b.bak"]]}

    def test_merge_dedupes(self):
        """Merging should keep order and drop repeats."""
        a = LinkRecord(links=["/x"], backups=[("/o", "/b1")])
        b = LinkRecord(links=["/x", "/y"], backups=[("/o", "/b2")])
        merged = a.merge(b)
        assert merged.links == ["/x", "/y"]
        assert merged.backups == [("/o", "/b1"), ("/o", "/b2")]

    def test_journal_roundtrip(self):
        """A record should survive conversion to a journal and back."""
        record = LinkRecord(links=["/x"], backups=[("/o", "/b")])
        assert LinkRecord.from_journal(record.to_journal()) == record

    def test_load_wrong_shape(self, workdir):
        """A lock file of the wrong shape is a SerializationError."""
        path = write(workdir / "lock.json", b'{"links": "nope"}')
        with pytest.raises(SerializationError):
            LinkRecord.load(path)


class TestLink:
    """Tests for LinkManager.link."""

    def test_link_absent_destination(self, manager, workdir):
        """An absent mount point becomes a link with no backup."""
        dest = workdir / "game" / "Mods"
        target = workdir / "store" / "Mods"
        dest.parent.mkdir()

        result = manager.link(dest, target)

        assert result.links_created == 1
        assert result.backups_taken == 0
        assert dest.is_symlink()
        assert os.readlink(dest) == str(target)
        assert target.is_dir()

        record = LinkRecord.load(result.lock_path)
        assert record.links == [str(dest)]
        assert record.backups == []
        assert result.lock_path == dest.parent / ".linkforge-lock.json"

    def test_link_backs_up_real_directory(self, manager, workdir):
        """A real directory at the mount point is moved aside."""
        dest = workdir / "game" / "Mods"
        write(dest / "mod.lua", b"print('hi')")

        result = manager.link(dest, workdir / "store")

        assert result.backups_taken == 1
        record = LinkRecord.load(result.lock_path)
        original, backup = record.backups[0]
        assert original == str(dest)
        assert Path(backup).name.startswith("Mods.linkforge-backup-")
        assert (Path(backup) / "mod.lua").read_bytes() == b"print('hi')"

    def test_link_same_target_noop(self, manager, workdir):
        """Re-linking to the same target changes nothing."""
        dest = workdir / "Mods"
        target = workdir / "store"
        manager.link(dest, target)
        lock_before = manager.lock_path_for(dest).read_bytes()

        result = manager.link(dest, target)

        assert (result.links_created, result.backups_taken) == (0, 0)
        assert manager.lock_path_for(dest).read_bytes() == lock_before

    def test_link_repoints(self, manager, workdir):
        """A link to a different target is re-created."""
        dest = workdir / "Mods"
        manager.link(dest, workdir / "one")
        result = manager.link(dest, workdir / "two")

        assert result.links_created == 1
        assert Path(os.readlink(dest)) == workdir / "two"

    def test_file_at_destination(self, manager, workdir):
        """A plain file at the mount point is not displaced."""
        dest = write(workdir / "Mods", b"not a directory")
        with pytest.raises(AlreadyExistsError):
            manager.link(dest, workdir / "store")
        assert dest.read_bytes() == b"not a directory"

    def test_backups_never_clobber(self, manager, workdir):
        """Two backups of the same mount point get distinct paths."""
        dest = workdir / "Mods"
        write(dest / "first.txt", b"1")
        manager.link(dest, workdir / "store")

        os.unlink(dest)
        write(dest / "second.txt", b"2")
        result = manager.link(dest, workdir / "store")

        record = LinkRecord.load(result.lock_path)
        backups = [Path(b) for _, b in record.backups]
        assert len(backups) == 2
        assert backups[0] != backups[1]
        assert (backups[0] / "first.txt").read_bytes() == b"1"
        assert (backups[1] / "second.txt").read_bytes() == b"2"

    def test_backup_path_collision(self, manager, workdir, monkeypatch):
        """A taken backup name gets a numeric suffix."""
        from datetime import datetime

        frozen = datetime(2024, 1, 2, 3, 4, 5)

        class FrozenDatetime(datetime):
            @classmethod
            def now(cls, tz=None):
                return frozen.replace(tzinfo=tz)

        monkeypatch.setattr("linkforge.links.manager.datetime", FrozenDatetime)
        dest = workdir / "Mods"
        first = manager.backup_path_for(dest)
        first.mkdir()
        second = manager.backup_path_for(dest)

        assert second != first
        assert second.name == f"{first.name}-1"

    def test_link_failure_keeps_backup_recorded(self, config, workdir):
        """A failed link still records the backup it took."""
        manager = LinkManager(config, FailingCreateOps())
        dest = workdir / "Mods"
        write(dest / "keep.txt", b"keep")

        with pytest.raises(LinkCreationError):
            manager.link(dest, workdir / "store")

        record = LinkRecord.load(manager.lock_path_for(dest))
        assert record.links == []
        assert len(record.backups) == 1

        report = LinkManager(config, SymlinkOps()).cleanup(manager.lock_path_for(dest))
        assert report.backups_restored == 1
        assert (dest / "keep.txt").read_bytes() == b"keep"


    def test_corrupt_lock_fails_before_changes(self, manager, workdir):
        """A corrupt lock aborts link before the mount point is touched."""
        dest = workdir / "Mods"
        write(dest / "a.txt", b"alpha")
        lock = write(workdir / ".linkforge-lock.json", b"{{{")

        with pytest.raises(SerializationError):
            manager.link(dest, workdir / "store")

        assert not dest.is_symlink()
        assert (dest / "a.txt").read_bytes() == b"alpha"
        assert sorted(p.name for p in workdir.iterdir()) == [".linkforge-lock.json", "Mods"]
        assert lock.read_bytes() == b"{{{"

    def test_lock_merges_with_existing_entries(self, manager, workdir):
        """Links under one parent accumulate in a single lock."""
        manager.link(workdir / "ModsA", workdir / "storeA")
        result = manager.link(workdir / "ModsB", workdir / "storeB")

        record = LinkRecord.load(result.lock_path)
        assert record.links == [str(workdir / "ModsA"), str(workdir / "ModsB")]


class TestCleanup:
    """Tests for LinkManager.cleanup."""

    def test_missing_lock_is_noop(self, manager, workdir):
        """No lock file means nothing to do."""
        report = manager.cleanup(workdir / "missing.json")
        assert not report.lock_found
        assert (report.links_removed, report.backups_restored) == (0, 0)
        assert report.ok

    def test_link_then_cleanup(self, manager, workdir):
        """A created link is removed and the lock deleted."""
        dest = workdir / "Mods"
        target = workdir / "store"
        write(target / "payload.txt", b"data")
        result = manager.link(dest, target)

        report = manager.cleanup(result.lock_path)

        assert report.links_removed == 1
        assert not os.path.lexists(dest)
        assert not result.lock_path.exists()
        assert (target / "payload.txt").read_bytes() == b"data"

    def test_roundtrip_restores_directory(self, manager, workdir):
        """link then cleanup returns the mount point byte-for-byte."""
        dest = workdir / "Mods"
        write(dest / "a.txt", b"alpha")
        write(dest / "nested" / "b.bin", bytes(range(256)))
        before = build_manifest(dest)

        result = manager.link(dest, workdir / "store")
        report = manager.cleanup(result.lock_path)

        assert report.links_removed == 1
        assert report.backups_restored == 1
        assert not dest.is_symlink()
        assert build_manifest(dest) == before
        assert sorted(p.name for p in workdir.iterdir()) == ["Mods", "store"]

    def test_backup_not_restored_over_existing(self, manager, workdir):
        """A backup stays put when something occupies the original path."""
        dest = workdir / "Mods"
        write(dest / "a.txt", b"alpha")
        result = manager.link(dest, workdir / "store")
        os.unlink(dest)
        write(dest / "new.txt", b"user made this")

        report = manager.cleanup(result.lock_path)

        assert report.backups_restored == 0
        assert (dest / "new.txt").read_bytes() == b"user made this"

    def test_real_directory_never_removed(self, manager, workdir):
        """A recorded link replaced by a real directory is left alone."""
        dest = workdir / "Mods"
        result = manager.link(dest, workdir / "store")
        os.unlink(dest)
        write(dest / "real.txt", b"real")

        report = manager.cleanup(result.lock_path)

        assert report.links_removed == 0
        assert (dest / "real.txt").is_file()

    def test_corrupt_lock(self, manager, workdir):
        """A corrupt lock file is fatal."""
        lock = write(workdir / ".linkforge-lock.json", b"{{{")
        with pytest.raises(SerializationError):
            manager.cleanup(lock)
        assert lock.exists()

    def test_best_effort_continues(self, config, workdir):
        """One failing entry does not stop the others."""
        stuck = workdir / "ModsA"
        free = workdir / "ModsB"
        setup = LinkManager(config, SymlinkOps())
        setup.link(stuck, workdir / "storeA")
        result = setup.link(free, workdir / "storeB")

        report = LinkManager(config, FailingRemoveOps(stuck)).cleanup(result.lock_path)

        assert report.links_removed == 1
        assert len(report.failures) == 1
        assert not os.path.lexists(free)
        assert stuck.is_symlink()

        remaining = LinkRecord.load(result.lock_path)
        assert remaining.links == [str(stuck)]

        retry = setup.cleanup(result.lock_path)
        assert retry.ok
        assert retry.links_removed == 1
        assert not result.lock_path.exists()
