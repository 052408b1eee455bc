"""Sync mirror: full-file copy after commits, failures logged only."""

import logging

import pytest

from jobseeker.errors import SyncMirrorError
from jobseeker.kv import SqliteKeyValueStore
from jobseeker.mirror import SyncMirror
from jobseeker.models import AdStatus, JobRecord, SearchSettings
from jobseeker.store import RecordStore


@pytest.fixture
def source(tmp_path):
    path = tmp_path / "jobseeker.db"
    path.write_bytes(b"store-bytes")
    return path


class TestSyncMirror:
    def test_disabled_without_target(self, source):
        mirror = SyncMirror(source, "  ")
        assert not mirror.enabled
        assert mirror.mirror() is False
        with pytest.raises(SyncMirrorError):
            mirror.copy()

    def test_copy_to_file(self, source, tmp_path):
        target = tmp_path / "usb" / "backup.db"
        target.parent.mkdir()
        assert SyncMirror(source, target).mirror() is True
        assert target.read_bytes() == b"store-bytes"

    def test_copy_into_directory_keeps_name(self, source, tmp_path):
        usb = tmp_path / "usb"
        usb.mkdir()
        SyncMirror(source, usb).copy()
        assert (usb / "jobseeker.db").read_bytes() == b"store-bytes"
        assert not list(usb.glob(".*.partial"))

    def test_missing_directory_not_created(self, source, tmp_path, caplog):
        target = tmp_path / "unplugged" / "backup.db"
        mirror = SyncMirror(source, target)
        with caplog.at_level(logging.ERROR):
            assert mirror.mirror() is False
        assert isinstance(mirror.last_error, SyncMirrorError)
        assert not target.parent.exists()
        assert "Sync mirror failed" in caplog.text

    def test_refuses_to_copy_onto_itself(self, source):
        with pytest.raises(SyncMirrorError):
            SyncMirror(source, source).copy()


class TestStoreMirroring:
    def test_every_commit_is_mirrored(self, tmp_path, clock):
        usb = tmp_path / "usb"
        usb.mkdir()
        db = tmp_path / "local" / "jobseeker.db"
        store = RecordStore(SqliteKeyValueStore(db), clock=clock)
        store.save_settings(SearchSettings(sync_path=str(usb)))
        store.upsert(JobRecord("1", "Support"))
        assert (usb / "jobseeker.db").read_bytes() == db.read_bytes()

        store.set_status("1", AdStatus.APPLIED)
        copy = RecordStore(SqliteKeyValueStore(usb / "jobseeker.db"), clock=clock)
        assert copy.get("1").status is AdStatus.APPLIED

    def test_mirror_failure_does_not_undo_write(self, tmp_path, clock):
        db = tmp_path / "jobseeker.db"
        store = RecordStore(SqliteKeyValueStore(db), clock=clock)
        store.save_settings(SearchSettings(sync_path=str(tmp_path / "gone" / "copy.db")))
        store.upsert(JobRecord("1", "Support"))
        assert store.get("1") is not None
        assert isinstance(store.mirror.last_error, SyncMirrorError)
