"""
Unit tests for file operations.
"""

import errno
import os

import pytest
from pathlib import Path

from folder_organizer.actions.file_operations import FileOperations
from folder_organizer.utils.exceptions import FileProcessingError, ErrorCode


@pytest.fixture
def file_ops():
    return FileOperations()


class TestMoveFile:
    """Tests for FileOperations.move_file."""

    def test_move_into_category(self, tmp_path, file_ops):
        """Test a file lands in its category folder with its name intact."""
        source = tmp_path / "report.pdf"
        source.write_bytes(b"%PDF-1.4")

        final = file_ops.move_file(source, "Documents", tmp_path)

        assert final == tmp_path / "Documents" / "report.pdf"
        assert final.read_bytes() == b"%PDF-1.4"
        assert not source.exists()

    def test_collision_sequence(self, tmp_path, file_ops):
        """Test repeated names get _1, _2, ... suffixes and nothing is overwritten."""
        finals = []
        for i in range(3):
            source = tmp_path / "report.pdf"
            source.write_text(f"version {i}")
            finals.append(file_ops.move_file(source, "Documents", tmp_path))

        assert [p.name for p in finals] == ["report.pdf", "report_1.pdf", "report_2.pdf"]
        assert finals[0].read_text() == "version 0"
        assert finals[2].read_text() == "version 2"

    def test_collision_without_extension(self, tmp_path, file_ops):
        (tmp_path / "Misc").mkdir()
        (tmp_path / "Misc" / "Makefile").write_text("old")
        source = tmp_path / "Makefile"
        source.write_text("new")

        final = file_ops.move_file(source, "Misc", tmp_path)

        assert final.name == "Makefile_1"

    def test_too_many_collisions(self, tmp_path):
        """Test the collision counter is capped."""
        file_ops = FileOperations(max_collision_attempts=2)
        dest = tmp_path / "Documents"
        dest.mkdir()
        for name in ("a.txt", "a_1.txt", "a_2.txt"):
            (dest / name).write_text("taken")
        source = tmp_path / "a.txt"
        source.write_text("new")

        with pytest.raises(FileProcessingError) as exc_info:
            file_ops.move_file(source, "Documents", tmp_path)

        assert exc_info.value.error_code == ErrorCode.TOO_MANY_COLLISIONS
        assert source.exists()

    def test_missing_source(self, tmp_path, file_ops):
        """Test a vanished source is reported as not found."""
        with pytest.raises(FileProcessingError) as exc_info:
            file_ops.move_file(tmp_path / "gone.pdf", "Documents", tmp_path)

        assert exc_info.value.error_code == ErrorCode.FILE_NOT_FOUND

    def test_destination_folder_cannot_be_created(self, tmp_path, file_ops):
        """Test a file blocking the category folder path is reported."""
        (tmp_path / "Documents").write_text("not a folder")
        source = tmp_path / "report.pdf"
        source.write_text("x")

        with pytest.raises(FileProcessingError) as exc_info:
            file_ops.move_file(source, "Documents", tmp_path)

        assert exc_info.value.error_code == ErrorCode.DIRECTORY_CREATION_FAILED
        assert source.exists()

    def test_move_failure_is_wrapped(self, tmp_path, file_ops, monkeypatch):
        source = tmp_path / "report.pdf"
        source.write_text("x")

        def deny(src, dst, **kwargs):
            raise PermissionError(errno.EACCES, "denied")

        monkeypatch.setattr(os, "link", deny)

        with pytest.raises(FileProcessingError) as exc_info:
            file_ops.move_file(source, "Documents", tmp_path)

        assert exc_info.value.error_code == ErrorCode.PERMISSION_DENIED
        assert isinstance(exc_info.value.cause, PermissionError)
        assert source.exists()

    def test_name_taken_during_move(self, tmp_path):
        """Test a file that appears at the chosen name is kept and the next suffix is used."""
        class RacingOps(FileOperations):
            raced = False

            def _resolve_conflict(self, dest_path):
                chosen = super()._resolve_conflict(dest_path)
                if not self.raced:
                    self.raced = True
                    chosen.write_text("arrived first")
                return chosen

        source = tmp_path / "report.pdf"
        source.write_text("mine")

        final = RacingOps().move_file(source, "Documents", tmp_path)

        assert final.name == "report_1.pdf"
        assert final.read_text() == "mine"
        assert (tmp_path / "Documents" / "report.pdf").read_text() == "arrived first"


class TestRelocate:
    """Tests for the no-replace move and cross-device fallback."""

    def test_cross_device_copy(self, tmp_path, file_ops, monkeypatch):
        """Test EXDEV falls back to copy, move into place, then unlink."""
        source = tmp_path / "song.mp3"
        source.write_bytes(b"ID3")
        dest_dir = tmp_path / "Audio"
        dest_dir.mkdir()
        destination = dest_dir / "song.mp3"

        real_link = os.link
        real_rename = os.rename

        def link(src, dst, **kwargs):
            if Path(src) == source:
                raise OSError(errno.EXDEV, "Invalid cross-device link")
            real_link(src, dst, **kwargs)

        def rename(src, dst):
            if Path(src) == source:
                raise OSError(errno.EXDEV, "Invalid cross-device link")
            real_rename(src, dst)

        monkeypatch.setattr(os, "link", link)
        monkeypatch.setattr(os, "rename", rename)

        file_ops.relocate(source, destination)

        assert destination.read_bytes() == b"ID3"
        assert not source.exists()
        assert [p.name for p in dest_dir.iterdir()] == ["song.mp3"]

    def test_never_replaces_destination(self, tmp_path, file_ops):
        """Test an occupied destination is refused and both files survive."""
        source = tmp_path / "a.txt"
        source.write_text("source")
        destination = tmp_path / "b.txt"
        destination.write_text("destination")

        with pytest.raises(FileExistsError):
            file_ops.relocate(source, destination)

        assert source.read_text() == "source"
        assert destination.read_text() == "destination"

    def test_without_hard_links(self, tmp_path, file_ops, monkeypatch):
        """Test filesystems that refuse hard links fall back to a checked rename."""
        def unsupported(src, dst, **kwargs):
            raise OSError(errno.EPERM, "Operation not permitted")

        monkeypatch.setattr(os, "link", unsupported)
        source = tmp_path / "a.txt"
        source.write_text("source")
        taken = tmp_path / "taken.txt"
        taken.write_text("taken")

        with pytest.raises(FileExistsError):
            file_ops.relocate(source, taken)
        file_ops.relocate(source, tmp_path / "free.txt")

        assert taken.read_text() == "taken"
        assert (tmp_path / "free.txt").read_text() == "source"
        assert not source.exists()

    def test_other_errors_propagate(self, tmp_path, file_ops):
        with pytest.raises(FileNotFoundError):
            file_ops.relocate(tmp_path / "missing", tmp_path / "elsewhere")


class TestEnsureCategoryFolders:
    """Tests for category folder provisioning."""

    def test_creates_missing_folders(self, tmp_path, file_ops):
        (tmp_path / "Images").mkdir()

        created = file_ops.ensure_category_folders(tmp_path, ["Images", "Documents"])

        assert created == [tmp_path / "Documents"]
        assert (tmp_path / "Documents").is_dir()

    def test_idempotent(self, tmp_path, file_ops):
        file_ops.ensure_category_folders(tmp_path, ["Documents"])
        assert file_ops.ensure_category_folders(tmp_path, ["Documents"]) == []
