"""
File Operations
===============

Safe file operations for organizing files.
Moves files into category folders with collision-avoiding renames,
never replacing a file that already sits at the destination.
"""

import errno
import os
import shutil
import uuid
from pathlib import Path
from typing import Iterable, List, Union

from folder_organizer.utils.logging_config import get_logger
from folder_organizer.utils.exceptions import FileProcessingError, ErrorCode

logger = get_logger(__name__)

PathLike = Union[str, Path]

# Errors from os.link that mean "cannot link here", not "move failed"
_LINK_UNSUPPORTED = frozenset(
    code for code in (
        errno.EXDEV, errno.EPERM, errno.EMLINK, errno.ENOSYS,
        getattr(errno, "ENOTSUP", None), getattr(errno, "EOPNOTSUPP", None),
    )
    if code is not None
)


class FileOperations:
    """Collision-safe moves into category folders.

    Stateless apart from the collision cap; one instance can be shared
    between the batch organizer and any number of watch sessions.
    """

    MAX_COLLISION_ATTEMPTS = 1000

    def __init__(self, max_collision_attempts: int = MAX_COLLISION_ATTEMPTS):
        self.max_collision_attempts = max_collision_attempts

    def move_file(
        self,
        source: PathLike,
        category: str,
        destination_root: PathLike
    ) -> Path:
        """Move a file into ``destination_root/category``.

        Args:
            source: File to move.
            category: Category folder name.
            destination_root: Folder that holds the category folders.

        Returns:
            Final path of the moved file, which carries a ``_N`` suffix when
            the plain name was taken.

        Raises:
            FileProcessingError: If the source is gone, the destination
                folder cannot be created, or the rename fails.
        """
        source = Path(source)
        dest_dir = Path(destination_root) / category

        if not source.exists():
            raise FileProcessingError(
                "Source file does not exist",
                file_path=str(source),
                error_code=ErrorCode.FILE_NOT_FOUND
            )

        self._make_directory(dest_dir)

        for _ in range(self.max_collision_attempts):
            dest_path = self._resolve_conflict(dest_dir / source.name)
            try:
                self.relocate(source, dest_path)
            except FileExistsError:
                logger.debug(f"{dest_path.name} appeared before the move, picking another name")
                continue
            except OSError as e:
                raise FileProcessingError.from_os_error(
                    "Failed to move file", e, file_path=str(source)
                )

            logger.info(f"Moved: {source.name} -> {dest_path}", extra={"category": category})
            return dest_path

        raise FileProcessingError(
            "Too many files with same name",
            file_path=str(dest_dir / source.name),
            error_code=ErrorCode.TOO_MANY_COLLISIONS
        )

    def relocate(self, source: Path, destination: Path) -> None:
        """Move ``source`` to ``destination`` without replacing anything there.

        Where the filesystem supports hard links, the file is linked under the
        new name (which fails if the name is taken) and the old name is then
        removed. Elsewhere the existence check before the rename is best
        effort. Across devices the file is copied to a hidden temporary name
        next to the destination and moved into place, so the final name only
        appears once the copy is complete. The source is removed last.

        Raises:
            FileExistsError: If ``destination`` is already taken.
            OSError: Whatever else the underlying filesystem calls raise.
        """
        if self._link_into_place(source, destination):
            self._drop_old_name(source, destination)
            return

        try:
            self._rename_into_place(source, destination)
            return
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise

        logger.debug(f"Cross-device move, copying: {source} -> {destination}")
        staging = destination.parent / f".{destination.name}.{uuid.uuid4().hex[:8]}.moving"
        try:
            shutil.copy2(source, staging)
            if self._link_into_place(staging, destination):
                os.unlink(staging)
            else:
                self._rename_into_place(staging, destination)
        except OSError:
            try:
                staging.unlink()
            except FileNotFoundError:
                pass
            raise
        os.unlink(source)

    def _link_into_place(self, source: Path, destination: Path) -> bool:
        """Hard-link ``source`` as ``destination``.

        Returns:
            False when the filesystem cannot link these two paths.

        Raises:
            FileExistsError: If ``destination`` is already taken.
        """
        try:
            os.link(source, destination, follow_symlinks=False)
        except NotImplementedError:
            return False
        except OSError as e:
            if e.errno in _LINK_UNSUPPORTED:
                return False
            raise
        return True

    def _drop_old_name(self, source: Path, destination: Path) -> None:
        try:
            os.unlink(source)
        except OSError:
            os.unlink(destination)
            raise

    def _rename_into_place(self, source: Path, destination: Path) -> None:
        if os.path.lexists(destination):
            raise FileExistsError(errno.EEXIST, "Destination already exists", str(destination))
        os.rename(source, destination)

    def ensure_category_folders(
        self,
        destination_root: PathLike,
        categories: Iterable[str]
    ) -> List[Path]:
        """Create any missing category folder under ``destination_root``.

        Returns:
            The folders that had to be created.

        Raises:
            FileProcessingError: If a folder cannot be created.
        """
        root = Path(destination_root)
        created = []
        for category in categories:
            folder = root / category
            if folder.is_dir():
                continue
            self._make_directory(folder)
            created.append(folder)
            logger.info(f"Created category folder: {folder}")
        return created

    def _make_directory(self, folder: Path) -> None:
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileProcessingError(
                f"Cannot create directory: {e}",
                file_path=str(folder),
                error_code=ErrorCode.DIRECTORY_CREATION_FAILED,
                cause=e
            )

    def _resolve_conflict(self, dest_path: Path) -> Path:
        """Resolve filename conflict by appending counter.

        Args:
            dest_path: Desired destination path.

        Returns:
            Available path (may have counter suffix).
        """
        if not os.path.lexists(dest_path):
            return dest_path

        stem = dest_path.stem
        suffix = dest_path.suffix
        parent = dest_path.parent

        for counter in range(1, self.max_collision_attempts + 1):
            new_path = parent / f"{stem}_{counter}{suffix}"
            if not os.path.lexists(new_path):
                return new_path

        raise FileProcessingError(
            "Too many files with same name",
            file_path=str(dest_path),
            error_code=ErrorCode.TOO_MANY_COLLISIONS
        )
