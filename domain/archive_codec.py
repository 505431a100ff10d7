"""Archive codec for cache entries (gzip compressed tar)."""
import os
import shutil
import tarfile
from pathlib import Path
from typing import Optional

from .errors import ArchiveFailed
from .hash_constants import PARTIAL_SUFFIX


def _restore_filter(prefix: str, destination: str):
    """
    Extraction filter for cache entries.

    Renames the archived top-level directory to ``prefix`` and applies the
    ``data`` filter against the extraction root, so links may point anywhere
    inside the root (npm workspaces link ``node_modules/x`` to
    ``../packages/x``). Member paths themselves must stay in destination.
    """
    def member_filter(member: tarfile.TarInfo, dest_path: str) -> tarfile.TarInfo:
        _, sep, rest = member.name.partition("/")
        member = member.replace(name=prefix + sep + rest, deep=False)
        if member.islnk():
            # hard links name another member of the archive
            _, sep, rest = member.linkname.partition("/")
            member = member.replace(linkname=prefix + sep + rest, deep=False)
        member = tarfile.data_filter(member, dest_path)
        target = os.path.normpath(os.path.join(dest_path, member.name))
        if target != destination and not target.startswith(destination + os.sep):
            raise tarfile.OutsideDestinationError(member, target)
        return member
    return member_filter


class TarGzCodec:
    """Compresses an install directory into a cache entry and restores it."""

    @staticmethod
    def compress(source_directory: Path, archive_path: Path) -> bool:
        """
        Creates a tar.gz at archive_path holding source_directory itself.

        The archive is written next to its final location and renamed into
        place, so a half written file is never visible under the entry name.
        Symlinks are stored as links.

        Returns:
            False without touching archive_path if source_directory does not
            exist, True once the archive is in place.

        Raises:
            ArchiveFailed: If the archive cannot be written
        """
        source_directory = Path(source_directory)
        archive_path = Path(archive_path)
        if not source_directory.is_dir():
            return False

        partial_path = archive_path.with_name(archive_path.name + PARTIAL_SUFFIX)
        try:
            archive_path.parent.mkdir(parents=True, exist_ok=True)
            with tarfile.open(partial_path, "w:gz") as tar:
                tar.add(source_directory, arcname=source_directory.name)
            partial_path.replace(archive_path)
        except (OSError, tarfile.TarError) as e:
            partial_path.unlink(missing_ok=True)
            raise ArchiveFailed(f"error archiving {source_directory}: {e}") from e
        return True

    @staticmethod
    def decompress(archive_path: Path, destination: Path, root: Optional[Path] = None) -> None:
        """
        Replaces destination with the directory stored in archive_path.

        Extraction happens relative to root (the project's working
        directory; destination's parent when omitted or when destination is
        not below it). Links in the archive may target anything under root.

        Raises:
            ArchiveFailed: If the archive cannot be read or extracted
        """
        archive_path = Path(archive_path)
        destination = Path(destination)
        try:
            if destination.is_dir() and not destination.is_symlink():
                shutil.rmtree(destination)
            elif destination.exists() or destination.is_symlink():
                destination.unlink()
            destination.parent.mkdir(parents=True, exist_ok=True)

            real_destination = Path(os.path.realpath(destination.parent)) / destination.name
            real_root = Path(os.path.realpath(root)) if root is not None else None
            if real_root is None or real_root not in real_destination.parents:
                real_root = real_destination.parent
            prefix = real_destination.relative_to(real_root).as_posix()

            with tarfile.open(archive_path, "r:gz") as tar:
                tar.extractall(str(real_root), filter=_restore_filter(prefix, str(real_destination)))
        except (OSError, tarfile.TarError) as e:
            raise ArchiveFailed(f"error extracting {archive_path}: {e}") from e
