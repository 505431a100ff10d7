import os
import tempfile
from pathlib import Path
from typing import AsyncIterable


class ObjectStorage:
    """
    Stores remote cache objects on disk: <storage_dir>/<bucket>/<key>.

    Objects are write-once; a second upload for an existing key is
    discarded.
    """

    def __init__(self, storage_dir: Path):
        self.storage_dir = Path(storage_dir).resolve()
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def object_path(self, bucket: str, key: str) -> Path:
        parts = [bucket] + key.split("/")
        if any(part in ("", ".", "..") or "\\" in part for part in parts):
            raise ValueError(f"invalid object key: {bucket}/{key}")
        path = self.storage_dir.joinpath(*parts).resolve()
        if self.storage_dir not in path.parents:
            raise ValueError(f"invalid object key: {bucket}/{key}")
        return path

    async def save_stream(self, bucket: str, key: str, chunks: AsyncIterable[bytes]) -> bool:
        """
        Write an object from a stream of chunks.

        Returns:
            True if the object was written, False if it already existed
        """
        path = self.object_path(bucket, key)
        if path.is_file():
            return False

        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as f:
                async for chunk in chunks:
                    f.write(chunk)
            os.replace(temp_name, path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise
        return True
