import logging
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from domain.hash_constants import BLOCK_SIZE
from infrastructure.api_key_validator import ApiKeyValidator, AuthResult
from infrastructure.object_storage import ObjectStorage

logger = logging.getLogger(__name__)


class Config:
    def __init__(
        self,
        storage_dir: str,
        is_public: bool = False,
        api_keys: Optional[List[str]] = None,
    ):
        self.storage_dir = storage_dir
        self.is_public = is_public
        self.api_keys = api_keys or []


class StoreResponseDTO(BaseModel):
    bucket: str = Field(..., description="Bucket the object belongs to")
    key: str = Field(..., description="Object key")
    stored: bool = Field(..., description="False if the object already existed")


config: Optional[Config] = None
object_storage: Optional[ObjectStorage] = None
api_key_validator: Optional[ApiKeyValidator] = None


app = FastAPI(
    title="Dependency cache object store",
    description="Remote tier for cached dependency archives",
    version="1.0.0",
)


def validate_api_key(authorization: Optional[str] = Header(None)) -> None:
    """Validate API key using Bearer token format."""
    if not config or config.is_public:
        return

    if not api_key_validator:
        raise HTTPException(status_code=500, detail="Server configuration error")

    result = api_key_validator.check_authorization(authorization)
    if result is AuthResult.MISSING:
        raise HTTPException(status_code=401, detail="Missing Authorization Bearer <APIKEY>")
    if result is AuthResult.MALFORMED:
        raise HTTPException(status_code=401, detail="Invalid authorization format. Use Bearer <APIKEY>")
    if result is AuthResult.REJECTED:
        raise HTTPException(status_code=403, detail="Invalid API key")


def _storage() -> ObjectStorage:
    if not object_storage:
        raise HTTPException(status_code=500, detail="Server not properly configured")
    return object_storage


def _object_path_or_400(storage: ObjectStorage, bucket: str, key: str) -> Path:
    try:
        return storage.object_path(bucket, key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.put(
    "/objects/{bucket}/{key:path}",
    response_model=StoreResponseDTO,
    dependencies=[Depends(validate_api_key)],
)
async def put_object(bucket: str, key: str, request: Request):
    """
    Store a cache archive.

    The body is streamed to disk and renamed into place once complete.
    Existing objects are never overwritten.
    """
    storage = _storage()
    _object_path_or_400(storage, bucket, key)

    try:
        stored = await storage.save_stream(bucket, key, request.stream())
    except OSError as e:
        logger.error("failed to store %s/%s: %s", bucket, key, e)
        raise HTTPException(status_code=500, detail=f"Error storing object: {e}")

    logger.info("%s %s/%s", "stored" if stored else "kept existing", bucket, key)
    return StoreResponseDTO(bucket=bucket, key=key, stored=stored)


@app.get("/objects/{bucket}/{key:path}", dependencies=[Depends(validate_api_key)])
async def get_object(bucket: str, key: str):
    """Stream a cache archive."""
    storage = _storage()
    path = _object_path_or_400(storage, bucket, key)

    if not path.is_file():
        raise HTTPException(status_code=404, detail="Object not found")

    def iterfile():
        with open(path, 'rb') as f:
            while chunk := f.read(BLOCK_SIZE):
                yield chunk

    return StreamingResponse(
        iterfile(),
        media_type="application/gzip",
        headers={
            "Content-Length": str(path.stat().st_size),
            "Content-Disposition": f"attachment; filename={path.name}",
        },
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


def initialize_app(
    storage_dir: str,
    is_public: bool = False,
    api_keys: Optional[List[str]] = None,
):
    """Initialize the FastAPI application with configuration."""
    global config, object_storage, api_key_validator

    config = Config(storage_dir=storage_dir, is_public=is_public, api_keys=api_keys)
    object_storage = ObjectStorage(Path(storage_dir))
    api_key_validator = None if is_public else ApiKeyValidator(config.api_keys)

    return app
