from __future__ import annotations

from pathlib import Path, PurePosixPath
from urllib.parse import quote

from app.core.settings import settings
from app.services.errors import ValidationError


# Extensions whose content can execute scripts when rendered in a browser.
_DANGEROUS_EXTENSIONS = {".html", ".htm", ".svg", ".xhtml", ".js", ".mjs", ".xml"}


def safe_file_name(file_name: str | None, fallback: str = "upload.bin") -> str:
    if not file_name:
        return fallback
    name = Path(file_name).name or fallback
    if Path(name).suffix.lower() in _DANGEROUS_EXTENSIONS:
        raise ValidationError(f"File type '{Path(name).suffix}' is not allowed")
    return name


class LocalBlobStore:
    """Blob store on the local filesystem, served from ``base_url``."""

    def __init__(self, base_path: str, base_url: str) -> None:
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")

    def _resolve_safe_path(self, object_key: str) -> Path:
        if "\\" in object_key:
            raise ValidationError("Invalid storage path")
        key_path = PurePosixPath(object_key)
        if key_path.is_absolute() or ".." in key_path.parts:
            raise ValidationError("Invalid storage path")
        base = self.base_path.resolve()
        resolved = (base / Path(object_key)).resolve()
        if resolved != base and base not in resolved.parents:
            raise ValidationError("Invalid storage path")
        return resolved

    def url_for(self, object_key: str) -> str:
        return f"{self.base_url}/{quote(object_key)}"

    async def put(self, path: str, content: bytes) -> str:
        target = self._resolve_safe_path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        return self.url_for(path)

    async def delete(self, path: str) -> None:
        target = self._resolve_safe_path(path)
        target.unlink(missing_ok=True)


def get_blob_store() -> LocalBlobStore:
    return LocalBlobStore(settings.storage_local_path, settings.storage_base_url)
