from pathlib import Path

from src.wiki_import.domain.rules import make_storage_key


class LocalAssetStore:
    """Workspace-scoped binary store: ``<root>/<workspace_id>/<ms>-<safe-filename>``."""

    def __init__(self, root_dir: str | Path) -> None:
        self.root_dir = Path(root_dir)
        self.root_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, storage_key: str) -> Path:
        return self.root_dir / storage_key

    def write(self, workspace_id: str, title: str, data: bytes, now_ms: int | None = None) -> str:
        workspace_dir = self.root_dir / workspace_id
        workspace_dir.mkdir(parents=True, exist_ok=True)
        filename = make_storage_key(title, now_ms)
        file_path = workspace_dir / filename
        with file_path.open("wb") as f:
            f.write(data)
        return f"{workspace_id}/{filename}"

    def read(self, storage_key: str) -> bytes:
        return self.path_for(storage_key).read_bytes()

    def delete(self, storage_key: str) -> None:
        self.path_for(storage_key).unlink(missing_ok=True)
