"""Static file fallback for unmatched GET requests."""

from pathlib import Path

from fastapi.responses import FileResponse
from starlette.responses import Response


class StaticFileResolver:
    """Serve files from a web root, refusing anything outside it."""

    def __init__(self, root: Path, index: str = "index.html") -> None:
        self.root = root.resolve()
        self.index = index

    def resolve(self, path: str) -> Response | None:
        relative = path.lstrip("/") or self.index
        candidate = (self.root / relative).resolve()
        if not candidate.is_relative_to(self.root):
            return None
        if candidate.is_dir():
            candidate = candidate / self.index
        if candidate.is_file():
            return FileResponse(candidate)
        return None
