"""Local file storage for uploaded statements."""

import logging
import re
import uuid
from pathlib import Path
from urllib.parse import unquote, urlparse

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class FileStorage:
    """Stores uploads on disk and hands out retrievable file:// URLs."""

    def __init__(self, root: Path):
        self.root = root

    def upload(self, filename: str, contents: bytes) -> str:
        """Store file contents and return a URL that `fetch` can resolve."""
        self.root.mkdir(parents=True, exist_ok=True)
        safe_name = _UNSAFE_CHARS.sub("_", Path(filename).name) or "upload"
        path = self.root / f"{uuid.uuid4().hex}_{safe_name}"
        path.write_bytes(contents)
        logger.info(f"Stored upload {filename} ({len(contents)} bytes) at {path.name}")
        return path.resolve().as_uri()

    def fetch(self, url: str) -> bytes:
        """Read back the contents behind a URL returned by `upload`."""
        return self._resolve(url).read_bytes()

    def _resolve(self, url: str) -> Path:
        parsed = urlparse(url)
        if parsed.scheme != "file":
            raise FileNotFoundError(f"Unsupported file URL: {url}")

        path = Path(unquote(parsed.path)).resolve()
        if self.root.resolve() not in path.parents:
            raise FileNotFoundError(f"File URL outside of storage: {url}")
        if not path.is_file():
            raise FileNotFoundError(f"Stored file not found: {url}")
        return path
