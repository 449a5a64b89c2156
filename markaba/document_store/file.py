"""JSON-file document store: one pretty-printed UTF-8 file per domain."""

import json
import os
import tempfile
from pathlib import Path
from typing import Mapping, Optional

from markaba.document_store.base import DocumentStore
from markaba.documents import CachedDocument
from markaba.errors import StoreUnavailable
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="document_store/file")


class JsonFileDocumentStore(DocumentStore):
    """Stores each domain at its configured path, or `<base_dir>/<domain>.json`."""

    def __init__(self, paths: Mapping[str, str | Path] | None = None, base_dir: str | Path = "data") -> None:
        self.base_dir = Path(base_dir)
        self.paths = {domain: Path(p) for domain, p in (paths or {}).items()}

    def path_for(self, domain: str) -> Path:
        """Return the file backing `domain`."""
        return self.paths.get(domain) or self.base_dir / f"{domain}.json"

    def describe(self, domain: str) -> str:
        return str(self.path_for(domain))

    def load(self, domain: str) -> Optional[CachedDocument]:
        """Read and parse the domain's file; missing or corrupt files load as None."""
        path = self.path_for(domain)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not read cached document; treating as absent",
                           extra={"domain": domain, "path": str(path), "error": str(exc)})
            return None

        try:
            return CachedDocument.from_dict(json.loads(raw))
        except ValueError as exc:
            # json.JSONDecodeError is a ValueError too
            logger.warning("Cached document is corrupt; treating as absent",
                           extra={"domain": domain, "path": str(path), "error": str(exc)})
            return None

    def save(self, domain: str, document: CachedDocument) -> None:
        """Write the whole document through a temp file renamed into place."""
        path = self.path_for(domain)
        try:
            body = json.dumps(document.to_dict(), ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as exc:
            raise StoreUnavailable(f"Document for '{domain}' is not JSON serializable: {exc}",
                                   domain=domain) from exc

        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(body)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as exc:
            raise StoreUnavailable(f"Failed to save {domain} data to {path}: {exc}", domain=domain) from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

        logger.debug("Saved cached document", extra={"domain": domain, "path": str(path)})
