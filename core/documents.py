"""
Mixpack Documents

A document is a file registered for one run. Its size is captured at
registration and never changes; reads go straight to the file by byte range.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .codecs import CodecIOError


@dataclass(frozen=True)
class Document:
    """A source document registered for a run."""
    doc_id: str
    path: Path
    size: int

    @classmethod
    def from_path(cls, path, doc_id: Optional[str] = None) -> "Document":
        """Register a file, capturing its current size.

        Raises:
            CodecIOError: if the file cannot be stat'ed
        """
        path = Path(path)
        try:
            size = path.stat().st_size
        except OSError as e:
            raise CodecIOError(f"Cannot read document {path}: {e}")
        if not path.is_file():
            raise CodecIOError(f"Not a regular file: {path}")
        return cls(doc_id=doc_id or path.name, path=path, size=size)

    def read_range(self, start: int = 0, end: Optional[int] = None) -> bytes:
        """Read bytes [start, end) of the document.

        Raises:
            CodecIOError: on any OS error or if the file shrank under us
        """
        end = self.size if end is None else end
        if start < 0 or end > self.size or start > end:
            raise CodecIOError(
                f"Invalid byte range [{start}, {end}) for {self.doc_id} ({self.size} bytes)"
            )
        try:
            with open(self.path, "rb") as f:
                f.seek(start)
                data = f.read(end - start)
        except OSError as e:
            raise CodecIOError(f"Cannot read document {self.doc_id}: {e}")
        if len(data) != end - start:
            raise CodecIOError(
                f"Short read on {self.doc_id}: expected {end - start} bytes, got {len(data)}"
            )
        return data

    def read_all(self) -> bytes:
        return self.read_range(0, self.size)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "doc_id": self.doc_id,
            "path": str(self.path),
            "size": self.size,
        }


def register_documents(paths: Iterable) -> Tuple[List[Document], List[Tuple[str, str]]]:
    """Register several files, disambiguating repeated file names.

    Returns:
        (documents, rejected) where rejected holds (path, reason) for files
        that could not be registered
    """
    documents = []
    rejected = []
    seen: Dict[str, int] = {}
    for p in paths:
        name = os.path.basename(str(p))
        count = seen.get(name, 0)
        seen[name] = count + 1
        doc_id = name if count == 0 else f"{name}.{count}"
        try:
            documents.append(Document.from_path(p, doc_id=doc_id))
        except CodecIOError as e:
            rejected.append((str(p), str(e)))
    return documents, rejected
