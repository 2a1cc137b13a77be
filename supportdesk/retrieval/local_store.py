import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from supportdesk.errors import DimensionMismatchError
from supportdesk.models.schemas import VectorRecord
from supportdesk.retrieval.similarity import similarity_scores

logger = logging.getLogger(__name__)


class LocalVectorStore:
    """Brute-force cosine search over records persisted to one JSON file.

    Reads and writes share one lock over the whole collection. The embedding
    dimension is fixed by the first record seen in the process, whether it
    came from the file or from ``add``.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self.records: List[VectorRecord] = []
        self.dimension: Optional[int] = None
        self._matrix: Optional[np.ndarray] = None
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self.records)

    def _read_file(self) -> List[VectorRecord]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"{self.path} does not hold a vector list")
        return [VectorRecord.model_validate(item) for item in data]

    def _write_file(self, payload: List[Dict[str, Any]]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent,
                                        prefix=".vectors-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def check_dimension(self, embedding: Sequence[float]):
        if self.dimension is not None and len(embedding) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(embedding))

    async def load(self) -> int:
        """Load the persisted collection; a missing file means empty."""
        async with self._lock:
            records = await asyncio.to_thread(self._read_file)
            dimension = None
            for record in records:
                if dimension is None:
                    dimension = len(record.embedding)
                elif len(record.embedding) != dimension:
                    raise DimensionMismatchError(dimension,
                                                 len(record.embedding))
            self.records = records
            self.dimension = dimension
            self._matrix = None
        if records:
            logger.info(f"Loaded {len(records)} vectors from {self.path}")
        else:
            logger.info("No existing vector database found, "
                        "starting with empty database")
        return len(records)

    async def add(self, embedding: Sequence[float], text: str,
                  metadata: Optional[Dict[str, Any]] = None) -> VectorRecord:
        record = VectorRecord(embedding=list(embedding), text=text,
                              metadata=metadata or {})
        async with self._lock:
            self.check_dimension(record.embedding)
            records = self.records + [record]
            payload = [r.model_dump() for r in records]
            await asyncio.to_thread(self._write_file, payload)
            # Only visible once it is on disk
            self.records = records
            if self.dimension is None:
                self.dimension = len(record.embedding)
            self._matrix = None
        return record

    async def query(self, embedding: Sequence[float],
                    top_k: int = 3) -> List[str]:
        """Texts of the ``top_k`` most similar records, best first."""
        async with self._lock:
            if not self.records or top_k <= 0:
                return []
            self.check_dimension(embedding)
            if self._matrix is None:
                self._matrix = np.asarray(
                    [r.embedding for r in self.records], dtype=float)
            scores = similarity_scores(self._matrix,
                                       np.asarray(embedding, dtype=float))
            # Stable sort keeps insertion order between equal scores
            order = np.argsort(-scores, kind="stable")[:top_k]
            return [self.records[i].text for i in order]
