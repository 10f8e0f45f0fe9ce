"""
Vector Store with FAISS Cosine Indexing

Persistent nearest-neighbor index over embedded news passages.

The collection for a corpus is created lazily: until the first insert
supplies concrete vectors the store sits in the ``UNINITIALIZED`` state and
answers every search with an empty list. The first insert fixes the vector
dimensionality for the lifetime of the collection.

Vectors are L2-normalized and stored in an inner-product index, so the
distance metric is cosine: ``distance = 1 - cos`` and ``score = 1 - distance``.
Scores are reported raw (never clamped) and may be negative.
"""

import asyncio
import logging
import os
import pickle
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import faiss
import numpy as np

from ..errors import IndexDimensionError, IndexUnavailable, Result
from ..models import Document, DocumentMetadata, SearchResult

logger = logging.getLogger(__name__)


class IndexState(Enum):
    UNINITIALIZED = 'uninitialized'
    READY = 'ready'


class VectorStore:
    """
    Lazily created FAISS collection for one corpus.

    Lifecycle: ``created`` (constructed) -> ``ready`` (``initialize()``) ->
    ``closed`` (``close()``). Every public operation returns a ``Result``;
    backend and I/O errors are logged and turned into benign values.

    Writers (collection creation and appends) are serialized with an
    ``asyncio.Lock``. Searches take no lock: an append builds and persists
    the next index/records pair off to the side and publishes it with a
    synchronous swap only once it is on disk, so a search always sees a
    consistent snapshot and never a row whose write failed.
    """

    def __init__(
        self,
        db_dir: str = "data/vector_db",
        corpus_name: str = "news_articles"
    ):
        """
        Initialize the vector store. No I/O happens until ``initialize()``.

        Args:
            db_dir: Directory holding the collection files
            corpus_name: Name of the collection; one collection per name
        """
        self.db_dir = db_dir
        self.corpus_name = corpus_name
        self.index_path = os.path.join(db_dir, f"{corpus_name}.index")
        self.metadata_path = self.index_path + '.metadata'

        self.state = IndexState.UNINITIALIZED
        self.dimension: Optional[int] = None
        self.index: Optional[faiss.Index] = None
        self.records: List[Dict[str, Any]] = []

        # Number of collections created by this instance
        self.creations = 0

        self._initialized = False
        self._closed = False
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> Result[bool]:
        """
        Open the on-disk collection, or prepare to create it on first insert.

        Idempotent: once initialized, further calls are no-ops.

        Returns:
            Result whose value is True when an existing collection was opened
        """
        if self._closed:
            return Result.failure(IndexUnavailable("Vector store is closed"), False)

        async with self._lock:
            if self._initialized:
                return Result.success(self.state is IndexState.READY)

            try:
                await asyncio.to_thread(self._load_from_disk)
            except Exception as e:
                logger.error(f"Failed to initialize vector store at {self.index_path}: {e}")
                self._reset_state()
                return Result.failure(IndexUnavailable(str(e)), False)

            self._initialized = True
            return Result.success(self.state is IndexState.READY)

    def _load_from_disk(self) -> None:
        os.makedirs(self.db_dir, exist_ok=True)

        if not os.path.exists(self.index_path):
            logger.info(
                f"Collection {self.corpus_name} does not exist yet. "
                "It will be created on first ingestion."
            )
            return

        loaded_index = faiss.read_index(self.index_path)

        if os.path.exists(self.metadata_path):
            with open(self.metadata_path, 'rb') as f:
                loaded_records = pickle.load(f)
        else:
            loaded_records = []

        # Verify synchronization
        if loaded_index.ntotal != len(loaded_records):
            raise ValueError(
                f"Index has {loaded_index.ntotal} vectors but "
                f"metadata has {len(loaded_records)} entries"
            )

        self.index = loaded_index
        self.records = loaded_records
        self.dimension = loaded_index.d
        self.state = IndexState.READY
        logger.info(
            f"Opened existing collection {self.corpus_name} "
            f"({loaded_index.ntotal} documents, dimension {self.dimension})"
        )

    async def close(self) -> None:
        """Release the in-memory index. Data on disk is kept."""
        async with self._lock:
            self._reset_state()
            self._closed = True
            self._initialized = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _reset_state(self) -> None:
        self.state = IndexState.UNINITIALIZED
        self.dimension = None
        self.index = None
        self.records = []

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add_documents(self, documents: Sequence[Document]) -> Result[int]:
        """
        Add documents, creating the collection on the first non-empty call.

        The whole batch is validated before anything is written: all vectors
        must share one dimensionality, equal to the collection's once it
        exists. An empty batch is a no-op.

        Args:
            documents: Documents to insert

        Returns:
            Result whose value is the number of documents written
        """
        if not documents:
            return Result.success(0)

        if self._closed:
            return Result.failure(IndexUnavailable("Vector store is closed"), 0)

        if not self._initialized:
            init = await self.initialize()
            if not init.ok:
                return Result.failure(init.error, 0)

        try:
            vectors = self._to_matrix([doc.vector for doc in documents])
        except IndexDimensionError as e:
            logger.error(f"Rejected batch of {len(documents)} documents: {e}")
            return Result.failure(e, 0)
        except (TypeError, ValueError) as e:
            logger.error(f"Rejected batch of {len(documents)} documents: {e}")
            return Result.failure(IndexUnavailable(f"Invalid vectors: {e}"), 0)

        async with self._lock:
            if self._closed:
                return Result.failure(IndexUnavailable("Vector store is closed"), 0)

            if self.state is IndexState.READY and vectors.shape[1] != self.dimension:
                error = IndexDimensionError(
                    f"Embedding dimension ({vectors.shape[1]}) must match "
                    f"collection dimension ({self.dimension})"
                )
                logger.error(f"Rejected batch of {len(documents)} documents: {error}")
                return Result.failure(error, 0)

            created = self.state is IndexState.UNINITIALIZED

            # Build and persist the next generation before publishing it
            if created:
                index = faiss.IndexFlatIP(vectors.shape[1])
            else:
                index = faiss.clone_index(self.index)
            index.add(vectors)
            records = self.records + [self._to_record(doc) for doc in documents]

            try:
                await asyncio.to_thread(self._persist, index, records)
            except Exception as e:
                logger.error(f"Error adding documents to collection {self.corpus_name}: {e}")
                return Result.failure(IndexUnavailable(str(e)), 0)

            self.index = index
            self.records = records
            if created:
                self.dimension = vectors.shape[1]
                self.state = IndexState.READY
                self.creations += 1
                logger.info(
                    f"Created collection {self.corpus_name} with {len(documents)} documents "
                    f"(dimension {self.dimension})."
                )
            else:
                logger.info(f"Added {len(documents)} documents to {self.corpus_name}.")

            return Result.success(len(documents))

    def _persist(self, index: faiss.Index, records: List[Dict[str, Any]]) -> None:
        """Write index and records to disk, each through an atomic rename."""
        os.makedirs(self.db_dir, exist_ok=True)

        temp_index_path = self.index_path + '.tmp'
        temp_metadata_path = self.metadata_path + '.tmp'
        try:
            faiss.write_index(index, temp_index_path)
            with open(temp_metadata_path, 'wb') as f:
                pickle.dump(records, f, protocol=pickle.HIGHEST_PROTOCOL)
            os.replace(temp_index_path, self.index_path)
            os.replace(temp_metadata_path, self.metadata_path)
        except Exception:
            for path in (temp_index_path, temp_metadata_path):
                if os.path.exists(path):
                    os.remove(path)
            raise

    async def drop_collection(self) -> Result[bool]:
        """
        Delete the collection and return to the uninitialized state.

        Searches after a drop behave as on an empty index.
        """
        async with self._lock:
            self._reset_state()
            try:
                await asyncio.to_thread(self._remove_files)
            except Exception as e:
                logger.error(f"Error dropping collection {self.corpus_name}: {e}")
                return Result.failure(IndexUnavailable(str(e)), False)

            logger.info(f"Dropped collection {self.corpus_name}.")
            return Result.success(True)

    def _remove_files(self) -> None:
        for path in (self.index_path, self.metadata_path):
            if os.path.exists(path):
                os.remove(path)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def search(
        self,
        query_vector: Sequence[float],
        k: int = 3
    ) -> Result[List[SearchResult]]:
        """
        Find the ``k`` documents closest to ``query_vector``.

        Args:
            query_vector: Query embedding
            k: Maximum number of results

        Returns:
            Result with results ordered by ascending distance (descending
            score); ties keep insertion order. An uninitialized collection
            yields an empty list.
        """
        if self._closed:
            return Result.failure(IndexUnavailable("Vector store is closed"), [])

        if self.state is not IndexState.READY or self.index.ntotal == 0:
            logger.warning('Vector store is empty or not initialized.')
            return Result.success([])

        if k <= 0:
            return Result.success([])

        try:
            query = self._to_matrix([query_vector])
            if query.shape[1] != self.dimension:
                raise IndexDimensionError(
                    f"Query dimension ({query.shape[1]}) must match "
                    f"collection dimension ({self.dimension})"
                )

            # FAISS picks arbitrarily among equal scores at the cutoff, so
            # widen the fetch until the k-th score is strictly beaten
            total = self.index.ntotal
            fetch = min(k, total)
            while True:
                similarities, indices = self.index.search(query, fetch)
                if fetch == total or similarities[0][-1] < similarities[0][k - 1]:
                    break
                fetch = min(fetch * 2, total)

            hits = []
            for similarity, idx in zip(similarities[0], indices[0]):
                if 0 <= idx < len(self.records):
                    hits.append((1.0 - float(similarity), int(idx)))

            # Stable ordering: distance first, then insertion position
            hits.sort(key=lambda hit: (hit[0], hit[1]))
            hits = hits[:k]

            results = []
            for distance, idx in hits:
                record = self.records[idx]
                results.append(SearchResult(
                    id=record['id'],
                    text=record['text'],
                    score=1.0 - distance,
                    metadata=DocumentMetadata.from_dict(record['metadata'])
                ))
            return Result.success(results)

        except Exception as e:
            logger.error(f"Error searching collection {self.corpus_name}: {e}")
            return Result.failure(
                e if isinstance(e, IndexUnavailable) else IndexUnavailable(str(e)),
                []
            )

    def count(self) -> int:
        """Number of documents in the collection (0 when uninitialized)."""
        if self.index is None:
            return 0
        return self.index.ntotal

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the vector store.

        Returns:
            Dictionary with statistics
        """
        return {
            'corpus_name': self.corpus_name,
            'state': self.state.value,
            'total_vectors': self.count(),
            'dimension': self.dimension,
            'metric': 'cosine',
            'index_type': 'IndexFlatIP',
            'index_path': self.index_path,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_matrix(vectors: Sequence[Sequence[float]]) -> np.ndarray:
        """Stack vectors into a normalized float32 matrix."""
        lengths = {len(vector) for vector in vectors}
        if len(lengths) != 1:
            raise IndexDimensionError(
                f"All vectors in a batch must share one dimension, got {sorted(lengths)}"
            )
        if 0 in lengths:
            raise IndexDimensionError("Vectors must not be empty")

        matrix = np.ascontiguousarray(np.array(vectors, dtype=np.float32))
        faiss.normalize_L2(matrix)
        return matrix

    @staticmethod
    def _to_record(document: Document) -> Dict[str, Any]:
        return {
            'id': document.id,
            'text': document.text,
            'metadata': {
                'title': document.metadata.title,
                'link': document.metadata.link,
                'published_at': document.metadata.published_at,
                'source': document.metadata.source,
            },
        }

    def __repr__(self) -> str:
        """String representation of the vector store."""
        return (
            f"VectorStore(corpus={self.corpus_name!r}, "
            f"state={self.state.value}, "
            f"vectors={self.count()}, "
            f"dimension={self.dimension})"
        )
