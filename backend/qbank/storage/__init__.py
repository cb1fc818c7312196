"""
Blob-backed persistence for questions and exam books.
"""
from qbank.storage.blob import BlobStore, FileBlobStore, MemoryBlobStore, QuotaExceeded
from qbank.storage.collection_store import CollectionStore, ExamBookStore, QuestionStore, StoreResult

__all__ = [
    "BlobStore", "FileBlobStore", "MemoryBlobStore", "QuotaExceeded",
    "CollectionStore", "ExamBookStore", "QuestionStore", "StoreResult",
]
