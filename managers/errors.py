"""Error types raised by the storage managers.

Each carries a machine-readable ``error_code``; the engine facade turns them
into ``{"success": False, "error": ..., "error_code": ...}`` results.
"""


class StorageError(Exception):
    error_code = "STORAGE_ERROR"


class SandboxUnavailableError(StorageError):
    """The user root cannot be created or accessed."""
    error_code = "SANDBOX_UNAVAILABLE"


class ArtifactIOError(StorageError):
    """A specific save/load/export/copy failed."""
    error_code = "ARTIFACT_IO"


class PayloadDecodeError(ArtifactIOError):
    error_code = "INVALID_PAYLOAD"


class InvalidPathError(StorageError):
    """Folder, filename or document id would escape the user root."""
    error_code = "INVALID_PATH"


class DocumentCorruptError(StorageError):
    error_code = "DOCUMENT_CORRUPT"


class RecordNotFoundError(StorageError):
    error_code = "NOT_FOUND"


class InvalidTransitionError(StorageError):
    error_code = "INVALID_TRANSITION"
