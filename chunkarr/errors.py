class MetadataError(Exception):
    pass


class CorruptMetadataError(MetadataError):
    """Metadata document is present but cannot be parsed or violates an
    invariant of the array model."""

    def __init__(self, path, reason):
        super().__init__(f"corrupt metadata at path {path!r}: {reason}")
        self.path = path
        self.reason = reason


class _BaseChunkarrError(ValueError):
    _msg = ""

    def __init__(self, *args):
        super().__init__(self._msg.format(*args))


class _BaseChunkarrIndexError(IndexError):
    _msg = ""

    def __init__(self, *args):
        super().__init__(self._msg.format(*args))


class InvalidShapeError(_BaseChunkarrError):
    _msg = "invalid shape {0!r} with chunks {1!r}: {2}"


class NotFoundError(_BaseChunkarrError):
    _msg = "nothing found at path {0!r}"


class ArrayNotFoundError(NotFoundError):
    _msg = "array not found at path {0!r}"


class GroupNotFoundError(NotFoundError):
    _msg = "group not found at path {0!r}"


class PathNotFoundError(NotFoundError):
    _msg = "nothing found at path {0!r}"


class ContainsGroupError(_BaseChunkarrError):
    _msg = "path {0!r} contains a group"


class ContainsArrayError(_BaseChunkarrError):
    _msg = "path {0!r} contains an array"


class BadCompressorError(_BaseChunkarrError):
    _msg = "bad compressor; expected a numcodecs Codec, config or codec id, found {0!r}"


class NotResizableError(_BaseChunkarrError):
    _msg = "cannot change dimension {0} from {1} to {2}; {3}"


class DecodeError(ValueError):
    """A chunk payload could not be decoded back to its raw bytes."""

    def __init__(self, msg, key=None):
        if key is not None:
            msg = f"{msg} (chunk {key!r})"
        super().__init__(msg)
        self.key = key


class FSPathExistNotDir(GroupNotFoundError):
    _msg = "path exists but is not a directory: {0!r}"


class ReadOnlyError(PermissionError):
    def __init__(self):
        super().__init__("object is read-only")


class BoundsCheckError(_BaseChunkarrIndexError):
    _msg = "index out of bounds for dimension with length {0}"


class NegativeStepError(IndexError):
    def __init__(self):
        super().__init__("only slices with step >= 1 are supported")


class OperationTimeoutError(TimeoutError):
    def __init__(self, timeout, completed, total):
        super().__init__(
            f"operation timed out after {timeout}s with {completed} of {total} chunks processed"
        )
        self.completed = completed
        self.total = total


def err_too_many_indices(selection, shape):
    raise IndexError(f"too many indices for array; expected {len(shape)}, got {len(selection)}")
