# flake8: noqa
import logging
from typing import Literal

from chunkarr.config import config
from chunkarr.convenience import get_slice, load, open, save_array, set_slice, tree
from chunkarr.core import Array
from chunkarr.creation import array, create, empty, full, open_array, zeros
from chunkarr.errors import (ArrayNotFoundError, CorruptMetadataError, DecodeError,
                             MetadataError, NotResizableError, OperationTimeoutError)
from chunkarr.hierarchy import Group, group, open_group
from chunkarr.meta import ArrayMetadata
from chunkarr.storage import (DirectoryStore, KVStore, LoggingStore, MemoryStore,
                              NestedDirectoryStore, TempStore)
from chunkarr.sync import ProcessSynchronizer, ThreadSynchronizer
from chunkarr.version import version as __version__

logging.getLogger(__name__).addHandler(logging.NullHandler())


def set_log_level(
    level: Literal["NOTSET", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
) -> None:
    """Set the logging level of the ``chunkarr`` logger.

    A stream handler is attached the first time this is called.
    """
    logger = logging.getLogger(__name__)
    logger.setLevel(level)
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        logger.addHandler(logging.StreamHandler())


def set_format(log_format: str) -> None:
    """Set the format of messages emitted by the handlers of the ``chunkarr`` logger."""
    formatter = logging.Formatter(fmt=log_format)
    for handler in logging.getLogger(__name__).handlers:
        handler.setFormatter(formatter)
