import json
import logging
import os

from quiztime.errors import StorageUnavailableError

logger = logging.getLogger(__name__)


class JsonDocumentStore:
    """
    Reads whole JSON documents from a data directory.

    A missing document reads as the supplied default. A document that cannot
    be opened or decoded raises ``StorageUnavailableError`` like any other
    store failure.
    """

    def __init__(self, data_dir):
        self.data_dir = data_dir

    def path_for(self, name):
        return os.path.join(self.data_dir, f"{name}.json")

    def read(self, name, default=None):
        path = self.path_for(name)
        if not os.path.exists(path):
            logger.debug(f"No JSON document at {path}")
            return default
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (ValueError, OSError) as e:
            # JSONDecodeError and UnicodeDecodeError are both ValueErrors
            logger.error(f"Could not read JSON document {path}: {e}")
            raise StorageUnavailableError(f"Could not read {name} data")
