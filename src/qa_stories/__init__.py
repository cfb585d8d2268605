"""QA story tree management and test execution state."""

from qa_stories.core.templates.catalog import JsonTemplateCatalog
from qa_stories.errors import (
    CorruptStateError,
    MissingTemplateWarning,
    NotFoundError,
    StoryTreeError,
)
from qa_stories.protocols import TemplateCatalogProtocol, TreeStoreProtocol
from qa_stories.service import StoryService
from qa_stories.store import JsonTreeStore

__all__ = [
    "CorruptStateError",
    "JsonTemplateCatalog",
    "JsonTreeStore",
    "MissingTemplateWarning",
    "NotFoundError",
    "StoryService",
    "StoryTreeError",
    "TemplateCatalogProtocol",
    "TreeStoreProtocol",
]
