"""Exceptions and warnings raised by the story tree core."""


class StoryTreeError(Exception):
    """Base class for story tree errors."""


class NotFoundError(StoryTreeError, LookupError):
    """A story, folder, test, section or template id has no match."""


class CorruptStateError(StoryTreeError, ValueError):
    """A persisted document failed structural validation."""


class MissingTemplateWarning(UserWarning):
    """A test references a template that no longer exists."""
