"""Protocols for dependency injection in the story service."""

from typing import Protocol, runtime_checkable

from qa_stories.models.story import StoryFolder, Template


@runtime_checkable
class TreeStoreProtocol(Protocol):
    """Protocol for stores persisting the story tree as one document."""

    def load(self) -> StoryFolder:
        """Load the root folder of the tree."""
        ...

    def save(self, root: StoryFolder) -> None:
        """Persist the whole tree, replacing the previous document."""
        ...


@runtime_checkable
class TemplateCatalogProtocol(Protocol):
    """Protocol for template lookup."""

    def get_by_id(self, template_id: str) -> Template | None:
        """Return the template, or None if it does not exist."""
        ...
