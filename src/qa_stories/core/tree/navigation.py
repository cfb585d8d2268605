"""Tree navigation: locate and replace stories and folders.

All functions are pure. Replacements rebuild the path from the root to the
changed node and share every untouched subtree with the input tree.
Traversal is depth-first pre-order: a folder's own stories are visited before
its subfolders, in list order.
"""

from collections.abc import Callable, Iterator
from dataclasses import replace

from qa_stories.models.story import Story, StoryFolder


def iter_stories(root: StoryFolder) -> Iterator[tuple[StoryFolder, Story]]:
    """Yield (owning folder, story) pairs in pre-order."""
    yield from ((root, story) for story in root.stories)
    for sub in root.subfolders:
        yield from iter_stories(sub)


def iter_folders(root: StoryFolder, *, depth: int = 0) -> Iterator[tuple[StoryFolder, int]]:
    """Yield (folder, depth) pairs in pre-order, starting with `root` at `depth`."""
    yield root, depth
    for sub in root.subfolders:
        yield from iter_folders(sub, depth=depth + 1)


def find_story(root: StoryFolder, story_id: str) -> Story | None:
    """Return the first story with `story_id`, or None."""
    for _, story in iter_stories(root):
        if story.id == story_id:
            return story
    return None


def find_story_folder(root: StoryFolder, story_id: str) -> StoryFolder | None:
    """Return the folder that owns `story_id`, or None."""
    for folder, story in iter_stories(root):
        if story.id == story_id:
            return folder
    return None


def find_folder(root: StoryFolder, folder_id: str) -> StoryFolder | None:
    for folder, _ in iter_folders(root):
        if folder.id == folder_id:
            return folder
    return None


def _rebuild(
    folder: StoryFolder, change: Callable[[StoryFolder], StoryFolder | None]
) -> StoryFolder | None:
    """Apply `change` to the first folder (pre-order) for which it returns a new folder.

    Returns the rebuilt folder, or None when nothing in this subtree changed.
    """
    changed = change(folder)
    if changed is not None:
        return changed
    for i, sub in enumerate(folder.subfolders):
        new_sub = _rebuild(sub, change)
        if new_sub is not None:
            subfolders = (*folder.subfolders[:i], new_sub, *folder.subfolders[i + 1 :])
            return replace(folder, subfolders=subfolders)
    return None


def replace_story(root: StoryFolder, updated: Story) -> StoryFolder:
    """Return a new tree with the story of the same id replaced in place.

    If no story matches, the tree is returned unchanged.
    """

    def change(folder: StoryFolder) -> StoryFolder | None:
        for i, story in enumerate(folder.stories):
            if story.id == updated.id:
                stories = (*folder.stories[:i], updated, *folder.stories[i + 1 :])
                return replace(folder, stories=stories)
        return None

    return _rebuild(root, change) or root


def replace_folder(root: StoryFolder, updated: StoryFolder) -> StoryFolder:
    """Return a new tree with the folder of the same id replaced in place.

    If no folder matches, the tree is returned unchanged.
    """
    return _rebuild(root, lambda f: updated if f.id == updated.id else None) or root


def add_story_to_folder(root: StoryFolder, folder_id: str, story: Story) -> StoryFolder:
    """Append `story` to a folder's stories. Unknown folder: tree unchanged."""
    return (
        _rebuild(
            root,
            lambda f: replace(f, stories=(*f.stories, story)) if f.id == folder_id else None,
        )
        or root
    )


def add_subfolder(root: StoryFolder, parent_id: str, folder: StoryFolder) -> StoryFolder:
    """Append `folder` under `parent_id`, fixing up its parent_id. Unknown parent: unchanged."""
    child = replace(folder, parent_id=parent_id)
    return (
        _rebuild(
            root,
            lambda f: replace(f, subfolders=(*f.subfolders, child)) if f.id == parent_id else None,
        )
        or root
    )


def remove_story(root: StoryFolder, story_id: str) -> StoryFolder:
    """Return a new tree without the story. Unknown story: tree unchanged."""

    def change(folder: StoryFolder) -> StoryFolder | None:
        if not any(s.id == story_id for s in folder.stories):
            return None
        return replace(folder, stories=tuple(s for s in folder.stories if s.id != story_id))

    return _rebuild(root, change) or root
