"""Tests for pure tree navigation and path-copying replacement."""

import dataclasses

from qa_stories.core.tree.navigation import (
    add_story_to_folder,
    add_subfolder,
    find_folder,
    find_story,
    find_story_folder,
    iter_folders,
    iter_stories,
    remove_story,
    replace_folder,
    replace_story,
)
from qa_stories.models.story import Story, StoryFolder


def test_iter_stories_visits_own_stories_before_subfolders(sample_tree: StoryFolder) -> None:
    assert [s.id for _, s in iter_stories(sample_tree)] == ["s1", "s2"]


def test_iter_folders_reports_depth(sample_tree: StoryFolder) -> None:
    assert [(f.id, d) for f, d in iter_folders(sample_tree)] == [
        ("root", 0),
        ("f1", 1),
        ("f2", 2),
    ]


def test_find_story_in_nested_folder(sample_tree: StoryFolder) -> None:
    story = find_story(sample_tree, "s2")
    assert story is not None
    assert story.title == "Declines"
    folder = find_story_folder(sample_tree, "s2")
    assert folder is not None
    assert folder.id == "f2"


def test_find_story_missing_returns_none(sample_tree: StoryFolder) -> None:
    assert find_story(sample_tree, "nope") is None
    assert find_story_folder(sample_tree, "nope") is None
    assert find_folder(sample_tree, "nope") is None


def test_find_story_prefers_folder_own_stories_over_subfolders() -> None:
    """With duplicate ids, the pre-order first match wins."""
    deep = Story("x", "deep", "", "t")
    nested = StoryFolder("sub", "Sub", "t", parent_id="root", stories=(deep,))
    root = StoryFolder(
        "root", "Root", "t", stories=(Story("x", "shallow", "", "t"),), subfolders=(nested,)
    )
    found = find_story(root, "x")
    assert found is not None
    assert found.title == "shallow"


def test_replace_story_returns_updated_tree(sample_tree: StoryFolder) -> None:
    story = find_story(sample_tree, "s2")
    assert story is not None
    updated = dataclasses.replace(story, title="Card declines")

    new_root = replace_story(sample_tree, updated)

    assert find_story(new_root, "s2") == updated
    # Input tree is unchanged.
    assert find_story(sample_tree, "s2") == story


def test_replace_story_shares_untouched_subtrees(sample_tree: StoryFolder) -> None:
    story = sample_tree.stories[0]
    new_root = replace_story(sample_tree, dataclasses.replace(story, title="Sign in"))
    assert new_root.subfolders[0] is sample_tree.subfolders[0]


def test_replace_story_with_identical_story_gives_equal_tree(sample_tree: StoryFolder) -> None:
    story = find_story(sample_tree, "s2")
    assert story is not None
    assert replace_story(sample_tree, story) == sample_tree


def test_replace_story_unknown_id_is_a_no_op(sample_tree: StoryFolder) -> None:
    ghost = Story("ghost", "Ghost", "", "t")
    assert replace_story(sample_tree, ghost) is sample_tree


def test_replace_folder(sample_tree: StoryFolder) -> None:
    cards = find_folder(sample_tree, "f2")
    assert cards is not None
    new_root = replace_folder(sample_tree, dataclasses.replace(cards, name="Credit cards"))
    renamed = find_folder(new_root, "f2")
    assert renamed is not None
    assert renamed.name == "Credit cards"


def test_add_subfolder_sets_parent_id(sample_tree: StoryFolder) -> None:
    folder = StoryFolder("f3", "Wallets", "t")
    new_root = add_subfolder(sample_tree, "f1", folder)
    added = find_folder(new_root, "f3")
    assert added is not None
    assert added.parent_id == "f1"
    assert add_subfolder(sample_tree, "nope", folder) is sample_tree


def test_add_story_to_folder_appends(sample_tree: StoryFolder) -> None:
    new_root = add_story_to_folder(sample_tree, "f1", Story("s9", "Refunds", "", "t"))
    assert find_story_folder(new_root, "s9") == find_folder(new_root, "f1")
    assert add_story_to_folder(sample_tree, "nope", Story("s9", "x", "", "t")) is sample_tree


def test_remove_story(sample_tree: StoryFolder) -> None:
    new_root = remove_story(sample_tree, "s2")
    assert find_story(new_root, "s2") is None
    assert find_story(new_root, "s1") is not None
    assert remove_story(sample_tree, "nope") is sample_tree
