"""Parse and render timestamped note history.

Canonical notes are `Note` records. The bracketed single-string encoding

    [<timestamp>] <author>: <content>
    [Section: <name>] [<timestamp>] <author>: <content>

is kept as a derived view and as an input format for old documents.
"""

import io
import re
from collections.abc import Iterable
from dataclasses import dataclass

from loguru import logger

from qa_stories.config import INITIAL_NOTES_SHOWN, NOTE_COLLAPSE_LINES
from qa_stories.models.story import Note

_SECTION_RE = re.compile(r"\[Section: ([^\]]*)\] (.*)", re.DOTALL)
_ENTRY_RE = re.compile(r"\[([^\]]*)\] ([^\n]*?): (.*)", re.DOTALL)
_SECTION_PREFIX = "Section: "


@dataclass(frozen=True)
class NoteEntry:
    """A structured note parsed from the bracketed encoding."""

    timestamp: str
    author: str
    content: str
    section: str | None = None


@dataclass(frozen=True)
class TruncatedNote:
    """Display form of a note, possibly cut to a maximum number of lines."""

    text: str
    hidden_lines: int = 0

    @property
    def is_truncated(self) -> bool:
        return self.hidden_lines > 0

    @property
    def more_label(self) -> str:
        if not self.hidden_lines:
            return ""
        return f"Show More ({self.hidden_lines} more lines)"


def parse_note(raw: str, *, section: str | None = None) -> NoteEntry | None:
    """Parse one encoded note.

    Args:
        raw: The encoded note string.
        section: If given, only notes tagged with this section are returned.

    Returns:
        The parsed entry, or None if the string does not match the encoding
        (or carries no matching section tag when filtering).
    """
    entry: NoteEntry | None = None

    m = _SECTION_RE.match(raw)
    if m:
        inner = _ENTRY_RE.match(m.group(2))
        if inner:
            entry = NoteEntry(
                timestamp=inner.group(1),
                author=inner.group(2),
                content=inner.group(3),
                section=m.group(1),
            )

    if entry is None:
        plain = _ENTRY_RE.match(raw)
        if plain is None:
            return None
        entry = NoteEntry(timestamp=plain.group(1), author=plain.group(2), content=plain.group(3))

    if section is not None and entry.section != section:
        return None
    return entry


def format_note(entry: NoteEntry) -> str:
    """Encode an entry; `parse_note` recovers it exactly.

    Raises:
        ValueError: If a field cannot be represented in the encoding.
    """
    if "]" in entry.timestamp:
        msg = f"Timestamp must not contain ']': {entry.timestamp!r}"
        raise ValueError(msg)
    if entry.timestamp.startswith(_SECTION_PREFIX):
        msg = f"Timestamp must not start with {_SECTION_PREFIX!r}: {entry.timestamp!r}"
        raise ValueError(msg)
    if ": " in entry.author or "\n" in entry.author:
        msg = f"Author must not contain ': ' or newlines: {entry.author!r}"
        raise ValueError(msg)
    if entry.section is not None and "]" in entry.section:
        msg = f"Section name must not contain ']': {entry.section!r}"
        raise ValueError(msg)

    text = f"[{entry.timestamp}] {entry.author}: {entry.content}"
    if entry.section is not None:
        text = f"[Section: {entry.section}] {text}"
    return text


def parse_notes(raws: Iterable[str], *, section: str | None = None) -> list[NoteEntry]:
    """Parse many encoded notes, dropping the ones that do not parse."""
    result: list[NoteEntry] = []
    for raw in raws:
        entry = parse_note(raw, section=section)
        if entry is None:
            logger.debug("Skipping unparsed note: {!r}", raw[:40])
            continue
        result.append(entry)
    return result


def note_to_entry(note: Note, *, section: str | None = None) -> NoteEntry:
    return NoteEntry(
        timestamp=note.created_at,
        author=note.created_by,
        content=note.note,
        section=section,
    )


def legacy_notes_text(notes: Iterable[Note], *, section: str | None = None) -> str:
    """Render note records as the legacy single-string notes field.

    Records that cannot be encoded are emitted as their plain text.
    """
    lines: list[str] = []
    for note in notes:
        try:
            lines.append(format_note(note_to_entry(note, section=section)))
        except ValueError:
            logger.debug("Note {} cannot be encoded, emitting plain text", note.id)
            lines.append(note.note)
    return "\n".join(lines)


def notes_from_legacy(text: str, *, id_prefix: str = "legacy") -> tuple[Note, ...]:
    """Convert a legacy single-string notes field into note records.

    Each line that parses starts a new note; other lines continue the previous
    note. Leading unparsed text becomes an anonymous note. Ids are positional so
    that repeated conversions of the same text agree.
    """
    if not text.strip():
        return ()

    notes: list[Note] = []
    for line in text.split("\n"):
        entry = parse_note(line)
        if entry is not None:
            notes.append(
                Note(
                    id=f"{id_prefix}-{len(notes)}",
                    note=entry.content,
                    created_at=entry.timestamp,
                    created_by=entry.author,
                )
            )
        elif notes:
            last = notes[-1]
            notes[-1] = Note(
                id=last.id,
                note=f"{last.note}\n{line}",
                created_at=last.created_at,
                created_by=last.created_by,
            )
        else:
            logger.warning("Legacy note text without header, keeping as anonymous note")
            notes.append(Note(id=f"{id_prefix}-0", note=line, created_at="", created_by=""))
    return tuple(notes)


def truncate_note(text: str, max_lines: int = NOTE_COLLAPSE_LINES) -> TruncatedNote:
    """Cut a note to `max_lines` lines for display. The stored note is untouched."""
    lines = text.split("\n")
    if len(lines) <= max_lines:
        return TruncatedNote(text=text)
    shown = "\n".join(lines[:max_lines]) + "\n..."
    return TruncatedNote(text=shown, hidden_lines=len(lines) - max_lines)


def render_note_history(
    notes: Iterable[Note],
    *,
    initial_shown: int = INITIAL_NOTES_SHOWN,
    max_lines: int = NOTE_COLLAPSE_LINES,
    expanded: bool = False,
) -> str:
    """Render notes newest first as plain text.

    Args:
        notes: Note records in the order they were added.
        initial_shown: How many of the newest notes to show when collapsed.
        max_lines: Longer notes are truncated with a "more lines" label.
        expanded: Show all notes and full note text.
    """
    ordered = list(notes)[::-1]
    visible = ordered if expanded else ordered[:initial_shown]

    out = io.StringIO()
    for note in visible:
        author = note.created_by or "unknown"
        out.write(f"{note.created_at} by {author}\n")
        display = TruncatedNote(text=note.note) if expanded else truncate_note(note.note, max_lines)
        for line in display.text.split("\n"):
            out.write(f"  {line}\n")
        if display.is_truncated:
            out.write(f"  [{display.more_label}]\n")

    hidden = len(ordered) - len(visible)
    if hidden:
        noun = "note" if hidden == 1 else "notes"
        out.write(f"... {hidden} more {noun}\n")
    return out.getvalue()
