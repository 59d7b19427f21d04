"""Datapack export: function files that recreate found books and signs in game.

Commands target the 1.21 item-component syntax. Running
``/function anvilscribe:books`` gives the player every book;
``/function anvilscribe:signs`` places the signs in a row along +X from the
command position, and clicking a sign's first line teleports to where it was
found.
"""

from __future__ import annotations

import json
from typing import Dict, List, Sequence

from anvilscribe.models import Book, Sign

DATAPACK_FOLDER = "anvilscribe_datapack"
NAMESPACE = "anvilscribe"
FUNCTION_FOLDER = "function"
PACK_FORMAT = 48
PACK_DESCRIPTION = "Books and signs recovered by AnvilScribe"


def snbt_string(text: str) -> str:
    """Double-quoted SNBT string literal on a single line."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return '"' + escaped.replace("\r", "").replace("\n", "\\n") + '"'


def text_component(text: str, **extra: object) -> str:
    return json.dumps({"text": text, **extra}, ensure_ascii=False)


def _inline(text: str) -> str:
    return text.replace("\r", "").replace("\n", " ")


def book_command(book: Book) -> str:
    """``/give`` command for one book, formatting codes kept."""
    if book.kind == "written":
        pages = ",".join(snbt_string(text_component(page)) for page in book.raw_pages)
        content = (
            f"title:{snbt_string(_inline(book.title) or 'Untitled')},"
            f"author:{snbt_string(_inline(book.author) or 'Unknown')},"
            f"generation:{book.generation},pages:[{pages}]"
        )
        return f"give @p written_book[written_book_content={{{content}}}]"
    pages = ",".join(snbt_string(page) for page in book.raw_pages)
    return f"give @p writable_book[writable_book_content={{pages:[{pages}]}}]"


def _messages(lines: Sequence[str], first_extra: Dict[str, object] | None = None) -> str:
    padded = (list(lines) + [""] * 4)[:4]
    components = []
    for index, line in enumerate(padded):
        extra = first_extra if index == 0 and line and first_extra else {}
        components.append(snbt_string(text_component(line, **extra)))
    return ",".join(components)


def sign_command(sign: Sign, offset: int) -> str:
    """``/setblock`` command placing a copy of the sign ``offset`` blocks along +X."""
    loc = sign.location
    teleport = {"clickEvent": {"action": "run_command", "value": f"/tp @s {loc.x} {loc.y} {loc.z}"}}
    front = _messages(sign.raw_lines, teleport)
    back = _messages(sign.back_lines)
    return (
        f"setblock ~{offset} ~ ~ oak_sign[rotation=0]"
        f"{{front_text:{{messages:[{front}]}},back_text:{{messages:[{back}]}}}} replace"
    )


def books_function(books: Sequence[Book]) -> str:
    lines: List[str] = []
    for book in books:
        lines.append(f"# {_inline(book.display_title)} - {book.location.description}")
        lines.append(book_command(book))
    return "\n".join(lines) + ("\n" if lines else "")


def signs_function(signs: Sequence[Sign]) -> str:
    lines: List[str] = []
    for offset, sign in enumerate(signs, start=1):
        lines.append(f"# {sign.location.description}")
        lines.append(sign_command(sign, offset))
    return "\n".join(lines) + ("\n" if lines else "")


def pack_metadata() -> str:
    payload = {"pack": {"pack_format": PACK_FORMAT, "description": PACK_DESCRIPTION}}
    return json.dumps(payload, indent=2) + "\n"
