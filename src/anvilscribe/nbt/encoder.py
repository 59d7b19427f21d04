"""Binary NBT encoder.

Only used to build fixtures and to check that decoding is lossless; the tool
never writes into a save.
"""

from __future__ import annotations

import struct

from anvilscribe.nbt.tags import (
    ByteArrayTag,
    ByteTag,
    CompoundTag,
    DoubleTag,
    EndTag,
    FloatTag,
    IntArrayTag,
    IntTag,
    ListTag,
    LongArrayTag,
    LongTag,
    NbtTag,
    ShortTag,
    StringTag,
    TagId,
)


def encode_mutf8(text: str) -> bytes:
    """Encode text as Java's modified UTF-8."""
    if text.isascii() and "\x00" not in text:
        return text.encode("ascii")
    out = bytearray()
    for char in text:
        code = ord(char)
        if code == 0:
            out += b"\xc0\x80"
        elif code > 0xFFFF:
            code -= 0x10000
            for half in (0xD800 + (code >> 10), 0xDC00 + (code & 0x3FF)):
                out += chr(half).encode("utf-8", "surrogatepass")
        else:
            out += char.encode("utf-8", "surrogatepass")
    return bytes(out)


class NbtWriter:
    """Accumulates an NBT document in memory."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def getvalue(self) -> bytes:
        return bytes(self._buffer)

    def write_tag_id(self, tag_id: TagId) -> None:
        self._buffer.append(int(tag_id))

    def write_string(self, text: str) -> None:
        raw = encode_mutf8(text)
        if len(raw) > 0xFFFF:
            raise ValueError(f"String too long for NBT: {len(raw)} bytes")
        self._buffer += struct.pack(">H", len(raw))
        self._buffer += raw

    def write_payload(self, tag: NbtTag) -> None:
        buffer = self._buffer
        match tag:
            case EndTag():
                pass
            case ByteTag(value):
                buffer += struct.pack(">b", value)
            case ShortTag(value):
                buffer += struct.pack(">h", value)
            case IntTag(value):
                buffer += struct.pack(">i", value)
            case LongTag(value):
                buffer += struct.pack(">q", value)
            case FloatTag(value):
                buffer += struct.pack(">f", value)
            case DoubleTag(value):
                buffer += struct.pack(">d", value)
            case ByteArrayTag(value):
                buffer += struct.pack(">i", len(value))
                buffer += bytes(value)
            case StringTag(value):
                self.write_string(value)
            case IntArrayTag(value):
                buffer += struct.pack(f">i{len(value)}i", len(value), *value)
            case LongArrayTag(value):
                buffer += struct.pack(f">i{len(value)}q", len(value), *value)
            case ListTag(element_type=element_type, items=items):
                if items and element_type == TagId.END:
                    element_type = items[0].tag_id
                for item in items:
                    if item.tag_id != element_type:
                        raise ValueError(
                            f"List of {element_type.name} holds a {item.tag_id.name} tag"
                        )
                buffer += struct.pack(">bi", int(element_type), len(items))
                for item in items:
                    self.write_payload(item)
            case CompoundTag(entries=entries):
                for name, child in entries.items():
                    self.write_tag_id(child.tag_id)
                    self.write_string(name)
                    self.write_payload(child)
                buffer += b"\x00"
            case _:
                raise TypeError(f"Not an NBT tag: {tag!r}")


def encode(root: CompoundTag, name: str = "") -> bytes:
    """Serialize ``root`` as a named root compound."""
    writer = NbtWriter()
    writer.write_tag_id(TagId.COMPOUND)
    writer.write_string(name)
    writer.write_payload(root)
    return writer.getvalue()
