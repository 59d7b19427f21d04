"""Binary NBT decoder.

Big-endian, recursive descent with an explicit depth cap. Every length field
is checked against the bytes that remain before anything is allocated, so a
corrupt or hostile length cannot make the decoder reserve gigabytes.
"""

from __future__ import annotations

import struct
from typing import Tuple

from anvilscribe.errors import MalformedNbt
from anvilscribe.nbt.tags import (
    ByteArrayTag,
    ByteTag,
    CompoundTag,
    DoubleTag,
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

# Each nesting level costs a few Python frames; keep well under the
# interpreter recursion limit.
MAX_DEPTH = 256

# Smallest encoded size of one payload of each tag kind, used to bound list
# lengths before the elements are read.
_MIN_PAYLOAD = {
    TagId.BYTE: 1,
    TagId.SHORT: 2,
    TagId.INT: 4,
    TagId.LONG: 8,
    TagId.FLOAT: 4,
    TagId.DOUBLE: 8,
    TagId.BYTE_ARRAY: 4,
    TagId.STRING: 2,
    TagId.LIST: 5,
    TagId.COMPOUND: 1,
    TagId.INT_ARRAY: 4,
    TagId.LONG_ARRAY: 4,
}

_BYTE = struct.Struct(">b")
_UBYTE = struct.Struct(">B")
_SHORT = struct.Struct(">h")
_USHORT = struct.Struct(">H")
_INT = struct.Struct(">i")
_LONG = struct.Struct(">q")
_FLOAT = struct.Struct(">f")
_DOUBLE = struct.Struct(">d")


def decode_mutf8(raw: bytes) -> str:
    """Decode Java's modified UTF-8, replacing anything undecodable."""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        pass
    try:
        text = raw.replace(b"\xc0\x80", b"\x00").decode("utf-8", errors="surrogatepass")
        # Re-pair surrogates that were encoded as two separate 3-byte sequences.
        return text.encode("utf-16", "surrogatepass").decode("utf-16", errors="replace")
    except UnicodeDecodeError:
        return raw.decode("utf-8", errors="replace")


class NbtReader:
    """Cursor over an NBT byte stream."""

    def __init__(self, data: bytes, *, max_depth: int = MAX_DEPTH) -> None:
        self._data = memoryview(data)
        self._pos = 0
        self.max_depth = max_depth

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def _require(self, size: int, what: str) -> None:
        if size < 0:
            raise MalformedNbt(f"Negative length {size} for {what} at offset {self._pos}")
        if size > self.remaining:
            raise MalformedNbt(
                f"{what} needs {size} bytes at offset {self._pos}, only {self.remaining} left"
            )

    def _unpack(self, fmt: struct.Struct, what: str):
        self._require(fmt.size, what)
        (value,) = fmt.unpack_from(self._data, self._pos)
        self._pos += fmt.size
        return value

    def read_tag_id(self) -> TagId:
        raw = self._unpack(_UBYTE, "tag id")
        try:
            return TagId(raw)
        except ValueError:
            raise MalformedNbt(f"Unknown tag id {raw} at offset {self._pos - 1}") from None

    def read_string(self) -> str:
        length = self._unpack(_USHORT, "string length")
        self._require(length, "string")
        raw = bytes(self._data[self._pos : self._pos + length])
        self._pos += length
        return decode_mutf8(raw)

    def _read_array_length(self, item_size: int, what: str) -> int:
        length = self._unpack(_INT, f"{what} length")
        if length < 0:
            raise MalformedNbt(f"Negative {what} length {length}")
        self._require(length * item_size, what)
        return length

    def read_payload(self, tag_id: TagId, depth: int = 0) -> NbtTag:
        if depth > self.max_depth:
            raise MalformedNbt(f"NBT nesting deeper than {self.max_depth}")

        if tag_id == TagId.BYTE:
            return ByteTag(self._unpack(_BYTE, "byte"))
        if tag_id == TagId.SHORT:
            return ShortTag(self._unpack(_SHORT, "short"))
        if tag_id == TagId.INT:
            return IntTag(self._unpack(_INT, "int"))
        if tag_id == TagId.LONG:
            return LongTag(self._unpack(_LONG, "long"))
        if tag_id == TagId.FLOAT:
            return FloatTag(self._unpack(_FLOAT, "float"))
        if tag_id == TagId.DOUBLE:
            return DoubleTag(self._unpack(_DOUBLE, "double"))
        if tag_id == TagId.STRING:
            return StringTag(self.read_string())
        if tag_id == TagId.BYTE_ARRAY:
            length = self._read_array_length(1, "byte array")
            value = bytes(self._data[self._pos : self._pos + length])
            self._pos += length
            return ByteArrayTag(value)
        if tag_id == TagId.INT_ARRAY:
            length = self._read_array_length(4, "int array")
            value = list(struct.unpack_from(f">{length}i", self._data, self._pos))
            self._pos += length * 4
            return IntArrayTag(value)
        if tag_id == TagId.LONG_ARRAY:
            length = self._read_array_length(8, "long array")
            value = list(struct.unpack_from(f">{length}q", self._data, self._pos))
            self._pos += length * 8
            return LongArrayTag(value)
        if tag_id == TagId.LIST:
            return self._read_list(depth)
        if tag_id == TagId.COMPOUND:
            return self._read_compound(depth)
        raise MalformedNbt(f"Unexpected {tag_id.name} tag at offset {self._pos}")

    def _read_list(self, depth: int) -> ListTag:
        element_type = self.read_tag_id()
        length = self._unpack(_INT, "list length")
        if length < 0:
            raise MalformedNbt(f"Negative list length {length}")
        if element_type == TagId.END:
            if length != 0:
                raise MalformedNbt(f"List of End tags with length {length}")
            return ListTag()
        self._require(length * _MIN_PAYLOAD[element_type], "list")
        items = [self.read_payload(element_type, depth + 1) for _ in range(length)]
        return ListTag(element_type, items)

    def _read_compound(self, depth: int) -> CompoundTag:
        entries = {}
        while True:
            if self.remaining == 0:
                raise MalformedNbt("Compound is missing its End tag")
            tag_id = self.read_tag_id()
            if tag_id == TagId.END:
                return CompoundTag(entries)
            name = self.read_string()
            entries[name] = self.read_payload(tag_id, depth + 1)

    def read_named_root(self) -> Tuple[str, CompoundTag]:
        tag_id = self.read_tag_id()
        if tag_id != TagId.COMPOUND:
            raise MalformedNbt(f"Root tag must be a compound, got {tag_id.name}")
        name = self.read_string()
        root = self._read_compound(0)
        return name, root


def decode_named(data: bytes, *, max_depth: int = MAX_DEPTH) -> Tuple[str, CompoundTag]:
    """Decode a whole NBT document and return its root name and compound."""
    if not data:
        raise MalformedNbt("Empty NBT stream")
    return NbtReader(data, max_depth=max_depth).read_named_root()


def decode(data: bytes, *, max_depth: int = MAX_DEPTH) -> CompoundTag:
    """Decode a whole NBT document and return its root compound.

    Trailing bytes after the root are ignored; region sectors are padded.
    """
    return decode_named(data, max_depth=max_depth)[1]


