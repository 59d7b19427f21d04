"""NBT tag types.

The tag tree is a closed union of dataclasses, one per tag id. Code walking a
tree matches on these classes (``match tag: case IntTag(value): ...``) and
never inspects the Python type of the payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, ClassVar, Dict, Iterator, List, Union


class TagId(IntEnum):
    END = 0
    BYTE = 1
    SHORT = 2
    INT = 3
    LONG = 4
    FLOAT = 5
    DOUBLE = 6
    BYTE_ARRAY = 7
    STRING = 8
    LIST = 9
    COMPOUND = 10
    INT_ARRAY = 11
    LONG_ARRAY = 12


@dataclass(slots=True)
class EndTag:
    tag_id: ClassVar[TagId] = TagId.END


@dataclass(slots=True)
class ByteTag:
    value: int
    tag_id: ClassVar[TagId] = TagId.BYTE


@dataclass(slots=True)
class ShortTag:
    value: int
    tag_id: ClassVar[TagId] = TagId.SHORT


@dataclass(slots=True)
class IntTag:
    value: int
    tag_id: ClassVar[TagId] = TagId.INT


@dataclass(slots=True)
class LongTag:
    value: int
    tag_id: ClassVar[TagId] = TagId.LONG


@dataclass(slots=True)
class FloatTag:
    value: float
    tag_id: ClassVar[TagId] = TagId.FLOAT


@dataclass(slots=True)
class DoubleTag:
    value: float
    tag_id: ClassVar[TagId] = TagId.DOUBLE


@dataclass(slots=True)
class ByteArrayTag:
    value: bytes
    tag_id: ClassVar[TagId] = TagId.BYTE_ARRAY


@dataclass(slots=True)
class StringTag:
    value: str
    tag_id: ClassVar[TagId] = TagId.STRING


@dataclass(slots=True)
class IntArrayTag:
    value: List[int]
    tag_id: ClassVar[TagId] = TagId.INT_ARRAY


@dataclass(slots=True)
class LongArrayTag:
    value: List[int]
    tag_id: ClassVar[TagId] = TagId.LONG_ARRAY


@dataclass(slots=True)
class ListTag:
    """Homogeneous list of tags; ``element_type`` is END only when empty."""

    element_type: TagId = TagId.END
    items: List["NbtTag"] = field(default_factory=list)
    tag_id: ClassVar[TagId] = TagId.LIST

    def __iter__(self) -> Iterator["NbtTag"]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index: int) -> "NbtTag":
        return self.items[index]

    def compounds(self) -> Iterator["CompoundTag"]:
        """Yield the compound elements, skipping anything else."""
        for item in self.items:
            if isinstance(item, CompoundTag):
                yield item

    def strings(self) -> Iterator[str]:
        for item in self.items:
            if isinstance(item, StringTag):
                yield item.value


@dataclass(slots=True)
class CompoundTag:
    """Named tags with null-safe typed accessors.

    The ``get_*`` accessors never raise: a missing key or a tag of the wrong
    kind yields the supplied default. Save files drop optional fields freely
    across game versions, so callers treat absence as the normal case.
    """

    entries: Dict[str, "NbtTag"] = field(default_factory=dict)
    tag_id: ClassVar[TagId] = TagId.COMPOUND

    def __contains__(self, name: object) -> bool:
        return name in self.entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def has(self, name: str) -> bool:
        return name in self.entries

    def get(self, name: str) -> "NbtTag | None":
        return self.entries.get(name)

    def items(self):
        return self.entries.items()

    def get_int(self, name: str, default: int = 0) -> int:
        match self.entries.get(name):
            case ByteTag(value) | ShortTag(value) | IntTag(value) | LongTag(value):
                return value
            case FloatTag(value) | DoubleTag(value):
                return int(value)
            case _:
                return default

    def get_long(self, name: str, default: int = 0) -> int:
        return self.get_int(name, default)

    def get_double(self, name: str, default: float = 0.0) -> float:
        match self.entries.get(name):
            case ByteTag(value) | ShortTag(value) | IntTag(value) | LongTag(value):
                return float(value)
            case FloatTag(value) | DoubleTag(value):
                return value
            case _:
                return default

    def get_bool(self, name: str, default: bool = False) -> bool:
        match self.entries.get(name):
            case ByteTag(value) | ShortTag(value) | IntTag(value) | LongTag(value):
                return value != 0
            case _:
                return default

    def get_string(self, name: str, default: str = "") -> str:
        match self.entries.get(name):
            case StringTag(value):
                return value
            case _:
                return default

    def get_list(self, name: str) -> ListTag:
        match self.entries.get(name):
            case ListTag() as tag:
                return tag
            case _:
                return ListTag()

    def get_compound(self, name: str) -> "CompoundTag":
        match self.entries.get(name):
            case CompoundTag() as tag:
                return tag
            case _:
                return CompoundTag()

    def get_byte_array(self, name: str) -> bytes:
        match self.entries.get(name):
            case ByteArrayTag(value):
                return value
            case _:
                return b""

    def get_int_array(self, name: str) -> List[int]:
        match self.entries.get(name):
            case IntArrayTag(value):
                return value
            case _:
                return []

    def get_long_array(self, name: str) -> List[int]:
        match self.entries.get(name):
            case LongArrayTag(value):
                return value
            case _:
                return []


NbtTag = Union[
    EndTag,
    ByteTag,
    ShortTag,
    IntTag,
    LongTag,
    FloatTag,
    DoubleTag,
    ByteArrayTag,
    StringTag,
    ListTag,
    CompoundTag,
    IntArrayTag,
    LongArrayTag,
]


def to_python(tag: NbtTag) -> Any:
    """Convert a tag tree into plain Python values suitable for JSON."""
    match tag:
        case EndTag():
            return None
        case ByteTag(value) | ShortTag(value) | IntTag(value) | LongTag(value):
            return value
        case FloatTag(value) | DoubleTag(value):
            return value
        case StringTag(value):
            return value
        case ByteArrayTag(value):
            return list(value)
        case IntArrayTag(value) | LongArrayTag(value):
            return list(value)
        case ListTag(items=items):
            return [to_python(item) for item in items]
        case CompoundTag(entries=entries):
            return {name: to_python(child) for name, child in entries.items()}
    raise TypeError(f"Not an NBT tag: {tag!r}")
