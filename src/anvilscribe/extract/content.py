"""Walk decoded chunk and player trees into books, signs, items and names."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import AbstractSet, Iterable, Iterator, List, Optional, Tuple

from anvilscribe.errors import RecursionDepthExceeded
from anvilscribe.extract.text import (
    component_from_tag,
    flatten_component,
    normalize_id,
    strip_formatting,
    strip_namespace,
)
from anvilscribe.models import (
    END,
    NETHER,
    OVERWORLD,
    PORTAL_BLOCKS,
    BlockRecord,
    Book,
    Chunk,
    CustomName,
    ExtractionBatch,
    ItemStack,
    Location,
    Sign,
)
from anvilscribe.nbt.tags import (
    ByteTag,
    CompoundTag,
    DoubleTag,
    FloatTag,
    IntTag,
    ListTag,
    NbtTag,
    ShortTag,
    StringTag,
)
from anvilscribe.scan.blocks import find_blocks

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 8
WRITTEN_BOOK = "minecraft:written_book"
WRITABLE_BOOK = "minecraft:writable_book"

# Numeric item ids from before 1.8 that we still care about.
LEGACY_ITEM_IDS = {386: WRITABLE_BOOK, 387: WRITTEN_BOOK}

# Single-item slots on block entities and entities.
_SINGLE_ITEM_KEYS = ("Book", "item", "Item", "RecordItem")
# Item lists on entities (minecarts, boats, villagers, mobs).
_ENTITY_ITEM_LISTS = ("Items", "Inventory", "HandItems", "ArmorItems")

_PLAYER_DIMENSIONS = {
    -1: NETHER,
    0: OVERWORLD,
    1: END,
    "minecraft:the_nether": NETHER,
    "minecraft:overworld": OVERWORLD,
    "minecraft:the_end": END,
}


@dataclass(slots=True)
class ContainerContext:
    """Where a list of item stacks sits."""

    location: Location
    container_type: str
    path: Tuple[str, ...]
    player_uuid: Optional[str] = None


def _level(root: CompoundTag) -> CompoundTag:
    return root.get_compound("Level") if root.has("Level") else root


def _number(tag: NbtTag) -> Optional[float]:
    match tag:
        case ByteTag(value) | ShortTag(value) | IntTag(value):
            return float(value)
        case FloatTag(value) | DoubleTag(value):
            return value
        case _:
            return None


def entity_position(entity: CompoundTag) -> Tuple[int, int, int]:
    """Block position of an entity from its ``Pos`` list of doubles."""
    coords = [_number(tag) for tag in entity.get_list("Pos")]
    if len(coords) != 3 or any(value is None or not math.isfinite(value) for value in coords):
        return (0, 0, 0)
    return (math.floor(coords[0]), math.floor(coords[1]), math.floor(coords[2]))


def player_dimension(root: CompoundTag) -> str:
    match root.get("Dimension"):
        case StringTag(value):
            return _PLAYER_DIMENSIONS.get(value, OVERWORLD)
        case ByteTag(value) | ShortTag(value) | IntTag(value):
            return _PLAYER_DIMENSIONS.get(value, OVERWORLD)
        case _:
            return OVERWORLD


def item_id_of(item: CompoundTag) -> str:
    match item.get("id"):
        case StringTag(value):
            return normalize_id(value)
        case ShortTag(value) | IntTag(value) | ByteTag(value):
            return LEGACY_ITEM_IDS.get(value, f"legacy:{value}")
        case _:
            return ""


def _enchantment_map(tag: NbtTag | None) -> dict:
    """Enchantments from either the pre-1.20.5 list or the component form."""
    result = {}
    match tag:
        case ListTag():
            for entry in tag.compounds():
                match entry.get("id"):
                    case StringTag(value):
                        name = normalize_id(value)
                    case ShortTag(value) | IntTag(value):
                        name = f"legacy:{value}"
                    case _:
                        continue
                result[name] = entry.get_int("lvl", 1)
        case CompoundTag():
            levels = tag.get_compound("levels") if tag.has("levels") else tag
            for name, level in levels.items():
                match level:
                    case ByteTag(value) | ShortTag(value) | IntTag(value):
                        result[normalize_id(name)] = value
    return result


def _page_text(page: NbtTag, *, json_pages: bool) -> str:
    match page:
        case StringTag(value):
            return flatten_component(value) if json_pages else value
        case CompoundTag():
            chosen = page.get("raw") if page.has("raw") else page.get("filtered")
            match chosen:
                case StringTag(value):
                    return flatten_component(value) if json_pages else value
                case _:
                    return component_from_tag(chosen)
        case _:
            return ""


def _filterable_string(tag: NbtTag | None) -> str:
    match tag:
        case StringTag(value):
            return value
        case CompoundTag():
            return tag.get_string("raw") or tag.get_string("filtered")
        case _:
            return ""


def nested_item_lists(item: CompoundTag) -> List[CompoundTag]:
    """Item stacks stored inside an item (shulker boxes, bundles, copper chests)."""
    children: List[CompoundTag] = []
    tag = item.get_compound("tag")
    children.extend(tag.get_compound("BlockEntityTag").get_list("Items").compounds())
    children.extend(tag.get_list("Items").compounds())

    components = item.get_compound("components")
    for slot in components.get_list("minecraft:container").compounds():
        children.append(slot.get_compound("item"))
    children.extend(components.get_list("minecraft:bundle_contents").compounds())
    return [child for child in children if len(child)]


class ContentExtractor:
    """Turns NBT trees into records appended to an :class:`ExtractionBatch`."""

    def __init__(
        self,
        *,
        max_depth: int = DEFAULT_MAX_DEPTH,
        block_targets: AbstractSet[str] = PORTAL_BLOCKS,
    ) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.max_depth = max_depth
        self.block_targets = frozenset(block_targets)

    # Chunks ---------------------------------------------------------------

    def extract_chunk(self, chunk: Chunk, batch: ExtractionBatch) -> None:
        """Extract everything a region or entity chunk carries."""
        root = chunk.root
        level = _level(root)

        block_entities = (
            level.get_list("TileEntities")
            if level.has("TileEntities")
            else root.get_list("block_entities")
        )
        for block_entity in block_entities.compounds():
            self.extract_block_entity(block_entity, chunk, batch)

        for name in ("Entities", "entities"):
            for entity in level.get_list(name).compounds():
                self.extract_entity(entity, chunk, batch)

        for found in find_blocks(root, chunk.x, chunk.z, self.block_targets):
            batch.blocks.append(
                BlockRecord(
                    block_type=found.name,
                    dimension=chunk.dimension,
                    x=found.x,
                    y=found.y,
                    z=found.z,
                    properties=found.properties,
                    region_file=chunk.source,
                )
            )

    def extract_block_entity(
        self, block_entity: CompoundTag, chunk: Chunk, batch: ExtractionBatch
    ) -> None:
        block_id = normalize_id(block_entity.get_string("id")) or "unknown"
        x, y, z = (block_entity.get_int(axis) for axis in ("x", "y", "z"))
        location = Location(
            dimension=chunk.dimension,
            x=x,
            y=y,
            z=z,
            description=f"Chunk [{chunk.x}, {chunk.z}] Inside {block_id} at ({x} {y} {z}) {chunk.source}",
            source=chunk.source,
        )

        if block_entity.has("front_text") or block_entity.has("Text1"):
            self.extract_sign(block_entity, block_id, location, batch)
            return

        container = strip_namespace(block_id)
        context = ContainerContext(location=location, container_type=container, path=(container,))
        self.extract_items(self._held_items(block_entity, ("Items",)), context, batch)

    def extract_entity(self, entity: CompoundTag, chunk: Chunk, batch: ExtractionBatch) -> None:
        entity_id = normalize_id(entity.get_string("id")) or "unknown"
        x, y, z = entity_position(entity)
        location = Location(
            dimension=chunk.dimension,
            x=x,
            y=y,
            z=z,
            description=f"Chunk [{chunk.x}, {chunk.z}] In {entity_id} at ({x} {y} {z}) {chunk.source}",
            source=chunk.source,
        )

        if entity.has("CustomName"):
            name = strip_formatting(component_from_tag(entity.get("CustomName")))
            if name:
                batch.custom_names.append(CustomName("entity", entity_id, name, location))

        container = strip_namespace(entity_id)
        context = ContainerContext(location=location, container_type=container, path=(container,))
        items = list(self._held_items(entity, _ENTITY_ITEM_LISTS))
        equipment = entity.get_compound("equipment")
        items.extend(slot for slot in equipment.entries.values() if isinstance(slot, CompoundTag))
        self.extract_items(items, context, batch)

    @staticmethod
    def _held_items(holder: CompoundTag, list_keys: Iterable[str]) -> Iterator[CompoundTag]:
        for key in list_keys:
            yield from holder.get_list(key).compounds()
        for key in _SINGLE_ITEM_KEYS:
            match holder.get(key):
                case CompoundTag() as single if len(single):
                    yield single

    # Players --------------------------------------------------------------

    def extract_player(self, root: CompoundTag, player_uuid: str, batch: ExtractionBatch) -> None:
        """Extract inventory and ender chest from a ``playerdata`` document."""
        x, y, z = entity_position(root)
        dimension = player_dimension(root)
        for list_name, container in (("Inventory", "player_inventory"), ("EnderItems", "ender_chest")):
            label = "Inventory" if list_name == "Inventory" else "Ender Chest"
            location = Location(
                dimension=dimension,
                x=x,
                y=y,
                z=z,
                description=f"{label} of player {player_uuid}.dat",
                source=f"{player_uuid}.dat",
            )
            context = ContainerContext(
                location=location,
                container_type=container,
                path=(container,),
                player_uuid=player_uuid,
            )
            self.extract_items(root.get_list(list_name).compounds(), context, batch)

    # Signs ----------------------------------------------------------------

    def extract_sign(
        self, block_entity: CompoundTag, block_id: str, location: Location, batch: ExtractionBatch
    ) -> None:
        if block_entity.has("front_text"):
            raw_lines = self._sign_side(block_entity.get_compound("front_text"))
            raw_back = self._sign_side(block_entity.get_compound("back_text"))
        else:
            raw_lines = [component_from_tag(block_entity.get(f"Text{i}")) for i in range(1, 5)]
            raw_back = []

        lines = [strip_formatting(line) for line in raw_lines]
        back_lines = [strip_formatting(line) for line in raw_back]
        if not any(line.strip() for line in lines + back_lines):
            batch.empty_signs += 1
            return

        batch.signs.append(
            Sign(
                lines=lines,
                raw_lines=raw_lines,
                location=location,
                block_id=block_id,
                back_lines=back_lines if any(back_lines) else [],
            )
        )

    @staticmethod
    def _sign_side(side: CompoundTag) -> List[str]:
        lines = [component_from_tag(message) for message in side.get_list("messages")]
        return (lines + [""] * 4)[:4]

    # Items ----------------------------------------------------------------

    def extract_items(
        self, items: Iterable[CompoundTag], context: ContainerContext, batch: ExtractionBatch
    ) -> None:
        """Record item stacks and everything nested inside them.

        Traversal uses an explicit stack so corrupt or self-referencing data
        is bounded by ``max_depth`` rather than by the interpreter.
        """
        pending = [(item, context.path, 1) for item in reversed(list(items))]
        while pending:
            item, path, depth = pending.pop()
            record = self._item_record(item, context, path)
            if record is None:
                continue
            batch.items.append(record)
            self._item_extras(item, record, batch)

            children = nested_item_lists(item)
            if not children:
                continue
            try:
                self._check_depth(depth, record, context)
            except RecursionDepthExceeded as exc:
                LOGGER.warning("%s", exc)
                batch.warnings.append(str(exc))
                batch.subtrees_skipped += 1
                continue
            child_path = path + (strip_namespace(record.item_id),)
            pending.extend((child, child_path, depth + 1) for child in reversed(children))

    def _check_depth(self, depth: int, record: ItemStack, context: ContainerContext) -> None:
        if depth >= self.max_depth:
            raise RecursionDepthExceeded(
                f"Containers nested deeper than {self.max_depth} levels in "
                f"{record.item_id} at {context.location.description}; subtree skipped"
            )

    def _item_record(
        self, item: CompoundTag, context: ContainerContext, path: Tuple[str, ...]
    ) -> Optional[ItemStack]:
        item_id = item_id_of(item)
        if not item_id or item_id == "minecraft:air":
            return None

        tag = item.get_compound("tag")
        components = item.get_compound("components")
        display = tag.get_compound("display")

        if components.has("minecraft:custom_name"):
            custom_name = component_from_tag(components.get("minecraft:custom_name"))
        else:
            custom_name = component_from_tag(display.get("Name"))

        if components.has("minecraft:lore"):
            lore_tags = components.get_list("minecraft:lore")
        else:
            lore_tags = display.get_list("Lore")

        if components.has("minecraft:enchantments"):
            enchantments = _enchantment_map(components.get("minecraft:enchantments"))
        else:
            enchantments = _enchantment_map(tag.get("Enchantments") or tag.get("ench"))

        if components.has("minecraft:stored_enchantments"):
            stored = _enchantment_map(components.get("minecraft:stored_enchantments"))
        else:
            stored = _enchantment_map(tag.get("StoredEnchantments"))

        if components.has("minecraft:damage"):
            damage = components.get_int("minecraft:damage")
        else:
            damage = tag.get_int("Damage", item.get_int("Damage"))

        return ItemStack(
            item_id=item_id,
            count=item.get_int("count", item.get_int("Count", 1)),
            location=context.location,
            container_type=context.container_type,
            container_path=path,
            slot=item.get_int("Slot") if item.has("Slot") else None,
            damage=damage,
            custom_name=strip_formatting(custom_name),
            lore=[strip_formatting(component_from_tag(line)) for line in lore_tags],
            enchantments=enchantments,
            stored_enchantments=stored,
            unbreakable=components.has("minecraft:unbreakable") or tag.get_bool("Unbreakable"),
            player_uuid=context.player_uuid,
        )

    def _item_extras(self, item: CompoundTag, record: ItemStack, batch: ExtractionBatch) -> None:
        if record.custom_name:
            batch.custom_names.append(
                CustomName("item", record.item_id, record.custom_name, record.location)
            )
        if record.item_id in (WRITTEN_BOOK, WRITABLE_BOOK):
            book = self.read_book(item, record)
            if book is not None:
                batch.books.append(book)

    # Books ----------------------------------------------------------------

    def read_book(self, item: CompoundTag, record: ItemStack) -> Optional[Book]:
        tag = item.get_compound("tag")
        components = item.get_compound("components")
        written = record.item_id == WRITTEN_BOOK

        if written and components.has("minecraft:written_book_content"):
            content = components.get_compound("minecraft:written_book_content")
            title = _filterable_string(content.get("title"))
            author = content.get_string("author")
            generation = content.get_int("generation")
            pages = content.get_list("pages")
        elif written:
            title = tag.get_string("title")
            author = tag.get_string("author")
            generation = tag.get_int("generation")
            pages = tag.get_list("pages")
        elif components.has("minecraft:writable_book_content"):
            title, author, generation = "", "", 0
            pages = components.get_compound("minecraft:writable_book_content").get_list("pages")
        else:
            title, author, generation = "", "", 0
            pages = tag.get_list("pages")

        raw_pages = [_page_text(page, json_pages=written) for page in pages]
        if not raw_pages and not title:
            LOGGER.debug("Skipping empty %s at %s", record.item_id, record.location.description)
            return None

        return Book(
            title=strip_formatting(title),
            author=author,
            pages=[strip_formatting(page) for page in raw_pages],
            raw_pages=raw_pages,
            kind="written" if written else "writable",
            location=record.location,
            container_path=record.container_path,
            generation=generation,
        )
