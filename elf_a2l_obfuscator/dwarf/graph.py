"""
Output debug info graph and the first (structure building) pass.

The output graph is an arena of entries per unit; entries are addressed by
small integer handles which have nothing to do with the input file offsets.
Pass 1 records where every input entry went, so pass 2 can redirect
references, including forward references into units that come later.
"""
import logging
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from ..errors import DwarfStructureError
from .values import AttributeValue

logger = logging.getLogger(__name__)

UNIT_ROOT_TAGS = ('DW_TAG_compile_unit', 'DW_TAG_partial_unit')


class DebugEntry:
    """A node of the output graph: tag, ordered attributes, children."""

    __slots__ = ('handle', 'tag', 'parent', 'children', 'attributes')

    def __init__(self, handle: int, tag, parent: Optional[int]):
        self.handle = handle
        self.tag = tag
        self.parent = parent
        self.children: List[int] = []
        self.attributes: List[Tuple[object, AttributeValue]] = []

    def set(self, name, value: AttributeValue):
        """Set an attribute, replacing an existing one of the same name."""
        for index, (existing, _) in enumerate(self.attributes):
            if existing == name:
                self.attributes[index] = (name, value)
                return
        self.attributes.append((name, value))

    def get(self, name, default=None):
        for existing, value in self.attributes:
            if existing == name:
                return value
        return default

    def __repr__(self):
        return f"<DebugEntry {self.handle} {self.tag} children={len(self.children)}>"


class OutputUnit:
    """One compilation or partial unit of the output graph."""

    def __init__(self, unit_id: int, version: int, address_size: int):
        self.unit_id = unit_id
        self.version = version
        self.address_size = address_size
        self.entries: List[DebugEntry] = []

    @property
    def root(self) -> Optional[DebugEntry]:
        return self.entries[0] if self.entries else None

    def add(self, parent: Optional[int], tag) -> int:
        """
        Create a new entry.

        Args:
            parent: Handle of the parent entry, None for the unit root
            tag: Entry tag

        Returns:
            int: Handle of the new entry
        """
        handle = len(self.entries)
        self.entries.append(DebugEntry(handle, tag, parent))
        if parent is not None:
            self.entries[parent].children.append(handle)
        return handle

    def get(self, handle: int) -> DebugEntry:
        return self.entries[handle]

    def __contains__(self, handle) -> bool:
        return isinstance(handle, int) and 0 <= handle < len(self.entries)

    def __len__(self):
        return len(self.entries)


class EntryGraph:
    """All output units; exclusively owns every entry."""

    def __init__(self):
        self.units: List[OutputUnit] = []

    def add_unit(self, version: int, address_size: int) -> OutputUnit:
        unit = OutputUnit(len(self.units), version, address_size)
        self.units.append(unit)
        return unit

    def entry_count(self) -> int:
        return sum(len(unit) for unit in self.units)

    def iter_entries(self) -> Iterator[Tuple[OutputUnit, DebugEntry]]:
        for unit in self.units:
            for entry in unit.entries:
                yield unit, entry


class OffsetMaps:
    """
    Offset to handle maps built in pass 1 and read-only in pass 2.

    `units[unit_id]` maps unit-local offsets to entry handles; `section` maps
    whole-section offsets to (unit id, entry handle).
    """

    def __init__(self):
        self.units: Dict[int, Dict[int, int]] = {}
        self.section: Dict[int, Tuple[int, int]] = {}

    def local(self, unit_id: int) -> Dict[int, int]:
        return self.units.setdefault(unit_id, {})

    def insert(self, unit_id: int, unit_offset: int, section_offset: int, handle: int):
        self.local(unit_id)[unit_offset] = handle
        self.section[section_offset] = (unit_id, handle)


def iter_dfs(top_die) -> Iterator[Tuple[int, object]]:
    """
    Walk a DIE tree depth first.

    Args:
        top_die: Root DIE of a unit (anything with iter_children())

    Yields:
        tuple: (depth delta relative to the previous DIE, DIE)
    """
    previous_depth = 0
    stack = [(top_die, 0)]
    while stack:
        die, depth = stack.pop()
        yield depth - previous_depth, die
        previous_depth = depth
        children = list(die.iter_children())
        for child in reversed(children):
            stack.append((child, depth + 1))


def build_unit_structure(output_unit: OutputUnit, records: Iterable[Tuple[int, object]],
                         unit_offset: int, offsets: OffsetMaps) -> Dict[int, int]:
    """
    Pass 1: create one output entry per input entry, without attributes.

    Args:
        output_unit: Unit to populate
        records: (depth delta, DIE) sequence as produced by iter_dfs
        unit_offset: Section offset of the input unit header
        offsets: Maps receiving the new handles

    Returns:
        dict: Unit-local offset to handle map of this unit

    Raises:
        DwarfStructureError: if the first entry is not a compile or partial unit
    """
    parent_ids: List[int] = []
    depth = 0
    for index, (depth_delta, die) in enumerate(records):
        if index == 0 and die.tag not in UNIT_ROOT_TAGS:
            raise DwarfStructureError(
                f"first entry of the unit at offset {unit_offset:#x} is {die.tag}, "
                f"not a compile unit or partial unit")

        depth += depth_delta
        if depth < 0:
            raise DwarfStructureError(f"entry at offset {die.offset:#x} climbs above the unit root")
        del parent_ids[depth:]
        parent = parent_ids[-1] if parent_ids else None
        if parent is None and index > 0:
            raise DwarfStructureError(f"entry at offset {die.offset:#x} is a second unit root")

        handle = output_unit.add(parent, die.tag)
        # make the handle available so that sub-entries can be added to it
        parent_ids.append(handle)

        offsets.insert(output_unit.unit_id, die.offset - unit_offset, die.offset, handle)

    return offsets.local(output_unit.unit_id)
