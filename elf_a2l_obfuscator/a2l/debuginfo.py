"""
Index of variables and their types, read from the (obfuscated) output ELF.
"""
import io
import logging
from typing import Dict, Optional

from elftools.common.exceptions import ELFError, DWARFError
from elftools.elf.elffile import ELFFile

from ..errors import ElfFormatError, MissingDebugInfoError

logger = logging.getLogger(__name__)

REFERENCE_FORMS = ('DW_FORM_ref1', 'DW_FORM_ref2', 'DW_FORM_ref4', 'DW_FORM_ref8',
                   'DW_FORM_ref_udata')

AGGREGATE_TAGS = ('DW_TAG_structure_type', 'DW_TAG_class_type', 'DW_TAG_union_type')

# type modifiers that are looked through when resolving members
ALIAS_TAGS = ('DW_TAG_typedef', 'DW_TAG_const_type', 'DW_TAG_volatile_type',
              'DW_TAG_restrict_type', 'DW_TAG_atomic_type', 'DW_TAG_packed_type')

MAX_ALIAS_DEPTH = 32


class TypeInfo:
    """What symbol lookup needs to know about a type."""

    def __init__(self, tag: str, target: Optional[int] = None):
        self.tag = tag
        # referenced type of aliases and element type of arrays
        self.target = target
        self.members: Dict[str, Optional[int]] = {}
        self.anonymous: list = []
        self.dimensions = 0

    @property
    def is_aggregate(self) -> bool:
        return self.tag in AGGREGATE_TAGS

    @property
    def is_array(self) -> bool:
        return self.tag == 'DW_TAG_array_type'


class DebugData:
    """
    Variables and types of an ELF file.

    Attributes:
        variables: Variable name to type offset (None for untyped variables)
        types: .debug_info offset to TypeInfo
    """

    def __init__(self):
        self.variables: Dict[str, Optional[int]] = {}
        self.types: Dict[int, TypeInfo] = {}
        self._located = set()

    @classmethod
    def load(cls, path: str) -> 'DebugData':
        with open(path, 'rb') as f:
            data = f.read()
        debug_data = cls.from_bytes(data)
        logger.info(f"Loaded {len(debug_data.variables)} variables from {path}")
        return debug_data

    @classmethod
    def from_bytes(cls, data: bytes) -> 'DebugData':
        """
        Build the index from an ELF image.

        Args:
            data: ELF file content

        Returns:
            DebugData: Populated index

        Raises:
            ElfFormatError: if the file cannot be read
            MissingDebugInfoError: if it has no debug info
        """
        try:
            elffile = ELFFile(io.BytesIO(data))
            if not elffile.has_dwarf_info():
                raise MissingDebugInfoError("no dwarf sections found in output file")
            dwarfinfo = elffile.get_dwarf_info()
            debug_data = cls()
            for cu in dwarfinfo.iter_CUs():
                debug_data._index_unit(cu)
        except (ELFError, DWARFError) as e:
            raise ElfFormatError(f"could not read debug info: {e}") from e
        return debug_data

    def _index_unit(self, cu):
        for die in cu.iter_DIEs():
            if die.is_null():
                continue
            if die.tag == 'DW_TAG_variable':
                self._add_variable(die)
            elif die.tag in AGGREGATE_TAGS:
                self._add_aggregate(die)
            elif die.tag == 'DW_TAG_array_type':
                info = TypeInfo(die.tag, _type_offset(die))
                info.dimensions = max(1, sum(1 for child in die.iter_children()
                                             if child.tag == 'DW_TAG_subrange_type'))
                self.types[die.offset] = info
            elif die.tag in ALIAS_TAGS:
                self.types[die.offset] = TypeInfo(die.tag, _type_offset(die))

    def _add_variable(self, die):
        declaration = die
        if 'DW_AT_name' not in die.attributes and 'DW_AT_specification' in die.attributes:
            declaration = die.get_DIE_from_attribute('DW_AT_specification')
        name_attr = declaration.attributes.get('DW_AT_name')
        if name_attr is None:
            return
        name = name_attr.value.decode('utf-8', errors='replace')
        type_offset = _type_offset(die)
        if type_offset is None:
            type_offset = _type_offset(declaration)
        # a definition with a location wins over declarations of the same name
        if 'DW_AT_location' in die.attributes and name not in self._located:
            self._located.add(name)
            self.variables[name] = type_offset
        else:
            self.variables.setdefault(name, type_offset)

    def _add_aggregate(self, die):
        info = TypeInfo(die.tag)
        for child in die.iter_children():
            if child.tag != 'DW_TAG_member':
                continue
            name_attr = child.attributes.get('DW_AT_name')
            if name_attr is None:
                # anonymous struct/union: its members are reachable directly
                info.anonymous.append(_type_offset(child))
                continue
            info.members[name_attr.value.decode('utf-8', errors='replace')] = _type_offset(child)
        self.types[die.offset] = info

    def resolve(self, type_offset: Optional[int]) -> Optional[TypeInfo]:
        """Follow typedefs and qualifiers to the underlying type."""
        for _ in range(MAX_ALIAS_DEPTH):
            if type_offset is None:
                return None
            info = self.types.get(type_offset)
            if info is None or info.tag not in ALIAS_TAGS:
                return info
            type_offset = info.target
        logger.warning(f"type alias chain at {type_offset:#x} is too long")
        return None

    def member_type(self, type_offset: Optional[int], member: str):
        """
        Look up a member of an aggregate type.

        Returns:
            tuple: (found, member type offset)
        """
        info = self.resolve(type_offset)
        if info is None or not info.is_aggregate:
            return False, None
        if member in info.members:
            return True, info.members[member]
        for anonymous in info.anonymous:
            found, member_offset = self.member_type(anonymous, member)
            if found:
                return True, member_offset
        return False, None

    def element_type(self, type_offset: Optional[int]):
        """
        Element type of an array type.

        Returns:
            tuple: (number of dimensions, element type offset); 0 dimensions
            if the type is not an array
        """
        info = self.resolve(type_offset)
        if info is None or not info.is_array:
            return 0, None
        return info.dimensions, info.target


def _type_offset(die) -> Optional[int]:
    attr = die.attributes.get('DW_AT_type')
    if attr is None:
        return None
    if attr.form in REFERENCE_FORMS:
        return attr.raw_value + die.cu.cu_offset
    return attr.raw_value
