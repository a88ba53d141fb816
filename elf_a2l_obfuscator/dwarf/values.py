"""
Attribute values of the output debug info graph.

The set of variants is closed: every attribute that survives the transform is
stored as exactly one of these classes, and the writer knows how to encode
each of them.
"""
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Address:
    """A target address (DW_FORM_addr)."""
    value: int


@dataclass(frozen=True)
class Block:
    """Uninterpreted bytes (DW_FORM_block*)."""
    data: bytes


@dataclass(frozen=True)
class Constant:
    """
    Scalar or enumerated constant.

    The original form is kept so that e.g. a DW_AT_encoding stored as data1
    is written back as data1.
    """
    value: int
    form: str = 'DW_FORM_udata'


@dataclass(frozen=True)
class Flag:
    value: bool


@dataclass(frozen=True)
class String:
    """An inline string (DW_FORM_string), UTF-8 encoded."""
    value: bytes

    @property
    def text(self) -> str:
        return self.value.decode('utf-8')


@dataclass(frozen=True)
class UnitRef:
    """Reference to an entry of the same unit, by output handle."""
    entry: int


@dataclass(frozen=True)
class DebugInfoRef:
    """Reference to an entry of any unit, by (unit id, entry handle)."""
    unit: int
    entry: int


@dataclass(frozen=True)
class Exprloc:
    """An encoded DWARF expression."""
    data: bytes


AttributeValue = Union[Address, Block, Constant, Flag, String, UnitRef, DebugInfoRef, Exprloc]

CONSTANT_FORMS = (
    'DW_FORM_data1',
    'DW_FORM_data2',
    'DW_FORM_data4',
    'DW_FORM_data8',
    'DW_FORM_sdata',
    'DW_FORM_udata',
)
