"""
Correlate A2L symbol names with the obfuscated debug info.

A symbol link can address a plain variable or a part of it:

    engineSpeed
    sensors.rail.pressure
    table[3][1]
    table._3_._1_        (CANape array notation)

Every identifier in the symbol is translated through the name table of the
DWARF stage; the translated symbol must then exist in the obfuscated debug
info, otherwise the symbol cannot be correlated.
"""
import logging
import re
from typing import List, Mapping, NamedTuple, Optional, Tuple

from ..errors import SymbolNotFoundError
from .debuginfo import DebugData

logger = logging.getLogger(__name__)

_PART = re.compile(r'([^\[\]]*)((?:\[\d+\])*)')
_INDEX = re.compile(r'\[(\d+)\]')
_CANAPE_INDEX = re.compile(r'_(\d+)_')

MEMBER = 'member'
INDEX = 'index'


class SymbolInfo(NamedTuple):
    name: str
    type_offset: Optional[int]


def split_symbol(symbol: str) -> List[Tuple[str, object, str]]:
    """
    Split a symbol into (kind, value, text) components.

    Kind is 'member' for identifiers (the first one is the variable) and
    'index' for array subscripts. `text` is the component as written.

    Raises:
        SymbolNotFoundError: if the symbol is not well formed
    """
    if not symbol:
        raise SymbolNotFoundError("empty symbol name")
    components = []
    for position, part in enumerate(symbol.split('.')):
        match = _PART.fullmatch(part)
        if match is None:
            raise SymbolNotFoundError(f"malformed symbol name {symbol!r}")
        identifier, subscripts = match.groups()
        if not identifier:
            raise SymbolNotFoundError(f"malformed symbol name {symbol!r}")
        canape_index = _CANAPE_INDEX.fullmatch(identifier) if position else None
        if canape_index:
            components.append((INDEX, int(canape_index.group(1)), '.' + identifier))
        else:
            components.append((MEMBER, identifier, ('.' if position else '') + identifier))
        for index in _INDEX.findall(subscripts):
            components.append((INDEX, int(index), f'[{index}]'))
    return components


def find_symbol(symbol: str, debug_data: DebugData, name_table: Mapping[str, str]) -> SymbolInfo:
    """
    Translate a symbol name into its obfuscated equivalent.

    Args:
        symbol: Symbol name from the A2L file
        debug_data: Index of the obfuscated ELF file
        name_table: Original name -> pseudonym mapping of the DWARF stage

    Returns:
        SymbolInfo: Obfuscated symbol name and the type it refers to

    Raises:
        SymbolNotFoundError: if the symbol cannot be correlated
    """
    components = split_symbol(symbol)

    _, base, _ = components[0]
    new_base = _translate(base, name_table, symbol)
    if new_base not in debug_data.variables:
        raise SymbolNotFoundError(f"variable {base!r} of {symbol!r} is not in the debug info")
    type_offset = debug_data.variables[new_base]

    output = [new_base]
    remaining_dimensions = 0
    for kind, value, text in components[1:]:
        if kind == INDEX:
            if remaining_dimensions == 0:
                remaining_dimensions, element = debug_data.element_type(type_offset)
                if remaining_dimensions == 0:
                    raise SymbolNotFoundError(f"{symbol!r}: subscript on a non-array")
            remaining_dimensions -= 1
            if remaining_dimensions == 0:
                type_offset = element
            output.append(text)
            continue

        if remaining_dimensions:
            raise SymbolNotFoundError(f"{symbol!r}: missing array subscript before {value!r}")
        new_member = _translate(value, name_table, symbol)
        found, member_type = debug_data.member_type(type_offset, new_member)
        if not found:
            raise SymbolNotFoundError(f"{symbol!r}: no member {value!r}")
        type_offset = member_type
        output.append('.' + new_member)

    return SymbolInfo(''.join(output), type_offset)


def _translate(identifier: str, name_table: Mapping[str, str], symbol: str) -> str:
    new_name = name_table.get(identifier)
    if new_name is None:
        raise SymbolNotFoundError(f"{identifier!r} of {symbol!r} was not renamed in the debug info")
    return new_name
