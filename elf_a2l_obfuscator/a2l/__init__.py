"""
A2L calibration document obfuscation.
"""

from .document import A2lDocument, Block, Token
from .objects import A2lObject, iter_objects
from .debuginfo import DebugData
from .symbol import SymbolInfo, find_symbol
from .xrefs import CATEGORY_ORDER, XREF_RULES, XrefRepairer, XrefRule
from .rename import IdentifierRenameEngine

__all__ = [
    'A2lDocument',
    'Block',
    'Token',
    'A2lObject',
    'iter_objects',
    'DebugData',
    'SymbolInfo',
    'find_symbol',
    'CATEGORY_ORDER',
    'XREF_RULES',
    'XrefRepairer',
    'XrefRule',
    'IdentifierRenameEngine',
]
