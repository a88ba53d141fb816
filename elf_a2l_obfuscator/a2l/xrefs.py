"""
Repair of by-name references after a category has been renamed.
"""
import logging
from collections import Counter
from typing import Dict, Iterator, NamedTuple, Tuple

import numpy as np

from ..pseudonym import obfuscate_string
from .document import Block, Token
from .objects import iter_objects, list_tokens

logger = logging.getLogger(__name__)

CHARACTERISTIC = 'CHARACTERISTIC'
MEASUREMENT = 'MEASUREMENT'
AXIS_PTS = 'AXIS_PTS'
RECORD_LAYOUT = 'RECORD_LAYOUT'
FUNCTION = 'FUNCTION'
GROUP = 'GROUP'
COMPU_METHOD = 'COMPU_METHOD'
COMPU_TAB = 'COMPU_TAB'

# categories in the order they are renamed
CATEGORY_ORDER = (CHARACTERISTIC, MEASUREMENT, AXIS_PTS, RECORD_LAYOUT, FUNCTION, GROUP,
                  COMPU_METHOD, COMPU_TAB)

NO_COMPU_METHOD = 'NO_COMPU_METHOD'
NO_INPUT_QUANTITY = 'NO_INPUT_QUANTITY'

FIELD = 'field'
KEYWORD = 'keyword'
LIST = 'list'


class XrefRule(NamedTuple):
    """
    One kind of reference field.

    Attributes:
        owner: Keyword of the block holding the reference
        kind: 'field' (positional parameter), 'keyword' (first parameter of an
            optional keyword) or 'list' (identifier list sub-block)
        name: Field, keyword or sub-block name
        categories: Categories the reference may point to
        skip: Leading non-identifier parameters of a list block
        sentinels: Reserved values that are not references
    """
    owner: str
    kind: str
    name: str
    categories: Tuple[str, ...]
    skip: int = 0
    sentinels: Tuple[str, ...] = ()

    @property
    def last_category(self) -> str:
        return max(self.categories, key=CATEGORY_ORDER.index)

    def tokens(self, module: Block) -> Iterator[Token]:
        for obj in iter_objects(module, self.owner):
            if self.kind == FIELD:
                token = obj.field_token(self.name)
                if token is not None:
                    yield token
            elif self.kind == KEYWORD:
                for args in obj.keyword_args(self.name, 1):
                    yield args[0]
            else:
                for block in obj.sub_blocks(self.name):
                    yield from list_tokens(block, self.skip)


_CHARACTERISTIC_LIKE = (CHARACTERISTIC, AXIS_PTS)
_CONVERSION = dict(categories=(COMPU_METHOD,), sentinels=(NO_COMPU_METHOD,))
_INPUT_QUANTITY = dict(categories=(MEASUREMENT,), sentinels=(NO_INPUT_QUANTITY,))

XREF_RULES = (
    # characteristics
    XrefRule('CHARACTERISTIC', LIST, 'DEPENDENT_CHARACTERISTIC', (CHARACTERISTIC,), skip=1),
    XrefRule('CHARACTERISTIC', LIST, 'VIRTUAL_CHARACTERISTIC', (CHARACTERISTIC,), skip=1),
    XrefRule('CHARACTERISTIC', LIST, 'MAP_LIST', (CHARACTERISTIC,)),
    XrefRule('AXIS_DESCR', KEYWORD, 'CURVE_AXIS_REF', (CHARACTERISTIC,)),
    XrefRule('FUNCTION', LIST, 'DEF_CHARACTERISTIC', _CHARACTERISTIC_LIKE),
    XrefRule('FUNCTION', LIST, 'REF_CHARACTERISTIC', _CHARACTERISTIC_LIKE),
    XrefRule('GROUP', LIST, 'REF_CHARACTERISTIC', _CHARACTERISTIC_LIKE),
    XrefRule('TRANSFORMER', LIST, 'TRANSFORMER_IN_OBJECTS', (CHARACTERISTIC, MEASUREMENT, AXIS_PTS)),
    XrefRule('TRANSFORMER', LIST, 'TRANSFORMER_OUT_OBJECTS', (CHARACTERISTIC, MEASUREMENT, AXIS_PTS)),
    # measurements
    XrefRule('AXIS_DESCR', FIELD, 'input_quantity', **_INPUT_QUANTITY),
    XrefRule('AXIS_PTS', FIELD, 'input_quantity', **_INPUT_QUANTITY),
    XrefRule('TYPEDEF_AXIS', FIELD, 'input_quantity', **_INPUT_QUANTITY),
    XrefRule('CHARACTERISTIC', KEYWORD, 'COMPARISON_QUANTITY', (MEASUREMENT,)),
    XrefRule('MEASUREMENT', LIST, 'VIRTUAL', (MEASUREMENT,)),
    XrefRule('FUNCTION', LIST, 'IN_MEASUREMENT', (MEASUREMENT,)),
    XrefRule('FUNCTION', LIST, 'OUT_MEASUREMENT', (MEASUREMENT,)),
    XrefRule('FUNCTION', LIST, 'LOC_MEASUREMENT', (MEASUREMENT,)),
    XrefRule('GROUP', LIST, 'REF_MEASUREMENT', (MEASUREMENT,)),
    # axis points
    XrefRule('AXIS_DESCR', KEYWORD, 'AXIS_PTS_REF', (AXIS_PTS,)),
    # record layouts
    XrefRule('CHARACTERISTIC', FIELD, 'deposit', (RECORD_LAYOUT,)),
    XrefRule('AXIS_PTS', FIELD, 'deposit_record', (RECORD_LAYOUT,)),
    XrefRule('TYPEDEF_AXIS', FIELD, 'record_layout', (RECORD_LAYOUT,)),
    XrefRule('TYPEDEF_CHARACTERISTIC', FIELD, 'record_layout', (RECORD_LAYOUT,)),
    # functions
    XrefRule('FUNCTION', LIST, 'SUB_FUNCTION', (FUNCTION,)),
    XrefRule('CHARACTERISTIC', LIST, 'FUNCTION_LIST', (FUNCTION,)),
    XrefRule('MEASUREMENT', LIST, 'FUNCTION_LIST', (FUNCTION,)),
    XrefRule('AXIS_PTS', LIST, 'FUNCTION_LIST', (FUNCTION,)),
    XrefRule('GROUP', LIST, 'FUNCTION_LIST', (FUNCTION,)),
    # groups
    XrefRule('GROUP', LIST, 'SUB_GROUP', (GROUP,)),
    XrefRule('USER_RIGHTS', LIST, 'REF_GROUP', (GROUP,)),
    # computation methods
    XrefRule('CHARACTERISTIC', FIELD, 'conversion', **_CONVERSION),
    XrefRule('AXIS_DESCR', FIELD, 'conversion', **_CONVERSION),
    XrefRule('MEASUREMENT', FIELD, 'conversion', **_CONVERSION),
    XrefRule('AXIS_PTS', FIELD, 'conversion', **_CONVERSION),
    XrefRule('TYPEDEF_AXIS', FIELD, 'conversion', **_CONVERSION),
    XrefRule('TYPEDEF_CHARACTERISTIC', FIELD, 'conversion', **_CONVERSION),
    XrefRule('TYPEDEF_MEASUREMENT', FIELD, 'conversion', **_CONVERSION),
    # computation tables
    XrefRule('COMPU_METHOD', KEYWORD, 'COMPU_TAB_REF', (COMPU_TAB,)),
    XrefRule('COMPU_METHOD', KEYWORD, 'STATUS_STRING_REF', (COMPU_TAB,)),
)


class XrefRepairer:
    """
    Applies rename tables to reference fields.

    A reference that is found in the table of a category it may point to is
    replaced by the new name. A reference that is still unresolved once the
    last category it may point to has been renamed is dangling and gets an
    independent pseudonym, so no original name survives.
    """

    def __init__(self, rng: np.random.Generator, rules=XREF_RULES):
        self.rng = rng
        self.rules = rules
        self.stats = Counter()
        self._resolved = set()

    def repair(self, module: Block, category: str, rename_table: Dict[str, str]):
        """
        Update all references to one category.

        Args:
            module: MODULE block
            category: Category that was just renamed
            rename_table: Old name -> new name for that category
        """
        for rule in self.rules:
            if category not in rule.categories:
                continue
            is_last = rule.last_category == category
            for token in rule.tokens(module):
                if token in self._resolved:
                    continue
                old_name = token.value
                if old_name in rule.sentinels:
                    self._resolved.add(token)
                    continue
                new_name = rename_table.get(old_name)
                if new_name is not None:
                    token.value = new_name
                    self._resolved.add(token)
                    self.stats['updated'] += 1
                elif is_last:
                    logger.debug(f"line {token.line}: dangling {rule.owner} {rule.name} reference {old_name!r}")
                    token.value = obfuscate_string(old_name, self.rng)
                    self._resolved.add(token)
                    self.stats['dangling'] += 1

    def log_summary(self):
        logger.info(f"Updated {self.stats['updated']} references, "
                    f"obfuscated {self.stats['dangling']} dangling references")
