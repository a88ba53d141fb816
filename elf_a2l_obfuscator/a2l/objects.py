"""
Typed views over A2L blocks.

A view gives names to the positional parameters of a block and finds its
optional keywords and sub-blocks. Views never copy tokens, so assigning to a
field edits the document in place.
"""
import logging
from typing import Dict, Iterator, List, Optional, Tuple

from .document import Block, Token, WORD

logger = logging.getLogger(__name__)

# positional parameters of each block, in file order
LAYOUTS: Dict[str, Tuple[str, ...]] = {
    'PROJECT': ('name', 'long_identifier'),
    'HEADER': ('comment',),
    'MODULE': ('name', 'long_identifier'),
    'CHARACTERISTIC': ('name', 'long_identifier', 'type', 'address', 'deposit', 'max_diff',
                       'conversion', 'lower_limit', 'upper_limit'),
    'AXIS_DESCR': ('attribute', 'input_quantity', 'conversion', 'max_axis_points',
                   'lower_limit', 'upper_limit'),
    'MEASUREMENT': ('name', 'long_identifier', 'datatype', 'conversion', 'resolution',
                    'accuracy', 'lower_limit', 'upper_limit'),
    'AXIS_PTS': ('name', 'long_identifier', 'address', 'input_quantity', 'deposit_record',
                 'max_diff', 'conversion', 'max_axis_points', 'lower_limit', 'upper_limit'),
    'RECORD_LAYOUT': ('name',),
    'FUNCTION': ('name', 'long_identifier'),
    'GROUP': ('name', 'long_identifier'),
    'COMPU_METHOD': ('name', 'long_identifier', 'conversion_type', 'format', 'unit'),
    'COMPU_TAB': ('name', 'long_identifier', 'conversion_type', 'number_value_pairs'),
    'COMPU_VTAB': ('name', 'long_identifier', 'conversion_type', 'number_value_pairs'),
    'COMPU_VTAB_RANGE': ('name', 'long_identifier', 'number_value_triples'),
    'TYPEDEF_AXIS': ('name', 'long_identifier', 'input_quantity', 'record_layout', 'max_diff',
                     'conversion', 'max_axis_points', 'lower_limit', 'upper_limit'),
    'TYPEDEF_CHARACTERISTIC': ('name', 'long_identifier', 'type', 'record_layout', 'max_diff',
                               'conversion', 'lower_limit', 'upper_limit'),
    'TYPEDEF_MEASUREMENT': ('name', 'long_identifier', 'datatype', 'conversion', 'resolution',
                            'accuracy', 'lower_limit', 'upper_limit'),
    'TRANSFORMER': ('name', 'version', 'dllname_32bit', 'dllname_64bit', 'timeout', 'trigger',
                    'inverse_transformer'),
    'USER_RIGHTS': ('user_level_id',),
}

# blocks whose content follows a foreign grammar
OPAQUE_BLOCKS = ('IF_DATA', 'A2ML')


class A2lObject:
    """View over one block with a known positional layout."""

    def __init__(self, block: Block):
        if block.keyword not in LAYOUTS:
            raise KeyError(f"No layout for {block.keyword}")
        self.block = block
        self.layout = LAYOUTS[block.keyword]

    @property
    def keyword(self) -> str:
        return self.block.keyword

    def field_token(self, field: str) -> Optional[Token]:
        """Token of a positional parameter, or None if the block is too short."""
        index = self.layout.index(field)
        tokens = self.block.tokens()
        if index >= len(tokens):
            logger.warning(f"line {self.block.line}: {self.keyword} has no {field} parameter")
            return None
        return tokens[index]

    def get(self, field: str) -> Optional[str]:
        token = self.field_token(field)
        return token.value if token is not None else None

    def set(self, field: str, value: str):
        token = self.field_token(field)
        if token is not None:
            token.value = value

    @property
    def name(self) -> Optional[str]:
        return self.get('name')

    def optional_tokens(self) -> List[Token]:
        """Direct tokens after the positional parameters."""
        return self.block.tokens()[len(self.layout):]

    def keyword_args(self, keyword: str, count: int) -> List[List[Token]]:
        """
        Find every occurrence of an optional keyword.

        Args:
            keyword: Keyword to look for (e.g. ECU_ADDRESS)
            count: Number of parameters following it

        Returns:
            list: One token list per occurrence
        """
        tokens = self.optional_tokens()
        found = []
        for index, token in enumerate(tokens):
            if token.kind == WORD and token.text == keyword:
                args = tokens[index + 1:index + 1 + count]
                if len(args) < count:
                    logger.warning(f"line {token.line}: {keyword} is missing parameters")
                    continue
                found.append(args)
        return found

    def sub_blocks(self, keyword: str) -> List[Block]:
        return self.block.blocks(keyword)

    def __repr__(self):
        return f"<{self.keyword} {self.name!r}>"


def list_tokens(block: Block, skip: int = 0) -> List[Token]:
    """Identifier list of a block like REF_MEASUREMENT, after `skip` leading parameters."""
    return block.tokens()[skip:]


def iter_blocks(parent: Block, keyword: str) -> Iterator[Block]:
    """All blocks with the given keyword below parent, not descending into IF_DATA or A2ML."""
    for block in parent.blocks():
        if block.keyword == keyword:
            yield block
        if block.keyword not in OPAQUE_BLOCKS:
            yield from iter_blocks(block, keyword)


def iter_objects(parent: Block, keyword: str) -> Iterator[A2lObject]:
    for block in iter_blocks(parent, keyword):
        yield A2lObject(block)


def set_number(token: Token, value: int):
    """Replace a numeric token, keeping hex notation if it was used."""
    if token.text.lower().startswith('0x'):
        token.text = f"0x{value:X}"
    else:
        token.text = str(value)
