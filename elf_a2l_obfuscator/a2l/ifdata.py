"""
Vector CANape interface data.

Only the parts that carry binary symbol information are decoded:

    /begin IF_DATA CANAPE_EXT
        100
        LINK_MAP "symbol" 0x1000 0x0 0 0x0 1 0x87 0x0
        ...
    /end IF_DATA
"""
import logging
from typing import Iterator, List, NamedTuple

from .document import Block, Token, WORD

logger = logging.getLogger(__name__)

CANAPE_EXT = 'CANAPE_EXT'
LINK_MAP = 'LINK_MAP'


class LinkMap(NamedTuple):
    symbol: Token
    address: Token


def is_canape_ext(block: Block) -> bool:
    tokens = block.tokens()
    return block.keyword == 'IF_DATA' and bool(tokens) and tokens[0].text == CANAPE_EXT


def find_link_maps(if_data: Block) -> List[LinkMap]:
    """
    Decode the LINK_MAP entries of a CANAPE_EXT IF_DATA block.

    Args:
        if_data: IF_DATA block

    Returns:
        list: LinkMap tuples; empty for other IF_DATA kinds
    """
    if not is_canape_ext(if_data):
        return []
    tokens = if_data.tokens()
    link_maps = []
    for index, token in enumerate(tokens):
        if token.kind != WORD or token.text != LINK_MAP:
            continue
        if index + 2 >= len(tokens):
            logger.warning(f"line {token.line}: truncated LINK_MAP")
            continue
        link_maps.append(LinkMap(tokens[index + 1], tokens[index + 2]))
    return link_maps


def iter_link_maps(owner: Block) -> Iterator[LinkMap]:
    """LINK_MAP entries of all IF_DATA blocks directly inside owner."""
    for if_data in owner.blocks('IF_DATA'):
        yield from find_link_maps(if_data)
