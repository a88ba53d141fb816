"""
Rename all identifiers of an A2L document.

Categories are renamed in a fixed order. After each category the references
to it are repaired, so later categories see the already updated document.
"""
import logging
from collections import Counter
from typing import Dict, Mapping, Optional, Sequence

import numpy as np
from tqdm import tqdm

from ..errors import SymbolNotFoundError
from ..pseudonym import obfuscate_label, obfuscate_string, obfuscate_unit_string
from .debuginfo import DebugData
from .document import A2lDocument, Block, Token
from .ifdata import iter_link_maps
from .objects import A2lObject, iter_objects, set_number
from .symbol import find_symbol
from .xrefs import (AXIS_PTS, CATEGORY_ORDER, CHARACTERISTIC, COMPU_METHOD, COMPU_TAB,
                    MEASUREMENT, XrefRepairer)

logger = logging.getLogger(__name__)

# block keywords belonging to each category
CATEGORY_KEYWORDS = {
    COMPU_TAB: ('COMPU_TAB', 'COMPU_VTAB', 'COMPU_VTAB_RANGE'),
}

# categories bound to memory locations in the ECU
SYMBOL_CATEGORIES = (CHARACTERISTIC, MEASUREMENT, AXIS_PTS)


class IdentifierRenameEngine:
    """
    Obfuscates the identifiers of an A2L document in place.

    Object names keep their shape (length, letter case and punctuation),
    descriptions are replaced by random words and memory addresses are set
    to zero. Symbol links are translated to the names used in the obfuscated
    ELF file where possible.

    Attributes:
        rename_tables: Category -> {old name: new name}, merged over all
            modules. Repair uses the per-module table; this copy is kept so
            callers of `pipeline.run` can report or check the mapping.
        stats: Renamed objects per keyword and symbol correlation counts
    """

    def __init__(self, rng: np.random.Generator, debug_data: Optional[DebugData] = None,
                 name_table: Optional[Mapping[str, str]] = None,
                 label_words: Sequence[int] = (1, 4), show_progress: bool = False):
        """
        Initialize the engine.

        Args:
            rng: Random generator
            debug_data: Index of the obfuscated ELF file
            name_table: Original -> obfuscated names of the ELF file
            label_words: (min, max) words of generated descriptions
            show_progress: Show a tqdm progress bar per module
        """
        self.rng = rng
        self.debug_data = debug_data if debug_data is not None else DebugData()
        self.name_table = name_table if name_table is not None else {}
        self.label_words = tuple(label_words)
        self.show_progress = show_progress
        self.xrefs = XrefRepairer(rng)
        self.rename_tables: Dict[str, Dict[str, str]] = {}
        self.stats = Counter()

    def obfuscate_document(self, document: A2lDocument):
        """
        Obfuscate the project, its header and all modules.

        Args:
            document: Parsed document, modified in place
        """
        project_block = document.project
        if project_block is None:
            logger.warning("A2L document has no PROJECT")
            return

        project = A2lObject(project_block)
        project.set('name', self._identifier(project.get('name')))
        project.set('long_identifier', self._label(project.get('long_identifier')))

        for header in iter_objects(project_block, 'HEADER'):
            header.set('comment', self._label(header.get('comment')))
            for args in header.keyword_args('PROJECT_NO', 1):
                args[0].value = self._identifier(args[0].value)

        modules = list(iter_objects(project_block, 'MODULE'))
        for module in modules:
            module.set('name', self._identifier(module.get('name')))
            module.set('long_identifier', self._label(module.get('long_identifier')))
            self.obfuscate_module(module.block)

        self.xrefs.log_summary()
        logger.info(f"Renamed objects in {len(modules)} modules: "
                    + ', '.join(f"{key}={count}" for key, count in sorted(self.stats.items())))

    def obfuscate_module(self, module: Block):
        """
        Rename every category of a module and repair the references to it.

        Args:
            module: MODULE block
        """
        categories = tqdm(CATEGORY_ORDER, desc="Renaming A2L objects", disable=not self.show_progress)
        for category in categories:
            table: Dict[str, str] = {}
            for keyword in CATEGORY_KEYWORDS.get(category, (category,)):
                for obj in iter_objects(module, keyword):
                    self._rename_object(category, obj, table)
            self.rename_tables.setdefault(category, {}).update(table)
            self.xrefs.repair(module, category, table)

    def _rename_object(self, category: str, obj: A2lObject, table: Dict[str, str]):
        old_name = obj.name
        if old_name is None:
            return
        new_name = self._identifier(old_name)
        obj.set('name', new_name)
        # a duplicate name keeps the mapping of its last occurrence
        table[old_name] = new_name
        self.stats[obj.keyword] += 1

        if 'long_identifier' in obj.layout:
            obj.set('long_identifier', self._label(obj.get('long_identifier')))

        for args in obj.keyword_args('DISPLAY_IDENTIFIER', 1):
            args[0].value = self._identifier(args[0].value)

        if category in SYMBOL_CATEGORIES:
            self._obfuscate_memory_binding(obj)
        elif category == COMPU_METHOD:
            obj.set('unit', obfuscate_unit_string(obj.get('unit') or '', self.rng))
        elif category == COMPU_TAB:
            self._obfuscate_table_outputs(obj)

    def _obfuscate_memory_binding(self, obj: A2lObject):
        if 'address' in obj.layout:
            token = obj.field_token('address')
            if token is not None:
                set_number(token, 0)
        for args in obj.keyword_args('ECU_ADDRESS', 1):
            set_number(args[0], 0)

        # SYMBOL_LINK "symbol" offset
        for args in obj.keyword_args('SYMBOL_LINK', 2):
            self._correlate(args[0])

        for link_map in iter_link_maps(obj.block):
            self._correlate(link_map.symbol)
            set_number(link_map.address, 0)

    def _correlate(self, token: Token):
        symbol = token.value
        try:
            token.value = find_symbol(symbol, self.debug_data, self.name_table).name
            self.stats['correlated_symbols'] += 1
        except SymbolNotFoundError as e:
            logger.debug(f"line {token.line}: {e}")
            token.value = obfuscate_string(symbol, self.rng)
            self.stats['uncorrelated_symbols'] += 1

    def _obfuscate_table_outputs(self, obj: A2lObject):
        """Replace the text outputs of COMPU_VTAB and COMPU_VTAB_RANGE."""
        if obj.keyword == 'COMPU_VTAB':
            count_field, width = 'number_value_pairs', 2
        elif obj.keyword == 'COMPU_VTAB_RANGE':
            count_field, width = 'number_value_triples', 3
        else:
            return

        try:
            count = int(obj.get(count_field) or '0', 0)
        except ValueError:
            logger.warning(f"line {obj.block.line}: invalid entry count in {obj.keyword} {obj.name}")
            return
        values = obj.optional_tokens()
        if len(values) < count * width:
            logger.warning(f"line {obj.block.line}: {obj.keyword} {obj.name} has fewer than {count} entries")
            count = len(values) // width
        for index in range(count):
            token = values[index * width + width - 1]
            token.value = self._identifier(token.value)

        for args in obj.keyword_args('DEFAULT_VALUE', 1):
            args[0].value = self._identifier(args[0].value)

    def _identifier(self, text: Optional[str]) -> Optional[str]:
        return obfuscate_string(text, self.rng) if text is not None else None

    def _label(self, text: Optional[str]) -> Optional[str]:
        return obfuscate_label(text, self.rng, self.label_words) if text is not None else None
