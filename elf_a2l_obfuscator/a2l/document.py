"""
Token preserving A2L reader/writer.

The document is kept as a flat list of tokens, each carrying the whitespace
and comments that precede it, plus a tree of /begin ... /end blocks over those
tokens. Edits only change token text, so writing the document back
reproduces the input layout exactly (optionally without comments).
"""
import logging
import re
from typing import Iterator, List, Optional, Union

from ..errors import A2lParseError

logger = logging.getLogger(__name__)

WORD = 'word'
STRING = 'string'

_ESCAPES = {'n': '\n', 'r': '\r', 't': '\t', '"': '"', "'": "'", '\\': '\\'}
_UNESCAPES = {'\n': '\\n', '\r': '\\r', '\t': '\\t', '"': '\\"', '\\': '\\\\'}

_WORD_END = re.compile(r'[\s"]|/\*|//')


def unescape(raw: str) -> str:
    """Decode the content of a quoted A2L string (without the quotes)."""
    out = []
    i = 0
    while i < len(raw):
        c = raw[i]
        if c == '\\' and i + 1 < len(raw) and raw[i + 1] in _ESCAPES:
            out.append(_ESCAPES[raw[i + 1]])
            i += 2
        elif c == '"' and i + 1 < len(raw) and raw[i + 1] == '"':
            out.append('"')
            i += 2
        else:
            out.append(c)
            i += 1
    return ''.join(out)


def escape(text: str) -> str:
    """Encode text for use inside a quoted A2L string."""
    return ''.join(_UNESCAPES.get(c, c) for c in text)


class Token:
    """A word or quoted string together with its leading trivia."""

    __slots__ = ('kind', 'text', 'leading', 'line')

    def __init__(self, kind: str, text: str, leading: Optional[List[tuple]] = None, line: int = 0):
        self.kind = kind
        self.text = text
        # list of ('ws' | 'comment', text)
        self.leading = leading if leading is not None else []
        self.line = line

    @property
    def value(self) -> str:
        if self.kind == STRING:
            return unescape(self.text[1:-1])
        return self.text

    @value.setter
    def value(self, new_value: str):
        if self.kind == STRING:
            self.text = '"' + escape(new_value) + '"'
        else:
            self.text = new_value

    def __repr__(self):
        return f"Token({self.kind}, {self.text!r})"


class Block:
    """A /begin KEYWORD ... /end KEYWORD block."""

    def __init__(self, begin: Token, keyword: Token):
        self.begin = begin
        self.keyword_token = keyword
        self.items: List[Union[Token, 'Block']] = []
        self.end: Optional[Token] = None
        self.end_keyword: Optional[Token] = None

    @property
    def keyword(self) -> str:
        return self.keyword_token.text

    @property
    def line(self) -> int:
        return self.begin.line

    def tokens(self) -> List[Token]:
        """Direct token items (nested blocks excluded)."""
        return [item for item in self.items if isinstance(item, Token)]

    def blocks(self, keyword: Optional[str] = None) -> List['Block']:
        """Direct sub-blocks, optionally filtered by keyword."""
        return [item for item in self.items
                if isinstance(item, Block) and (keyword is None or item.keyword == keyword)]

    def walk(self) -> Iterator['Block']:
        """This block and all nested blocks, depth first."""
        yield self
        for block in self.blocks():
            yield from block.walk()

    def __repr__(self):
        return f"<Block {self.keyword} line={self.line} items={len(self.items)}>"


def tokenize(text: str) -> tuple:
    """
    Split A2L text into tokens.

    Args:
        text: Document content

    Returns:
        tuple: (tokens, trailing trivia)

    Raises:
        A2lParseError: on unterminated strings or comments
    """
    tokens = []
    leading = []
    line = 1
    pos = 0
    length = len(text)
    while pos < length:
        c = text[pos]
        if c.isspace():
            end = pos
            while end < length and text[end].isspace():
                end += 1
            leading.append(('ws', text[pos:end]))
        elif text.startswith('/*', pos):
            end = text.find('*/', pos + 2)
            if end < 0:
                raise A2lParseError("unterminated comment", line)
            end += 2
            leading.append(('comment', text[pos:end]))
        elif text.startswith('//', pos):
            end = text.find('\n', pos)
            end = length if end < 0 else end
            leading.append(('comment', text[pos:end]))
        elif c == '"':
            end = pos + 1
            while True:
                if end >= length:
                    raise A2lParseError("unterminated string", line)
                if text[end] == '\\':
                    end += 2
                    continue
                if text[end] == '"':
                    # "" is an escaped quote
                    if end + 1 < length and text[end + 1] == '"':
                        end += 2
                        continue
                    end += 1
                    break
                end += 1
            tokens.append(Token(STRING, text[pos:end], leading, line))
            leading = []
        else:
            match = _WORD_END.search(text, pos)
            end = match.start() if match else length
            tokens.append(Token(WORD, text[pos:end], leading, line))
            leading = []
        line += text.count('\n', pos, end)
        pos = end
    return tokens, leading


class A2lDocument:
    """
    A parsed A2L file.

    `root` is a pseudo block holding the top-level items (ASAP2_VERSION,
    /begin PROJECT ...).
    """

    def __init__(self, tokens: List[Token], trailing: List[tuple]):
        self.tokens = tokens
        self.trailing = trailing
        self.root = self._build_tree(tokens)

    @classmethod
    def loads(cls, text: str) -> 'A2lDocument':
        tokens, trailing = tokenize(text)
        return cls(tokens, trailing)

    @classmethod
    def load(cls, path: str, encoding: str = 'utf-8') -> 'A2lDocument':
        """
        Read an A2L file.

        Args:
            path: File to read
            encoding: Text encoding; a UTF-8 BOM is accepted

        Returns:
            A2lDocument: Parsed document

        Raises:
            A2lParseError: if the file is not valid text in that encoding
        """
        try:
            with open(path, 'r', encoding=encoding, newline='') as f:
                text = f.read()
        except UnicodeDecodeError as e:
            raise A2lParseError(f"{path} is not valid {encoding} ({e.reason} at byte {e.start}), "
                                f"set a2l.encoding to the encoding of the file") from e
        if text.startswith('\ufeff'):
            text = text[1:]
        logger.info(f"Loaded A2L file {path}")
        return cls.loads(text)

    def _build_tree(self, tokens: List[Token]) -> Block:
        root = Block(Token(WORD, ''), Token(WORD, ''))
        stack = [root]
        index = 0
        while index < len(tokens):
            token = tokens[index]
            if token.kind == WORD and token.text == '/begin':
                if index + 1 >= len(tokens):
                    raise A2lParseError("/begin without keyword", token.line)
                block = Block(token, tokens[index + 1])
                stack[-1].items.append(block)
                stack.append(block)
                index += 2
                continue
            if token.kind == WORD and token.text == '/end':
                if index + 1 >= len(tokens):
                    raise A2lParseError("/end without keyword", token.line)
                keyword = tokens[index + 1]
                if len(stack) == 1:
                    raise A2lParseError(f"unexpected /end {keyword.text}", token.line)
                block = stack.pop()
                if keyword.text != block.keyword:
                    raise A2lParseError(
                        f"/end {keyword.text} does not match /begin {block.keyword} "
                        f"from line {block.line}", token.line)
                block.end = token
                block.end_keyword = keyword
                index += 2
                continue
            if token.kind == WORD and token.text == '/include':
                logger.warning(f"line {token.line}: /include is not followed")
            stack[-1].items.append(token)
            index += 1

        if len(stack) > 1:
            raise A2lParseError(f"/begin {stack[-1].keyword} is never closed", stack[-1].line)
        return root

    @property
    def project(self) -> Optional[Block]:
        projects = self.root.blocks('PROJECT')
        return projects[0] if projects else None

    def dumps(self, strip_comments: bool = False) -> str:
        """
        Serialise the document.

        Args:
            strip_comments: Leave out /* */ and // comments

        Returns:
            str: Document text
        """
        parts = []
        for token in self.tokens:
            parts.append(_render_trivia(token.leading, strip_comments, separate=bool(parts)))
            parts.append(token.text)
        parts.append(_render_trivia(self.trailing, strip_comments, separate=False))
        return ''.join(parts)

    def write(self, path: str, strip_comments: bool = False, encoding: str = 'utf-8'):
        with open(path, 'w', encoding=encoding, newline='') as f:
            f.write(self.dumps(strip_comments))
        logger.info(f"Wrote A2L file {path}")


def _render_trivia(trivia: List[tuple], strip_comments: bool, separate: bool) -> str:
    if not strip_comments:
        return ''.join(text for _, text in trivia)
    rendered = ''.join(text for kind, text in trivia if kind == 'ws')
    if not rendered and trivia and separate:
        # keep neighbouring tokens apart once the comment between them is gone
        rendered = ' '
    return rendered
