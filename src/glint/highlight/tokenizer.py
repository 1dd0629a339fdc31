"""Single-line syntax tokenizer built on Pygments.

A ``Tokenizer`` turns one line of source into a ``Span`` tree: a root span
whose children are the line's tokens, each tagged with its Pygments token type
(the scope) and the theme style for that scope. Output depends only on the
line text, so one instance can serve any number of lines.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from pygments import lex
from pygments.lexer import Lexer
from pygments.lexers import get_lexer_by_name
from pygments.lexers.special import TextLexer
from pygments.style import StyleMeta
from pygments.styles import get_style_by_name
from pygments.token import _TokenType
from pygments.util import ClassNotFound

from ..util.log import Log

log = Log.create({"service": "highlight.tokenizer"})

# LSP language ids whose Pygments alias differs.
PYGMENTS_ALIASES = {
    "plaintext": "text",
    "shellscript": "bash",
    "javascriptreact": "jsx",
    "typescriptreact": "tsx",
}

DEFAULT_THEME = "monokai"


class TokenizeError(Exception):
    """The lexer failed on a line."""


class Span(BaseModel):
    """A run of text with a style; children are nested runs."""
    text: str = ""
    scope: Optional[str] = None
    style: Optional[str] = None
    children: List["Span"] = Field(default_factory=list)

    def plain_text(self) -> str:
        """The text this span and all its descendants cover."""
        return self.text + "".join(child.plain_text() for child in self.children)


Span.model_rebuild()


def lexer_for(language_id: str) -> Lexer:
    """Pygments lexer for an LSP language id; plain text when unknown."""
    alias = PYGMENTS_ALIASES.get(language_id, language_id)
    try:
        return get_lexer_by_name(alias, stripnl=False, ensurenl=False)
    except ClassNotFound:
        log.debug("no lexer for language, using plain text", {"language": language_id})
        return TextLexer(stripnl=False, ensurenl=False)


def style_for(theme: str) -> StyleMeta:
    """Pygments style class for a theme name; the default theme when unknown."""
    try:
        return get_style_by_name(theme)
    except ClassNotFound:
        log.warn("unknown theme, using default", {"theme": theme})
        return get_style_by_name(DEFAULT_THEME)


def style_string(definition: Dict[str, object]) -> Optional[str]:
    """Render a Pygments style definition as ``"bold italic #rrggbb on #rrggbb"``."""
    parts = [flag for flag in ("bold", "italic", "underline") if definition.get(flag)]
    if definition.get("color"):
        parts.append(f"#{definition['color']}")
    if definition.get("bgcolor"):
        parts.append(f"on #{definition['bgcolor']}")
    return " ".join(parts) or None


class Tokenizer:
    """Stateless highlighter for one language and theme."""

    def __init__(self, language_id: str, theme: str = DEFAULT_THEME):
        self.language_id = language_id
        self.theme = theme
        self._lexer = lexer_for(language_id)
        self._style = style_for(theme)
        self._styles: Dict[_TokenType, Optional[str]] = {}

    def style_of(self, token_type: _TokenType) -> Optional[str]:
        """Theme style for a token type, inherited from the closest styled parent."""
        if token_type in self._styles:
            return self._styles[token_type]

        current = token_type
        while current is not None and not self._style.styles_token(current):
            current = current.parent
        style = style_string(self._style.style_for_token(current)) if current is not None else None
        self._styles[token_type] = style
        return style

    def highlight(self, text: str) -> Span:
        """Tokenize one line.

        Raises:
            TokenizeError: the lexer failed on this line
        """
        try:
            tokens = list(lex(text, self._lexer))
        except Exception as e:
            raise TokenizeError(f"{self._lexer.name} lexer failed: {e}") from e

        children = [
            Span(text=value, scope=str(token_type), style=self.style_of(token_type))
            for token_type, value in tokens
            if value
        ]
        return Span(children=children)
