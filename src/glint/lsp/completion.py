"""Editor-side completion providers.

Providers are async callables registered under an id with the characters
that trigger them. Their types mirror the protocol's completion structures so
a provider can later be swapped for a language server without touching the
editor.

Example:
    registry = CompletionRegistry()

    async def sql_keywords(params: CompletionParams) -> list[CompletionItem]:
        return [CompletionItem(label="SELECT", kind=CompletionItemKind.KEYWORD)]

    registry.register("sql", sql_keywords, trigger_characters=[" ", "."])
    items = await registry.complete(params)
"""

import asyncio
from enum import IntEnum
from typing import Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..util.log import Log
from .types import CompletionItemKind

log = Log.create({"service": "lsp.completion"})


class CompletionTriggerKind(IntEnum):
    INVOKED = 1
    TRIGGER_CHARACTER = 2
    TRIGGER_FOR_INCOMPLETE_COMPLETIONS = 3


class InsertTextFormat(IntEnum):
    PLAIN_TEXT = 1
    SNIPPET = 2


class TextDocumentIdentifier(BaseModel):
    uri: str


class CompletionPosition(BaseModel):
    """Zero-based line and character of the cursor."""
    line: int = Field(ge=0)
    character: int = Field(ge=0)


class CompletionContext(BaseModel):
    trigger_kind: CompletionTriggerKind = CompletionTriggerKind.INVOKED
    trigger_character: Optional[str] = None


class CompletionParams(BaseModel):
    """What a provider gets to work with.

    Attributes:
        text_document: Document the completion is for
        position: Cursor position
        context: How completion was triggered
        text_before_cursor: Current line up to the cursor
        current_line_text: Whole current line
        full_text: Whole document
    """
    text_document: TextDocumentIdentifier
    position: CompletionPosition
    context: Optional[CompletionContext] = None
    text_before_cursor: str = ""
    current_line_text: str = ""
    full_text: str = ""

    @classmethod
    def at(
        cls,
        uri: str,
        text: str,
        line: int,
        character: int,
        trigger_character: Optional[str] = None,
    ) -> "CompletionParams":
        """Build params for a cursor position inside ``text``."""
        lines = text.split("\n")
        current = lines[line] if line < len(lines) else ""
        context = CompletionContext(
            trigger_kind=(
                CompletionTriggerKind.TRIGGER_CHARACTER
                if trigger_character
                else CompletionTriggerKind.INVOKED
            ),
            trigger_character=trigger_character,
        )
        return cls(
            text_document=TextDocumentIdentifier(uri=uri),
            position=CompletionPosition(line=line, character=character),
            context=context,
            text_before_cursor=current[:character],
            current_line_text=current,
            full_text=text,
        )


class CompletionItem(BaseModel):
    """A suggestion offered by a custom provider.

    ``sort_priority`` orders items before their labels do; lower comes first.
    """
    label: str
    kind: Optional[CompletionItemKind] = None
    detail: Optional[str] = None
    documentation: Optional[str] = None
    insert_text: Optional[str] = None
    insert_text_format: Optional[InsertTextFormat] = None
    sort_priority: Optional[int] = None

    @property
    def text_to_insert(self) -> str:
        return self.insert_text if self.insert_text is not None else self.label


CompletionProvider = Callable[[CompletionParams], Awaitable[List[CompletionItem]]]


class RegisteredCompletionProvider(BaseModel):
    id: str
    trigger_characters: List[str] = Field(default_factory=list)
    provider: CompletionProvider


class CompletionRegistry:
    """Registered completion providers, keyed by id."""

    def __init__(self) -> None:
        self._providers: Dict[str, RegisteredCompletionProvider] = {}

    def register(
        self,
        id: str,
        provider: CompletionProvider,
        trigger_characters: Optional[List[str]] = None,
    ) -> None:
        """Register ``provider``, replacing any provider with the same id."""
        self._providers[id] = RegisteredCompletionProvider(
            id=id,
            trigger_characters=list(trigger_characters or []),
            provider=provider,
        )
        log.debug("registered completion provider", {"id": id})

    def unregister(self, id: str) -> bool:
        return self._providers.pop(id, None) is not None

    @property
    def trigger_characters(self) -> List[str]:
        """Every character some provider triggers on."""
        seen: List[str] = []
        for registered in self._providers.values():
            for ch in registered.trigger_characters:
                if ch not in seen:
                    seen.append(ch)
        return seen

    def providers_for(self, trigger_character: Optional[str] = None) -> List[RegisteredCompletionProvider]:
        """Providers to run; all of them for manual invocation."""
        if trigger_character is None:
            return list(self._providers.values())
        return [
            registered
            for registered in self._providers.values()
            if trigger_character in registered.trigger_characters
        ]

    async def complete(self, params: CompletionParams) -> List[CompletionItem]:
        """Run the matching providers concurrently and merge their items.

        A provider that raises is logged and contributes nothing.
        """
        trigger = params.context.trigger_character if params.context else None
        selected = self.providers_for(trigger)
        if not selected:
            return []

        results = await asyncio.gather(
            *(registered.provider(params) for registered in selected),
            return_exceptions=True,
        )

        items: List[CompletionItem] = []
        for registered, result in zip(selected, results):
            if isinstance(result, BaseException):
                log.warn("completion provider failed", {"id": registered.id, "error": result})
                continue
            items.extend(result or [])

        items.sort(key=lambda item: (
            item.sort_priority is None,
            item.sort_priority or 0,
            item.label.lower(),
        ))
        return items
