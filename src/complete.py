"""Tab-completion for command names.

A `Trie` indexes every known command once at startup. `Completer` answers
prefix queries with the two-step ambiguity protocol: the first TAB on an
ambiguous prefix rings the bell, a second TAB on the same prefix lists the
candidates. `ReadlineCompleter` adapts that to the `readline` callback.
"""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, TextIO, Tuple

logger = logging.getLogger(__name__)

BELL = "\a"


class _Node:
    __slots__ = ("children", "terminal")

    def __init__(self) -> None:
        # insertion-ordered
        self.children: Dict[str, _Node] = {}
        self.terminal = False


class Trie:
    """Prefix tree over command names. Read-only once built."""

    def __init__(self, words: Iterable[str] = ()) -> None:
        self._root = _Node()
        for word in words:
            self.insert(word)

    def insert(self, word: str) -> None:
        node = self._root
        for ch in word:
            child = node.children.get(ch)
            if child is None:
                child = node.children[ch] = _Node()
            node = child
        node.terminal = True

    def _find(self, prefix: str) -> Optional[_Node]:
        node = self._root
        for ch in prefix:
            node = node.children.get(ch)
            if node is None:
                return None
        return node

    def search(self, word: str) -> bool:
        node = self._find(word)
        return node is not None and node.terminal

    def starts_with(self, prefix: str) -> bool:
        return self._find(prefix) is not None

    def words_with_prefix(self, prefix: str) -> List[str]:
        node = self._find(prefix)
        if node is None:
            return []
        words: List[str] = []
        # explicit stack; children pushed in reverse to keep insertion order
        stack: List[Tuple[_Node, str]] = [(node, prefix)]
        while stack:
            current, text = stack.pop()
            if current.terminal:
                words.append(text)
            for ch, child in reversed(current.children.items()):
                stack.append((child, text + ch))
        return words

    def longest_common_prefix(self, prefix: str) -> str:
        """Extend `prefix` for as long as every word below it agrees."""
        node = self._find(prefix)
        if node is None:
            return prefix
        text = prefix
        while len(node.children) == 1 and not node.terminal:
            ch, node = next(iter(node.children.items()))
            text += ch
        return text

    def __contains__(self, word: object) -> bool:
        return isinstance(word, str) and self.search(word)


class CompletionKind(Enum):
    NONE = "none"
    FULL = "full"        # single match, caller appends a space
    PARTIAL = "partial"  # common extension, no trailing space
    BELL = "bell"
    LIST = "list"        # print matches then redraw the prompt


@dataclass(frozen=True)
class Completion:
    kind: CompletionKind
    text: str = ""
    matches: Tuple[str, ...] = field(default=())

    @property
    def listing(self) -> str:
        return "  ".join(self.matches)


class Completer:
    def __init__(self, words: Iterable[str]) -> None:
        self.trie = Trie(words)
        self.pending_prefix: Optional[str] = None

    def complete(self, prefix: str) -> Completion:
        matches = self.trie.words_with_prefix(prefix)
        if not matches:
            return Completion(CompletionKind.NONE)
        if len(matches) == 1:
            return Completion(CompletionKind.FULL, matches[0])

        lcp = self.trie.longest_common_prefix(prefix)
        if len(lcp) > len(prefix):
            return Completion(CompletionKind.PARTIAL, lcp)

        if prefix == self.pending_prefix:
            self.pending_prefix = None
            return Completion(CompletionKind.LIST, prefix, tuple(sorted(matches)))
        self.pending_prefix = prefix
        return Completion(CompletionKind.BELL, prefix)


class ReadlineCompleter:
    """`readline.set_completer` callback driving a `Completer`.

    Only `state == 0` yields a value: every outcome offers at most one
    candidate, and bell/listing are side effects on `output`.
    """

    def __init__(
        self,
        completer: Completer,
        prompt: str,
        output: Optional[TextIO] = None,
        line_buffer: Optional[Callable[[], str]] = None,
    ) -> None:
        self.completer = completer
        self.prompt = prompt
        self.output = output if output is not None else sys.stdout
        self.line_buffer = line_buffer or (lambda: "")

    def __call__(self, text: str, state: int) -> Optional[str]:
        if state != 0:
            return None
        result = self.completer.complete(text)
        logger.debug("complete %r -> %s %r", text, result.kind.value, result.text)
        if result.kind is CompletionKind.FULL:
            return result.text + " "
        if result.kind is CompletionKind.PARTIAL:
            return result.text
        if result.kind is CompletionKind.BELL:
            self.output.write(BELL)
            self.output.flush()
        elif result.kind is CompletionKind.LIST:
            self.output.write("\n" + result.listing + "\n")
            self.output.write(self.prompt + self.line_buffer())
            self.output.flush()
        return None
