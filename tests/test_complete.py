import io

import pytest  # type: ignore

from complete import BELL, Completer, Completion, CompletionKind, ReadlineCompleter, Trie


class TestTrie:

    def test_insert_and_search(self):
        trie = Trie(["apple"])
        assert trie.search("apple")
        assert not trie.search("app")
        assert trie.starts_with("app")
        trie.insert("app")
        assert trie.search("app")
        assert "app" in trie
        assert "ap" not in trie

    def test_words_with_prefix_in_insertion_order(self):
        trie = Trie(["apple", "app", "banana", "apricot"])
        assert trie.words_with_prefix("ap") == ["app", "apple", "apricot"]
        assert trie.words_with_prefix("b") == ["banana"]
        assert trie.words_with_prefix("c") == []

    def test_empty_prefix_returns_everything(self):
        trie = Trie(["b", "a", "ab"])
        assert sorted(trie.words_with_prefix("")) == ["a", "ab", "b"]

    def test_duplicates_collapse(self):
        trie = Trie(["ls", "ls", "ls"])
        assert trie.words_with_prefix("l") == ["ls"]

    def test_longest_common_prefix(self):
        trie = Trie(["xyz_foo", "xyz_foo_bar", "xyz_foo_bar_baz"])
        # stops at a terminal node
        assert trie.longest_common_prefix("xyz_") == "xyz_foo"
        assert trie.longest_common_prefix("xyz_foo_") == "xyz_foo_bar"
        assert trie.longest_common_prefix("nothing") == "nothing"

    def test_longest_common_prefix_stops_at_branch(self):
        trie = Trie(["cat", "car"])
        assert trie.longest_common_prefix("c") == "ca"
        assert trie.longest_common_prefix("ca") == "ca"

    def test_deep_word_does_not_recurse(self):
        word = "a" * 5000
        trie = Trie([word, word + "b"])
        assert trie.words_with_prefix("a") == [word, word + "b"]
        assert trie.longest_common_prefix("aa") == word


class TestCompleter:

    def test_no_match(self):
        assert Completer(["cat"]).complete("z").kind is CompletionKind.NONE

    def test_single_match(self):
        result = Completer(["apple"]).complete("ap")
        assert result == Completion(CompletionKind.FULL, "apple")

    def test_single_match_when_word_equals_prefix(self):
        assert Completer(["echo"]).complete("echo") == Completion(CompletionKind.FULL, "echo")

    def test_ambiguity_protocol(self):
        completer = Completer(["cat", "car"])

        partial = completer.complete("c")
        assert partial == Completion(CompletionKind.PARTIAL, "ca")

        bell = completer.complete("ca")
        assert bell.kind is CompletionKind.BELL
        assert completer.pending_prefix == "ca"

        listing = completer.complete("ca")
        assert listing.kind is CompletionKind.LIST
        assert listing.matches == ("car", "cat")
        assert listing.listing == "car  cat"
        assert completer.pending_prefix is None

        # the cycle starts over
        assert completer.complete("ca").kind is CompletionKind.BELL

    def test_different_prefix_rings_again(self):
        completer = Completer(["cat", "car", "dog", "dot"])
        assert completer.complete("ca").kind is CompletionKind.BELL
        assert completer.complete("do").kind is CompletionKind.BELL
        assert completer.complete("ca").kind is CompletionKind.BELL
        assert completer.complete("ca").kind is CompletionKind.LIST

    def test_prefix_that_is_itself_a_word(self):
        completer = Completer(["xyz_foo", "xyz_foo_bar"])
        assert completer.complete("xyz") == Completion(CompletionKind.PARTIAL, "xyz_foo")
        assert completer.complete("xyz_foo").kind is CompletionKind.BELL
        assert completer.complete("xyz_foo").listing == "xyz_foo  xyz_foo_bar"


class TestReadlineCompleter:

    def make(self, words, buffer="ca"):
        output = io.StringIO()
        adapter = ReadlineCompleter(Completer(words), "$ ", output=output, line_buffer=lambda: buffer)
        return adapter, output

    def test_full_completion_appends_space(self):
        adapter, output = self.make(["echo", "exit"])
        assert adapter("ec", 0) == "echo "
        assert adapter("ec", 1) is None
        assert output.getvalue() == ""

    def test_partial_completion_has_no_space(self):
        adapter, _ = self.make(["cat", "car"])
        assert adapter("c", 0) == "ca"

    def test_bell_then_list(self):
        adapter, output = self.make(["cat", "car"])
        assert adapter("ca", 0) is None
        assert output.getvalue() == BELL
        assert adapter("ca", 0) is None
        assert output.getvalue() == BELL + "\ncar  cat\n$ ca"

    def test_no_match(self):
        adapter, output = self.make(["cat"])
        assert adapter("zz", 0) is None
        assert output.getvalue() == ""
