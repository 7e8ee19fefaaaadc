"""Tests for structural signature extraction."""

import pytest
from unittest.mock import patch

from code_recall.signature import (
    NodeArena,
    detect_language,
    dispose_signature_extractor,
    extract_signature,
    extract_signature_lines,
    is_declaration_type,
    supported_languages,
    _load_profile,
)
from code_recall.languages import EXTENSION_MAP, LANGUAGE_PROFILES


PYTHON_SOURCE = '''
import os
from dataclasses import dataclass

MAX_EVENTS = 100


class EventService:
    def soft_delete(self, event_id):
        pass


def load_events(path):
    def inner():
        pass
    return []


@dataclass
class EventConfig:
    retention_days: int = 30
'''

TYPESCRIPT_SOURCE = '''
import { BaseService } from "./base";

export interface EventRecord {
  id: string;
}

export class EventService extends BaseService {
  softDelete(id: string): void {}
}

export function createEventService(): EventService {
  return new EventService();
}

type EventId = string;

const MAX_EVENTS = 100;
'''

JAVASCRIPT_SOURCE = '''
export function formatEvent(event) {
  return String(event);
}

class EventQueue {
  push(item) {}
}

const DEFAULT_LIMIT = 10;

export const createQueue = () => new EventQueue();
'''

GO_SOURCE = '''package events

type EventStore struct {
	db string
}

func NewEventStore() *EventStore {
	return &EventStore{}
}

func (s *EventStore) SoftDelete(id string) error {
	return nil
}
'''

RUST_SOURCE = '''
pub struct EventStore {
    path: String,
}

impl EventStore {
    pub fn new() -> Self {
        EventStore { path: String::new() }
    }
}

pub fn load() {}

mod tests {
    fn nested_helper() {}
}
'''

RUBY_SOURCE = '''
module Billing
  class Invoice
    def total
    end
  end
end

class Report
end

def helper
end
'''

JAVA_SOURCE = '''
package com.example.events;

public class EventService {
    public void softDelete() {}
}

interface EventListener {
    void onEvent();
}
'''

C_SOURCE = '''
#include <stdio.h>

struct event {
    int id;
};

typedef int event_id;

int load_events(const char *path) {
    return 0;
}
'''


class TestDetectLanguage:
    """Test cases for extension-based language detection."""

    @pytest.mark.parametrize("path,expected", [
        ("src/events.ts", "typescript"),
        ("src/App.TSX", "tsx"),
        ("lib/util.mjs", "javascript"),
        ("pkg/service.py", "python"),
        ("main.go", "go"),
        ("src/lib.rs", "rust"),
        ("include/event.h", "c"),
        ("src/event.hpp", "cpp"),
        ("Event.java", "java"),
        ("Program.cs", "csharp"),
    ])
    def test_known_extensions(self, path, expected):
        assert detect_language(path) == expected

    @pytest.mark.parametrize("path", ["README.md", "Makefile", ".gitignore", "notes.txt", ""])
    def test_unknown_extensions(self, path):
        assert detect_language(path) is None

    def test_every_extension_has_a_profile(self):
        for key in EXTENSION_MAP.values():
            assert key in LANGUAGE_PROFILES

    def test_supported_languages(self):
        languages = supported_languages()
        assert {"typescript", "python", "go", "rust", "java"} <= languages
        assert "markdown" not in languages


class TestExtractSignature:
    """Test cases for name-based signatures."""

    def test_python(self):
        signature = extract_signature("pkg/events.py", PYTHON_SOURCE)
        assert signature == "pkg/events.py | EventService | load_events | EventConfig"

    def test_python_excludes_nested_definitions(self):
        signature = extract_signature("pkg/events.py", PYTHON_SOURCE)
        assert "soft_delete" not in signature
        assert "inner" not in signature

    def test_typescript(self):
        signature = extract_signature("src/events.ts", TYPESCRIPT_SOURCE)
        assert signature == (
            "src/events.ts | EventRecord | EventService | createEventService | EventId | MAX_EVENTS"
        )
        assert "softDelete" not in signature

    def test_tsx_uses_typescript_patterns(self):
        source = "export function EventList() {\n  return <ul />;\n}\n"
        assert extract_signature("src/EventList.tsx", source) == "src/EventList.tsx | EventList"

    def test_javascript(self):
        signature = extract_signature("lib/queue.js", JAVASCRIPT_SOURCE)
        assert signature == "lib/queue.js | formatEvent | EventQueue | DEFAULT_LIMIT | createQueue"

    def test_javascript_generators(self):
        source = "export function* gen() {}\n\nfunction* gen2() {}\n\nclass A {}\n"
        assert extract_signature("a.js", source) == "a.js | gen | gen2 | A"

    def test_typescript_generators(self):
        source = "export function* events(): Generator<number> {}\n\nfunction* ids() {}\n"
        assert extract_signature("src/gen.ts", source) == "src/gen.ts | events | ids"

    def test_go(self):
        signature = extract_signature("events/store.go", GO_SOURCE)
        assert signature == "events/store.go | events | EventStore | NewEventStore | SoftDelete"

    def test_rust_deduplicates_names(self):
        signature = extract_signature("src/lib.rs", RUST_SOURCE)
        assert signature == "src/lib.rs | EventStore | load | tests"
        assert "nested_helper" not in signature

    def test_ruby(self):
        signature = extract_signature("lib/billing.rb", RUBY_SOURCE)
        assert signature == "lib/billing.rb | Billing | Report | helper"

    def test_java(self):
        signature = extract_signature("src/EventService.java", JAVA_SOURCE)
        assert signature == "src/EventService.java | com.example.events | EventService | EventListener"

    def test_c(self):
        signature = extract_signature("src/events.c", C_SOURCE)
        assert signature == "src/events.c | event | event_id | load_events"

    def test_signature_starts_with_path(self):
        signature = extract_signature("deep/nested/path/events.py", PYTHON_SOURCE)
        assert signature.split(" | ")[0] == "deep/nested/path/events.py"

    def test_unsupported_language(self):
        assert extract_signature("README.md", "# Events\n\nclass Foo") is None

    def test_empty_content(self):
        assert extract_signature("events.py", "") is None

    def test_no_declarations(self):
        assert extract_signature("script.py", "# just a comment\nprint('hi')\n") is None

    def test_invalid_source_does_not_raise(self):
        signature = extract_signature("broken.py", "class Broken(:\n    def\n")
        assert signature is None or signature.startswith("broken.py")

    def test_non_ascii_names(self):
        source = "def grüße():\n    pass\n"
        assert extract_signature("greet.py", source) == "greet.py | grüße"


class TestExtractSignatureLines:
    """Test cases for declaration-line signatures."""

    def test_python_lines(self):
        signature = extract_signature_lines("pkg/events.py", PYTHON_SOURCE)
        assert signature == (
            "pkg/events.py | class EventService: | def load_events(path): | class EventConfig:"
        )

    def test_typescript_lines(self):
        signature = extract_signature_lines("src/events.ts", TYPESCRIPT_SOURCE)
        parts = signature.split(" | ")
        assert parts[0] == "src/events.ts"
        assert "class EventService extends BaseService {" in parts
        assert "type EventId = string;" in parts
        assert "const MAX_EVENTS = 100;" in parts

    def test_go_lines(self):
        signature = extract_signature_lines("events/store.go", GO_SOURCE)
        parts = signature.split(" | ")
        assert parts[1] == "package events"
        assert "type EventStore struct {" in parts
        assert "func NewEventStore() *EventStore {" in parts

    def test_ruby_lines(self):
        signature = extract_signature_lines("lib/billing.rb", RUBY_SOURCE)
        assert signature == "lib/billing.rb | module Billing | class Report | def helper"

    def test_unsupported_and_empty(self):
        assert extract_signature_lines("notes.txt", "class Foo") is None
        assert extract_signature_lines("events.py", "") is None


class TestNodeArena:
    """Test cases for the flattened syntax tree."""

    def _tree(self, source):
        parser, _ = _load_profile(LANGUAGE_PROFILES["python"])
        return parser.parse(source.encode("utf-8"))

    def test_parents_precede_children(self):
        tree = self._tree(PYTHON_SOURCE)
        arena = NodeArena(tree.root_node)

        assert arena.parents[0] == -1
        assert arena.types[0] == "module"
        for index in range(1, len(arena)):
            assert 0 <= arena.parents[index] < index

    def test_index_of(self):
        tree = self._tree("def f():\n    pass\n")
        arena = NodeArena(tree.root_node)
        function = tree.root_node.children[0]

        index = arena.index_of(function)
        assert arena.types[index] == "function_definition"
        assert arena.parents[index] == 0

    def test_declaration_ancestor(self):
        tree = self._tree("class A:\n    pass\n")
        arena = NodeArena(tree.root_node)
        name = tree.root_node.children[0].child_by_field_name("name")

        ancestor = arena.declaration_ancestor(arena.index_of(name))
        assert arena.types[ancestor] == "class_definition"

    @pytest.mark.parametrize("node_type,expected", [
        ("class_declaration", True),
        ("function_definition", True),
        ("struct_item", True),
        ("struct_specifier", True),
        ("export_statement", True),
        ("identifier", False),
        ("module", False),
        ("package_clause", False),
    ])
    def test_is_declaration_type(self, node_type, expected):
        assert is_declaration_type(node_type) is expected


class TestDispose:
    """Test cases for releasing parser caches."""

    def test_dispose_is_idempotent(self):
        extract_signature("a.py", "def a():\n    pass\n")
        dispose_signature_extractor()
        dispose_signature_extractor()

    def test_extraction_works_after_dispose(self):
        dispose_signature_extractor()
        assert extract_signature("a.py", "def a():\n    pass\n") == "a.py | a"


class GrammarDownloadError(Exception):
    """Stand-in for a grammar package error outside the builtin hierarchy."""


class TestGrammarLoadFailure:
    """Test cases for grammars that cannot be loaded."""

    @pytest.fixture(autouse=True)
    def fresh_caches(self):
        dispose_signature_extractor()
        yield
        dispose_signature_extractor()

    def test_signature_is_none(self):
        with patch("code_recall.signature.get_language", side_effect=GrammarDownloadError("offline")):
            assert extract_signature("a.py", "def a():\n    pass\n") is None
            assert extract_signature_lines("a.py", "def a():\n    pass\n") is None

    def test_failure_is_remembered(self):
        with patch("code_recall.signature.get_language", side_effect=GrammarDownloadError("offline")) as load:
            extract_signature("a.py", "def a():\n    pass\n")
            extract_signature("b.py", "def b():\n    pass\n")
        assert load.call_count == 1

    def test_other_languages_unaffected(self):
        with patch("code_recall.signature.get_language", side_effect=GrammarDownloadError("offline")):
            assert extract_signature("a.py", "def a():\n    pass\n") is None
        assert extract_signature("b.go", "package b\n\nfunc B() {}\n") == "b.go | b | B"
