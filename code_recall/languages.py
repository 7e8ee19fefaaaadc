"""
Language profiles for structural signature extraction.

Each profile names a tree-sitter grammar (as exposed by
tree-sitter-language-pack) and a query whose patterns capture the
names of top-level declarations as ``@name``.

The queries are executed with a maximum start depth of 1, so a
pattern only matches when its outermost node is a direct child of
the syntax tree root. Wrapper patterns (``export_statement``,
``decorated_definition``) exist so that exported or decorated
declarations still count as top level.
"""

from dataclasses import dataclass
from typing import Dict


CAPTURE_NAME = "name"


@dataclass(frozen=True)
class LanguageProfile:
    """Extraction configuration for one supported language."""

    key: str
    grammar: str
    query: str


_TYPESCRIPT_QUERY = """
(class_declaration name: (type_identifier) @name)
(abstract_class_declaration name: (type_identifier) @name)
(interface_declaration name: (type_identifier) @name)
(type_alias_declaration name: (type_identifier) @name)
(function_declaration name: (identifier) @name)
(generator_function_declaration name: (identifier) @name)
(enum_declaration name: (identifier) @name)

(export_statement
  declaration: (class_declaration name: (type_identifier) @name))
(export_statement
  declaration: (abstract_class_declaration name: (type_identifier) @name))
(export_statement
  declaration: (interface_declaration name: (type_identifier) @name))
(export_statement
  declaration: (type_alias_declaration name: (type_identifier) @name))
(export_statement
  declaration: (function_declaration name: (identifier) @name))
(export_statement
  declaration: (generator_function_declaration name: (identifier) @name))
(export_statement
  declaration: (enum_declaration name: (identifier) @name))
(export_statement
  declaration: (lexical_declaration
    (variable_declarator name: (identifier) @name)))

(lexical_declaration
  (variable_declarator name: (identifier) @name))
"""

_JAVASCRIPT_QUERY = """
(class_declaration name: (identifier) @name)
(function_declaration name: (identifier) @name)
(generator_function_declaration name: (identifier) @name)

(export_statement
  declaration: (class_declaration name: (identifier) @name))
(export_statement
  declaration: (function_declaration name: (identifier) @name))
(export_statement
  declaration: (generator_function_declaration name: (identifier) @name))
(export_statement
  declaration: (lexical_declaration
    (variable_declarator name: (identifier) @name)))

(lexical_declaration
  (variable_declarator name: (identifier) @name))
"""

_PYTHON_QUERY = """
(class_definition name: (identifier) @name)
(function_definition name: (identifier) @name)

(decorated_definition
  definition: (class_definition name: (identifier) @name))
(decorated_definition
  definition: (function_definition name: (identifier) @name))
"""

_RUBY_QUERY = """
(module name: (constant) @name)
(class name: (constant) @name)
(method name: (identifier) @name)
(singleton_method name: (identifier) @name)
"""

_GO_QUERY = """
(package_clause (package_identifier) @name)
(type_declaration (type_spec name: (type_identifier) @name))
(function_declaration name: (identifier) @name)
(method_declaration name: (field_identifier) @name)
"""

_RUST_QUERY = """
(mod_item name: (identifier) @name)
(struct_item name: (type_identifier) @name)
(enum_item name: (type_identifier) @name)
(trait_item name: (type_identifier) @name)
(impl_item type: (type_identifier) @name)
(function_item name: (identifier) @name)
(type_item name: (type_identifier) @name)
"""

_C_QUERY = """
(function_definition
  declarator: (function_declarator
    declarator: (identifier) @name))
(function_definition
  declarator: (pointer_declarator
    declarator: (function_declarator
      declarator: (identifier) @name)))
(struct_specifier name: (type_identifier) @name)
(enum_specifier name: (type_identifier) @name)
(type_definition
  declarator: (type_identifier) @name)
"""

_CPP_QUERY = """
(function_definition
  declarator: (function_declarator
    declarator: (identifier) @name))
(class_specifier name: (type_identifier) @name)
(struct_specifier name: (type_identifier) @name)
(enum_specifier name: (type_identifier) @name)
(namespace_definition name: (namespace_identifier) @name)
(type_definition
  declarator: (type_identifier) @name)
"""

_JAVA_QUERY = """
(package_declaration (scoped_identifier) @name)
(package_declaration (identifier) @name)
(class_declaration name: (identifier) @name)
(interface_declaration name: (identifier) @name)
(enum_declaration name: (identifier) @name)
(record_declaration name: (identifier) @name)
"""

_SWIFT_QUERY = """
(class_declaration name: (type_identifier) @name)
(protocol_declaration name: (type_identifier) @name)
(function_declaration name: (simple_identifier) @name)
"""

_DART_QUERY = """
(class_definition name: (identifier) @name)
(function_signature name: (identifier) @name)
(enum_declaration name: (identifier) @name)
"""

_PHP_QUERY = """
(class_declaration name: (name) @name)
(interface_declaration name: (name) @name)
(trait_declaration name: (name) @name)
(function_definition name: (name) @name)
(namespace_definition name: (namespace_name) @name)
"""

_CSHARP_QUERY = """
(class_declaration name: (identifier) @name)
(interface_declaration name: (identifier) @name)
(struct_declaration name: (identifier) @name)
(enum_declaration name: (identifier) @name)
(namespace_declaration name: (_) @name)
(file_scoped_namespace_declaration name: (_) @name)
"""


LANGUAGE_PROFILES: Dict[str, LanguageProfile] = {
    profile.key: profile
    for profile in (
        LanguageProfile("typescript", "typescript", _TYPESCRIPT_QUERY),
        LanguageProfile("tsx", "tsx", _TYPESCRIPT_QUERY),
        LanguageProfile("javascript", "javascript", _JAVASCRIPT_QUERY),
        LanguageProfile("python", "python", _PYTHON_QUERY),
        LanguageProfile("ruby", "ruby", _RUBY_QUERY),
        LanguageProfile("go", "go", _GO_QUERY),
        LanguageProfile("rust", "rust", _RUST_QUERY),
        LanguageProfile("c", "c", _C_QUERY),
        LanguageProfile("cpp", "cpp", _CPP_QUERY),
        LanguageProfile("java", "java", _JAVA_QUERY),
        LanguageProfile("swift", "swift", _SWIFT_QUERY),
        LanguageProfile("dart", "dart", _DART_QUERY),
        LanguageProfile("php", "php", _PHP_QUERY),
        LanguageProfile("csharp", "csharp", _CSHARP_QUERY),
    )
}


# Lowercase extension -> language key
EXTENSION_MAP: Dict[str, str] = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
    ".pyi": "python",
    ".rb": "ruby",
    ".go": "go",
    ".rs": "rust",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cc": "cpp",
    ".cxx": "cpp",
    ".hh": "cpp",
    ".java": "java",
    ".swift": "swift",
    ".dart": "dart",
    ".php": "php",
    ".cs": "csharp",
}
