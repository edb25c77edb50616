"""Expression language for lazytree directives.

This module provides:
- Lexer / Parser: tokenize and parse expression source into an AST
- compile_expression: memoized classification into LiteralText, Template
  or InlineCode shapes
- Evaluator: async tree-walking evaluation against a host engine
- ScopedName / candidate_paths: scoped name resolution
- FunctionRegistry: built-in functions; ResolverRegistry: caller functions
"""

from lazytree.expressions.builtins import ensure_builtins, register_all_builtins, stringify
from lazytree.expressions.compiler import (
    ExpressionShape,
    InlineCode,
    LiteralText,
    Slot,
    Template,
    compile_expression,
    split_template,
)
from lazytree.expressions.evaluator import (
    EvaluationContext,
    EvaluationHost,
    Evaluator,
    evaluate,
)
from lazytree.expressions.functions import (
    FunctionCategory,
    FunctionDefinition,
    FunctionParameter,
    FunctionRegistry,
)
from lazytree.expressions.lexer import Lexer, LexerError, Token, TokenType
from lazytree.expressions.parser import (
    ASTNode,
    ArrayLiteral,
    BinaryOp,
    Conditional,
    FunctionCall,
    IndexAccess,
    Literal,
    MemberAccess,
    ObjectLiteral,
    ParseError,
    Parser,
    Placeholder,
    Pronoun,
    Reference,
    UnaryOp,
    parse,
)
from lazytree.expressions.pronouns import PRONOUNS, pronoun_for, resolve_pronoun
from lazytree.expressions.resolvers import ResolverRegistry, flatten_resolvers
from lazytree.expressions.scope import ScopedName, candidate_paths

__all__ = [
    # Builtins
    "ensure_builtins",
    "register_all_builtins",
    "stringify",
    # Compiler
    "ExpressionShape",
    "InlineCode",
    "LiteralText",
    "Slot",
    "Template",
    "compile_expression",
    "split_template",
    # Evaluator
    "EvaluationContext",
    "EvaluationHost",
    "Evaluator",
    "evaluate",
    # Functions
    "FunctionCategory",
    "FunctionDefinition",
    "FunctionParameter",
    "FunctionRegistry",
    # Lexer
    "Lexer",
    "LexerError",
    "Token",
    "TokenType",
    # Parser
    "ASTNode",
    "ArrayLiteral",
    "BinaryOp",
    "Conditional",
    "FunctionCall",
    "IndexAccess",
    "Literal",
    "MemberAccess",
    "ObjectLiteral",
    "ParseError",
    "Parser",
    "Placeholder",
    "Pronoun",
    "Reference",
    "UnaryOp",
    "parse",
    # Pronouns
    "PRONOUNS",
    "pronoun_for",
    "resolve_pronoun",
    # Resolvers
    "ResolverRegistry",
    "flatten_resolvers",
    # Scope
    "ScopedName",
    "candidate_paths",
]
