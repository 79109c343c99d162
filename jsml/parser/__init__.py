"""
JSML front end: lexer, parser and pretty printer.
"""

from jsml.parser.lexer import Token, TokenType, tokenize
from jsml.parser.parser import Parser, parse, parse_expression, parse_file
from jsml.parser.printer import format_declaration, format_expr, format_file

__all__ = [
    "Token",
    "TokenType",
    "tokenize",
    "Parser",
    "parse",
    "parse_expression",
    "parse_file",
    "format_declaration",
    "format_expr",
    "format_file",
]
