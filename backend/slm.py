#!/usr/bin/env python3
"""
slm.py
Single-file compiler pipeline for the slm language (lexer → recursive-descent
parser → x86-64 NASM assembly for the Linux syscall ABI).

Every value is a 64-bit integer living in an 8-byte stack slot. The only
statements are `let name = expr;` and builtin calls such as `exit(expr);`.
"""

import argparse
import logging
import re
import subprocess
import sys
from collections import namedtuple
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

# =====================================================
# DIAGNOSTICS
# =====================================================
class Position(namedtuple('Position', ['line', 'column', 'length'])):
    """Zero-based line/column of a token's first character plus its length."""
    __slots__ = ()

Position.ZERO = Position(0, 0, 0)


class ErrorKind(Enum):
    INVALID_TOKEN = "Invalid token '{}'"
    EXPECTED_TOKEN = "Expected {} got {}"
    NOT_FOUND = "Could not find '{}'"
    UNSUPPORTED_EXPRESSION = "Unsupported expression type '{}'"
    UNMATCHED = "Unmatched '{}'"
    ALREADY_DECLARED = "'{}' is already declared"


class CompileError(Exception):
    """The first error found by any stage; compilation stops here."""

    def __init__(self, kind, position, *args):
        self.kind = kind
        self.position = position
        self.details = args
        super().__init__(kind.value.format(*args))

    @property
    def message(self):
        return str(self)

    def to_dict(self):
        return {
            "kind": self.kind.name,
            "message": self.message,
            "line": self.position.line,
            "column": self.position.column,
            "length": self.position.length,
        }


class Source:
    def __init__(self, code, path='<input>'):
        self.code = code
        self.path = str(path)

    @classmethod
    def from_file(cls, path):
        return cls(Path(path).read_text(encoding='utf-8'), path)


def render_error(err, source):
    """
    Format an error the way it is shown to the user:

        Could not find 'y'
         --> prog.slm:1:6
         1 | exit(y);
                  ^
    """
    pos = err.position
    line_num = str(pos.line + 1)
    padding = ' ' * len(line_num)
    out = [err.message, f"{padding}--> {source.path}:{line_num}:{pos.column + 1}"]

    lines = source.code.split('\n')
    if 0 <= pos.line < len(lines):
        code_line = lines[pos.line].rstrip('\r')
        out.append(f" {line_num} | {code_line}")
        out.append(f"{padding}    {' ' * pos.column}{'^' * pos.length}")
    return '\n'.join(out)

# =====================================================
# LEXER
# =====================================================
Token = namedtuple('Token', ['type', 'value', 'position'])

U64_MAX = 2 ** 64 - 1

def describe_token(tok):
    if tok.type == 'EOF':
        return 'end of input'
    if tok.type == 'IDENT':
        return f"identifier '{tok.value}'"
    if tok.type == 'NUMBER':
        return f"integer {tok.value}"
    if tok.type == 'STRING':
        return f'string "{tok.value}"'
    return f"'{Lexer.SPELLING[tok.type]}'"


class Lexer:
    KEYWORDS = {'let': 'LET', 'return': 'RETURN'}
    SPELLING = {'LET': 'let', 'RETURN': 'return', 'ASSIGN': '=', 'END': ';',
                'LPAREN': '(', 'RPAREN': ')'}
    token_specification = [
        ("COMMENT",    r'#[^\n]*'),
        ("NEWLINE",    r'\n'),
        ("STRING",     r'"[^"\n]*"'),
        ("UNMATCHED",  r'"[^"\n]*'),       # ran into newline/EOF first
        ("ID",         r'[^\W\d]\w*'),
        ("NUMBER",     r'[0-9]+'),
        ("END",        r';'),
        ("LPAREN",     r'\('),
        ("RPAREN",     r'\)'),
        ("ASSIGN",     r'='),
        ("SKIP",       r'[^\S\n]'),
        ("MISMATCH",   r'.'),
    ]
    tok_regex = '|'.join(f'(?P<{n}>{p})' for n, p in token_specification)
    master_re = re.compile(tok_regex)

    def __init__(self, code):
        self.code = code
        self.lineno = 0
        self.line_start = 0
        self.tokens = []

    def tokenize(self):
        for mo in self.master_re.finditer(self.code):
            kind = mo.lastgroup
            val = mo.group()
            pos = Position(self.lineno, mo.start() - self.line_start, len(val))
            if kind == "NEWLINE":
                self.lineno += 1
                self.line_start = mo.end()
            elif kind == "SKIP" or kind == "COMMENT":
                pass
            elif kind == "STRING":
                self.tokens.append(Token('STRING', val[1:-1], pos))
            elif kind == "UNMATCHED":
                raise CompileError(ErrorKind.UNMATCHED, pos, '"')
            elif kind == "ID":
                if not (val[0].isalpha() or val[0] == "_"):
                    # \w also matches numeric symbols like superscript digits
                    raise CompileError(ErrorKind.INVALID_TOKEN, pos._replace(length=1), val[0])
                self.tokens.append(Token(self.KEYWORDS.get(val, 'IDENT'), val, pos))
            elif kind == "NUMBER":
                value = int(val)
                if value > U64_MAX:
                    raise CompileError(ErrorKind.INVALID_TOKEN, pos, val)
                self.tokens.append(Token('NUMBER', value, pos))
            elif kind == "MISMATCH":
                raise CompileError(ErrorKind.INVALID_TOKEN, pos, val)
            else:
                self.tokens.append(Token(kind, val, pos))

        # EOF borrows the last token's position so errors at the end point somewhere useful
        last = self.tokens[-1].position if self.tokens else Position.ZERO
        self.tokens.append(Token('EOF', '', last))
        return self.tokens


def tokenize(code):
    return Lexer(code).tokenize()

# =====================================================
# AST NODES
# =====================================================
class Node: pass

class Program(Node):
    def __init__(self, statements):
        self.statements = statements

class Let(Node):
    def __init__(self, identifier, expression):
        self.identifier = identifier
        self.expression = expression

class Call(Node):
    def __init__(self, identifier, argument):
        self.identifier = identifier
        self.argument = argument

class Identifier(Node):
    def __init__(self, name, position):
        self.name = name
        self.position = position

class Literal(Node):
    def __init__(self, value, typ, position):
        self.value = value
        self.typ = typ  # 'int' | 'string'
        self.position = position

# =====================================================
# PARSER (recursive-descent, one token of lookahead)
# =====================================================
class Parser:
    def __init__(self, tokens):
        self.tokens = tokens
        self.pos = 0

    def peek(self):
        return self.tokens[self.pos]

    def advance(self):
        tok = self.peek()
        # never walk past EOF
        if tok.type != 'EOF':
            self.pos += 1
        return tok

    def expect(self, ttype, what=None):
        tok = self.peek()
        if tok.type == ttype:
            return self.advance()
        what = what or f"'{Lexer.SPELLING.get(ttype, ttype)}'"
        raise CompileError(ErrorKind.EXPECTED_TOKEN, tok.position, what, describe_token(tok))

    def parse(self):
        stmts = []
        while self.peek().type != 'EOF':
            stmts.append(self.statement())
        return Program(stmts)

    def statement(self):
        tok = self.peek()
        if tok.type == 'IDENT':
            call = self.call()
            self.expect('END')
            return call
        if tok.type == 'LET':
            return self.let_statement()
        raise CompileError(ErrorKind.EXPECTED_TOKEN, tok.position,
                           'identifier or let', describe_token(tok))

    def call(self):
        identifier = self.identifier()
        self.expect('LPAREN')
        argument = self.expression()
        self.expect('RPAREN')
        return Call(identifier, argument)

    def let_statement(self):
        self.expect('LET')
        identifier = self.identifier()
        self.expect('ASSIGN')
        expression = self.expression()
        self.expect('END')
        return Let(identifier, expression)

    def identifier(self):
        tok = self.expect('IDENT', 'identifier')
        return Identifier(tok.value, tok.position)

    def expression(self):
        tok = self.peek()
        if tok.type == 'NUMBER':
            self.advance()
            return Literal(tok.value, 'int', tok.position)
        if tok.type == 'STRING':
            self.advance()
            return Literal(tok.value, 'string', tok.position)
        if tok.type == 'IDENT':
            return self.identifier()
        raise CompileError(ErrorKind.EXPECTED_TOKEN, tok.position,
                           'literal or identifier', describe_token(tok))


def parse_tokens(tokens):
    return Parser(tokens).parse()

# =====================================================
# CODE GENERATION (x86-64, NASM syntax)
# =====================================================
SLOT_SIZE = 8  # only 64-bit integers exist
SYS_EXIT = 60

class Variable:
    def __init__(self, stack_location):
        # stack size right after the variable's value was pushed
        self.stack_location = stack_location

    def __repr__(self):
        return f"Variable({self.stack_location})"


class AsmGenerator:
    """
    Walks the program once, keeping `stack_size` in step with what rsp does at
    runtime. A variable is read back at [rsp + stack_size - stack_location],
    which stays correct however many values were pushed since it was defined.
    """

    def __init__(self):
        self.lines = []
        self.variables = {}
        self.stack_size = 0

    def generate(self, program):
        self.lines = ['global _start', '_start:']
        for stmt in program.statements:
            self.gen_statement(stmt)
        return '\n'.join(self.lines) + '\n'

    def gen_statement(self, stmt):
        if isinstance(stmt, Let):
            ident = stmt.identifier
            if ident.name in self.variables:
                raise CompileError(ErrorKind.ALREADY_DECLARED, ident.position, ident.name)
            self.gen_expression(stmt.expression)
            self.variables[ident.name] = Variable(self.stack_size)
            return
        if isinstance(stmt, Call):
            builtin = BUILTINS.get(stmt.identifier.name)
            if builtin is None:
                raise CompileError(ErrorKind.NOT_FOUND, stmt.identifier.position,
                                   stmt.identifier.name)
            builtin(self, stmt)

    def gen_exit(self, call):
        self.gen_expression(call.argument)
        self.emit(f"mov rax, {SYS_EXIT}")
        self.pop('rdi')
        self.emit('syscall')

    def gen_expression(self, expr):
        if isinstance(expr, Literal):
            if expr.typ != 'int':
                raise CompileError(ErrorKind.UNSUPPORTED_EXPRESSION, expr.position, expr.typ)
            self.push(str(expr.value))
            return
        if isinstance(expr, Identifier):
            var = self.variables.get(expr.name)
            if var is None:
                raise CompileError(ErrorKind.NOT_FOUND, expr.position, expr.name)
            self.push(f"QWORD [rsp+{self.stack_size - var.stack_location}]")

    def push(self, operand):
        self.emit(f"push {operand}")
        self.stack_size += SLOT_SIZE

    def pop(self, register):
        self.emit(f"pop {register}")
        self.stack_size -= SLOT_SIZE

    def emit(self, line):
        self.lines.append(line)


BUILTINS = {
    'exit': AsmGenerator.gen_exit,
}


def generate_asm(program):
    return AsmGenerator().generate(program)

# =====================================================
# COMPILER DRIVER
# =====================================================
def compile_program(code):
    """Run the whole pipeline, raising CompileError on the first problem."""
    tokens = tokenize(code)
    logger.debug("lexed %d tokens", len(tokens))
    program = parse_tokens(tokens)
    logger.debug("parsed %d statements", len(program.statements))
    asm = generate_asm(program)
    logger.debug("generated %d lines of assembly", asm.count('\n'))
    return asm


def compile_source(code, path='<input>'):
    """
    Like compile_program, but every stage's output is collected into a dict
    and a compile error is reported in it instead of raised.
    """
    source = Source(code, path)
    result = {
        'tokens': [],
        'ast': None,
        'asm': [],
        'errors': [],
        'error': None,
        'symbol_table': {},
    }

    try:
        result['tokens'] = tokenize(code)
        result['ast'] = parse_tokens(result['tokens'])
        gen = AsmGenerator()
        asm = gen.generate(result['ast'])
    except CompileError as e:
        result['errors'] = [render_error(e, source)]
        result['error'] = e
        return result

    result['asm'] = asm.splitlines()
    result['symbol_table'] = {name: var.stack_location for name, var in gen.variables.items()}
    return result


def run_cmd(cmd):
    logger.info("[ %s ]", ' '.join(str(c) for c in cmd))
    subprocess.run(cmd, check=True)


def build(path, output=None, assembler='nasm', linker='ld', asm_only=False):
    """Compile `path` to <stem>.asm, then assemble and link it. Returns an exit code."""
    path = Path(path)
    try:
        source = Source.from_file(path)
    except OSError as e:
        print(f"error: cannot read {path}: {e}", file=sys.stderr)
        return 1

    try:
        asm = compile_program(source.code)
    except CompileError as e:
        print(render_error(e, source), file=sys.stderr)
        return 1

    base = Path(output) if output else path.with_suffix('')
    exe_file = base if base != path else path.with_suffix('.out')
    asm_file = base.with_name(base.name + '.asm')
    obj_file = base.with_name(base.name + '.o')
    if path in (asm_file, obj_file):
        print(f"error: {path} would be overwritten by the build, rename it or pass -o", file=sys.stderr)
        return 1

    asm_file.write_text(asm, encoding='utf-8')
    logger.info("wrote %s", asm_file)
    if asm_only:
        return 0

    try:
        run_cmd([assembler, '-felf64', str(asm_file), '-o', str(obj_file)])
        run_cmd([linker, str(obj_file), '-o', str(exe_file)])
    except (OSError, subprocess.CalledProcessError) as e:
        logger.error("build failed: %s", e)
        return 1
    logger.info("wrote %s", exe_file)
    return 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="slm compiler (x86-64 Linux)")
    parser.add_argument("input", type=Path, help="Source file to compile")
    parser.add_argument("-o", "--output", type=Path, help="Executable path (default: input without suffix)")
    parser.add_argument("--asm-only", action="store_true", help="Only write the .asm file")
    parser.add_argument("--assembler", default="nasm", help="Assembler to run (default: nasm)")
    parser.add_argument("--linker", default="ld", help="Linker to run (default: ld)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every stage")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")
    return build(args.input, args.output, args.assembler, args.linker, args.asm_only)


if __name__ == '__main__':
    sys.exit(main())
