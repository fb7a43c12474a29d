"""
Tokenizer and recursive-descent parser for the jsstep language subset.

The parser produces ESTree-shaped `Node` objects. Every node carries `type`,
`range` (source offsets) and `loc` (1-based lines, 0-based columns), which the
interpreter uses for timeline lines and narration text.

Usage:
    from jsstep.parser import parse
    program = parse("let x = 1;\nconsole.log(x);")
    program.body[0].type   # 'VariableDeclaration'
"""
from __future__ import annotations

import bisect
import logging
import re
from collections import namedtuple
from typing import List, Optional, Tuple

from .errors import JSSyntaxError

log = logging.getLogger("jsstep.parser")

Token = namedtuple("Token", "type value start end nl_before")
Position = namedtuple("Position", "line column")
SourceLocation = namedtuple("SourceLocation", "start end")

# -- Token definitions (order matters: longer operators first) --
TOKEN_SPEC = [
    ('NUMBER',   r'0[xX][0-9a-fA-F]+|0[bB][01]+|0[oO][0-7]+|(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?'),
    ('STRING',   r'"(?:[^"\\\n]|\\[\s\S])*"|\'(?:[^\'\\\n]|\\[\s\S])*\''),
    ('IDENT',    r'[A-Za-z_$][A-Za-z0-9_$]*'),
    ('COMMENT',  r'//[^\n]*|/\*[\s\S]*?\*/'),
    ('OP',       r'>>>=|\.\.\.|\*\*=|\?\?=|&&=|\|\|=|<<=|>>=|>>>|===|!==|\*\*|\?\?|\?\.(?!\d)|=>'
                 r'|\+=|-=|\*=|/=|%=|&=|\|=|\^=|<<|>>|==|!=|<=|>=|&&|\|\||\+\+|--|[!&^|~+\-*/%<>=]'),
    ('PUNC',     r'[(){},;\[\].:?]'),
    ('SKIP',     r'[ \t\r\n\u00a0\ufeff]+'),
]
TOKEN_RE = re.compile('|'.join('(?P<%s>%s)' % pair for pair in TOKEN_SPEC))

RESERVED = frozenset((
    'break', 'case', 'catch', 'class', 'const', 'continue', 'debugger', 'default', 'delete',
    'do', 'else', 'enum', 'export', 'extends', 'false', 'finally', 'for', 'function', 'if',
    'import', 'in', 'instanceof', 'new', 'null', 'return', 'super', 'switch', 'this', 'throw',
    'true', 'try', 'typeof', 'var', 'void', 'while', 'with',
))

ASSIGN_OPS = frozenset(('=', '+=', '-=', '*=', '/=', '%=', '**=', '<<=', '>>=', '>>>=',
                        '&=', '|=', '^=', '&&=', '||=', '??='))

# precedence climbing table; higher binds tighter
BINARY_PRECEDENCE = {
    '??': 1, '||': 1, '&&': 2,
    '|': 3, '^': 4, '&': 5,
    '==': 6, '!=': 6, '===': 6, '!==': 6,
    '<': 7, '>': 7, '<=': 7, '>=': 7, 'in': 7, 'instanceof': 7,
    '<<': 8, '>>': 8, '>>>': 8,
    '+': 9, '-': 9,
    '*': 10, '/': 10, '%': 10,
    '**': 11,
}
LOGICAL_OPS = frozenset(('||', '&&', '??'))

_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', 'b': '\b', 'f': '\f', 'v': '\v', '0': '\0'}
_ESCAPE_RE = re.compile(r'\\(u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|\r\n|[\s\S])')


class Node:
    """ESTree-style AST node; node-specific fields are plain attributes."""

    def __init__(self, type: str, start: int, end: int, loc: SourceLocation, **fields):
        self.type = type
        self.start = start
        self.end = end
        self.range = (start, end)
        self.loc = loc
        self.__dict__.update(fields)

    @property
    def line(self) -> int:
        """0-based line of the node's first character."""
        return self.loc.start.line - 1

    def __repr__(self):
        return f"<Node {self.type} {self.range[0]}:{self.range[1]}>"


def decode_escapes(text: str, src: str = "", offset: int = 0) -> str:
    def repl(m):
        esc = m.group(1)
        if esc[0] == 'u' and len(esc) > 1:
            digits = esc[2:-1] if esc[1] == '{' else esc[1:]
            code = int(digits, 16)
            if code > 0x10FFFF:
                raise _error(src, offset, "Undefined Unicode code-point")
            return chr(code)
        if esc[0] == 'x' and len(esc) == 3:
            return chr(int(esc[1:], 16))
        if esc in ('\n', '\r', '\r\n', '\u2028', '\u2029'):
            return ''
        return _ESCAPES.get(esc, esc)
    return _ESCAPE_RE.sub(repl, text)


def _number_value(text: str) -> float:
    prefix = text[:2].lower()
    if prefix in ('0x', '0b', '0o'):
        return float(int(text[2:], {'0x': 16, '0b': 2, '0o': 8}[prefix]))
    return float(text)


def _line_col(src: str, offset: int) -> Tuple[int, int]:
    line = src.count('\n', 0, offset)
    col = offset - (src.rfind('\n', 0, offset) + 1)
    return line, col


def _error(src: str, offset: int, message: str) -> JSSyntaxError:
    line, col = _line_col(src, offset)
    return JSSyntaxError(f"{message} ({line + 1}:{col})", line, col, offset)


def format_error_context(src: str, err_pos: int, err_len: int = 1, window: int = 40) -> str:
    """Return a short snippet around err_pos with a caret marker and (line, col) info."""
    line, col = _line_col(src, err_pos)
    start = max(0, err_pos - window)
    end = min(len(src), err_pos + err_len + window)
    snippet = src[start:end].replace('\n', '\\n')
    caret_line = ' ' * (err_pos - start) + '^' * max(1, err_len)
    return f"Line {line + 1}, Col {col + 1}\n{snippet}\n{caret_line}"


def scan_template(src: str, pos: int) -> Tuple[int, List[Tuple[str, int, int]]]:
    """Scan a template literal starting at the backtick at `pos`.

    Returns (end offset, parts) where parts alternate ('str', start, end) and
    ('expr', start, end) spans, always starting and ending with a 'str' span.
    """
    i = pos + 1
    n = len(src)
    parts: List[Tuple[str, int, int]] = []
    chunk_start = i
    while i < n:
        ch = src[i]
        if ch == '\\':
            i += 2
            continue
        if ch == '`':
            parts.append(('str', chunk_start, i))
            return i + 1, parts
        if ch == '$' and i + 1 < n and src[i + 1] == '{':
            parts.append(('str', chunk_start, i))
            i += 2
            expr_start = i
            depth = 1
            while i < n and depth:
                c = src[i]
                if c in '"\'':
                    i += 1
                    while i < n and src[i] != c:
                        i += 2 if src[i] == '\\' else 1
                elif c == '`':
                    i = scan_template(src, i)[0] - 1
                elif c == '{':
                    depth += 1
                elif c == '}':
                    depth -= 1
                i += 1
            if depth:
                break
            parts.append(('expr', expr_start, i - 1))
            chunk_start = i
            continue
        i += 1
    raise _error(src, pos, "Unterminated template")


def _prev_allows_regex(prev: Optional[Token]) -> bool:
    """Whether a '/' after `prev` would start a regular expression literal."""
    if prev is None:
        return True
    if prev.type == 'PUNC' and prev.value in ('(', '{', '[', ',', ';', ':', '?'):
        return True
    if prev.type == 'OP' and prev.value not in ('++', '--'):
        return True
    if prev.type == 'IDENT' and prev.value in (
            'return', 'case', 'throw', 'else', 'new', 'typeof', 'instanceof', 'delete', 'void', 'in', 'of'):
        return True
    return False


def tokenize(src: str, start: int = 0, end: Optional[int] = None) -> List[Token]:
    """Tokenize src[start:end]; offsets in the returned tokens are absolute."""
    out: List[Token] = []
    pos = start
    limit = len(src) if end is None else end
    nl_before = False
    prev: Optional[Token] = None
    while pos < limit:
        if src[pos] == '`':
            stop = scan_template(src, pos)[0]
            prev = Token('TEMPLATE', src[pos:stop], pos, stop, nl_before)
            out.append(prev)
            nl_before = False
            pos = stop
            continue
        m = TOKEN_RE.match(src, pos, limit)
        if not m:
            raise _error(src, pos, f"Unexpected character {src[pos]!r}")
        typ = m.lastgroup
        val = m.group(0)
        if typ == 'SKIP' or typ == 'COMMENT':
            if '\n' in val:
                nl_before = True
            pos = m.end()
            continue
        if typ == 'OP' and val[0] == '/' and _prev_allows_regex(prev):
            raise _error(src, pos, "Regular expression literals are not supported")
        prev = Token(typ, val, pos, m.end(), nl_before)
        out.append(prev)
        nl_before = False
        pos = m.end()
    out.append(Token('EOF', '', limit, limit, True))
    return out


class Parser:
    def __init__(self, tokens: List[Token], src: str, line_starts: Optional[List[int]] = None):
        self.tokens = tokens
        self.src = src
        self.i = 0
        self.prev_end = tokens[0].start if tokens else 0
        self.function_depth = 0
        if line_starts is None:
            line_starts = [0] + [m.end() for m in re.finditer('\n', src)]
        self.line_starts = line_starts

    # --- token helpers ---

    def peek(self, k: int = 0) -> Token:
        idx = min(self.i + k, len(self.tokens) - 1)
        return self.tokens[idx]

    def eat(self, typ: Optional[str] = None, val: Optional[str] = None) -> Token:
        tok = self.peek()
        if (typ and tok.type != typ) or (val is not None and tok.value != val):
            self._unexpected(tok, expected=val or typ)
        self.i += 1
        self.prev_end = tok.end
        return tok

    def match(self, typ: str, val: Optional[str] = None) -> bool:
        tok = self.peek()
        if tok.type != typ:
            return False
        return val is None or tok.value == val

    def _unexpected(self, tok: Optional[Token] = None, expected: Optional[str] = None):
        tok = tok or self.peek()
        if tok.type == 'EOF':
            raise _error(self.src, tok.start, "Unexpected end of input")
        message = f"Unexpected token {tok.value!r}"
        if expected:
            message += f", expected {expected!r}"
        raise _error(self.src, tok.start, message)

    def consume_semicolon(self):
        tok = self.peek()
        if tok.type == 'PUNC' and tok.value == ';':
            self.eat()
            return
        if tok.type == 'EOF' or (tok.type == 'PUNC' and tok.value == '}') or tok.nl_before:
            return
        self._unexpected(tok)

    # --- node helpers ---

    def _loc(self, start: int, end: int) -> SourceLocation:
        return SourceLocation(self._position(start), self._position(end))

    def _position(self, offset: int) -> Position:
        line = bisect.bisect_right(self.line_starts, offset) - 1
        return Position(line + 1, offset - self.line_starts[line])

    def _node(self, type_: str, start: int, **fields) -> Node:
        return Node(type_, start, self.prev_end, self._loc(start, self.prev_end), **fields)

    def _like(self, type_: str, other: Node, **fields) -> Node:
        return Node(type_, other.start, other.end, other.loc, **fields)

    # --- program & statements ---

    def parse_program(self) -> Node:
        body = []
        while not self.match('EOF'):
            body.append(self.parse_statement())
        return Node('Program', 0, len(self.src), self._loc(0, len(self.src)), body=body, sourceType='script')

    _STATEMENT_KEYWORDS = {
        'var': 'parse_variable_statement',
        'let': 'parse_variable_statement',
        'const': 'parse_variable_statement',
        'function': 'parse_function_declaration',
        'class': 'parse_class_declaration',
        'if': 'parse_if',
        'while': 'parse_while',
        'do': 'parse_do_while',
        'for': 'parse_for',
        'switch': 'parse_switch',
        'try': 'parse_try',
        'throw': 'parse_throw',
        'return': 'parse_return',
        'break': 'parse_break_continue',
        'continue': 'parse_break_continue',
        'debugger': 'parse_debugger',
    }

    def parse_statement(self) -> Node:
        tok = self.peek()
        if tok.type == 'PUNC' and tok.value == ';':
            self.eat()
            return self._node('EmptyStatement', tok.start)
        if tok.type == 'PUNC' and tok.value == '{':
            return self.parse_block()
        if tok.type == 'IDENT':
            handler = self._STATEMENT_KEYWORDS.get(tok.value)
            if tok.value == 'let' and not self._let_starts_declaration():
                handler = None
            if handler:
                return getattr(self, handler)()
            nxt = self.peek(1)
            if nxt.type == 'PUNC' and nxt.value == ':' and tok.value not in RESERVED:
                return self.parse_labeled()
        return self.parse_expression_statement()

    def _let_starts_declaration(self) -> bool:
        nxt = self.peek(1)
        return nxt.type == 'IDENT' or (nxt.type == 'PUNC' and nxt.value in ('[', '{'))

    def _at_declaration(self) -> bool:
        tok = self.peek()
        if tok.type != 'IDENT':
            return False
        if tok.value in ('var', 'const'):
            return True
        return tok.value == 'let' and self._let_starts_declaration()

    def parse_block(self) -> Node:
        start = self.eat('PUNC', '{').start
        body = []
        while not self.match('PUNC', '}'):
            if self.match('EOF'):
                self._unexpected()
            body.append(self.parse_statement())
        self.eat('PUNC', '}')
        return self._node('BlockStatement', start, body=body)

    def parse_variable_statement(self) -> Node:
        start = self.peek().start
        kind = self.eat('IDENT').value
        declarations = self.parse_declarators(kind)
        self.consume_semicolon()
        return self._node('VariableDeclaration', start, kind=kind, declarations=declarations)

    def parse_declarators(self, kind: str, for_head: bool = False) -> List[Node]:
        """Parse `a = 1, [b, c] = arr, d` after the declaration keyword."""
        declarations = []
        while True:
            start = self.peek().start
            target = self.parse_binding_target()
            init = None
            if self.match('OP', '='):
                self.eat()
                init = self.parse_assignment(no_in=for_head)
            elif for_head and not declarations and self._at_for_each():
                declarations.append(self._node('VariableDeclarator', start, id=target, init=None))
                return declarations
            elif kind == 'const':
                raise _error(self.src, self.peek().start, "Missing initializer in const declaration")
            elif target.type != 'Identifier':
                raise _error(self.src, self.peek().start, "Missing initializer in destructuring declaration")
            declarations.append(self._node('VariableDeclarator', start, id=target, init=init))
            if not self.match('PUNC', ','):
                return declarations
            self.eat()

    def parse_function_declaration(self) -> Node:
        return self.parse_function(expression=False)

    def parse_class_declaration(self) -> Node:
        return self.parse_class(expression=False)

    def parse_if(self) -> Node:
        start = self.eat('IDENT', 'if').start
        self.eat('PUNC', '(')
        test = self.parse_expression()
        self.eat('PUNC', ')')
        consequent = self.parse_statement()
        alternate = None
        if self.match('IDENT', 'else'):
            self.eat()
            alternate = self.parse_statement()
        return self._node('IfStatement', start, test=test, consequent=consequent, alternate=alternate)

    def parse_while(self) -> Node:
        start = self.eat('IDENT', 'while').start
        self.eat('PUNC', '(')
        test = self.parse_expression()
        self.eat('PUNC', ')')
        body = self.parse_statement()
        return self._node('WhileStatement', start, test=test, body=body)

    def parse_do_while(self) -> Node:
        start = self.eat('IDENT', 'do').start
        body = self.parse_statement()
        self.eat('IDENT', 'while')
        self.eat('PUNC', '(')
        test = self.parse_expression()
        self.eat('PUNC', ')')
        if self.match('PUNC', ';'):
            self.eat()
        return self._node('DoWhileStatement', start, body=body, test=test)

    def _at_for_each(self) -> bool:
        return self.match('IDENT', 'in') or self.match('IDENT', 'of')

    def parse_for(self) -> Node:
        start = self.eat('IDENT', 'for').start
        self.eat('PUNC', '(')
        init = None
        if self.match('PUNC', ';'):
            pass
        elif self._at_declaration():
            decl_start = self.peek().start
            kind = self.eat('IDENT').value
            declarations = self.parse_declarators(kind, for_head=True)
            init = self._node('VariableDeclaration', decl_start, kind=kind, declarations=declarations)
            if len(declarations) == 1 and declarations[0].init is None and self._at_for_each():
                return self._parse_for_each(start, init)
        else:
            expr = self.parse_expression(no_in=True)
            if self._at_for_each():
                return self._parse_for_each(start, self.to_pattern(expr))
            init = expr
        self.eat('PUNC', ';')
        test = None if self.match('PUNC', ';') else self.parse_expression()
        self.eat('PUNC', ';')
        update = None if self.match('PUNC', ')') else self.parse_expression()
        self.eat('PUNC', ')')
        body = self.parse_statement()
        return self._node('ForStatement', start, init=init, test=test, update=update, body=body)

    def _parse_for_each(self, start: int, left: Node) -> Node:
        keyword = self.eat('IDENT').value
        right = self.parse_expression() if keyword == 'in' else self.parse_assignment()
        self.eat('PUNC', ')')
        body = self.parse_statement()
        type_ = 'ForInStatement' if keyword == 'in' else 'ForOfStatement'
        return self._node(type_, start, left=left, right=right, body=body)

    def parse_switch(self) -> Node:
        start = self.eat('IDENT', 'switch').start
        self.eat('PUNC', '(')
        discriminant = self.parse_expression()
        self.eat('PUNC', ')')
        self.eat('PUNC', '{')
        cases = []
        seen_default = False
        while not self.match('PUNC', '}'):
            case_start = self.peek().start
            if self.match('IDENT', 'case'):
                self.eat()
                test = self.parse_expression()
            else:
                tok = self.eat('IDENT', 'default')
                if seen_default:
                    raise _error(self.src, tok.start, "Multiple default clauses")
                seen_default = True
                test = None
            self.eat('PUNC', ':')
            consequent = []
            while not (self.match('IDENT', 'case') or self.match('IDENT', 'default')
                       or self.match('PUNC', '}') or self.match('EOF')):
                consequent.append(self.parse_statement())
            cases.append(self._node('SwitchCase', case_start, test=test, consequent=consequent))
        self.eat('PUNC', '}')
        return self._node('SwitchStatement', start, discriminant=discriminant, cases=cases)

    def parse_try(self) -> Node:
        start = self.eat('IDENT', 'try').start
        block = self.parse_block()
        handler = finalizer = None
        if self.match('IDENT', 'catch'):
            catch_start = self.eat().start
            param = None
            if self.match('PUNC', '('):
                self.eat()
                param = self.parse_binding_target()
                self.eat('PUNC', ')')
            body = self.parse_block()
            handler = self._node('CatchClause', catch_start, param=param, body=body)
        if self.match('IDENT', 'finally'):
            self.eat()
            finalizer = self.parse_block()
        if handler is None and finalizer is None:
            raise _error(self.src, self.peek().start, "Missing catch or finally after try")
        return self._node('TryStatement', start, block=block, handler=handler, finalizer=finalizer)

    def parse_throw(self) -> Node:
        start = self.eat('IDENT', 'throw').start
        if self.peek().nl_before:
            raise _error(self.src, self.peek().start, "Illegal newline after throw")
        argument = self.parse_expression()
        self.consume_semicolon()
        return self._node('ThrowStatement', start, argument=argument)

    def parse_return(self) -> Node:
        tok = self.eat('IDENT', 'return')
        if not self.function_depth:
            raise _error(self.src, tok.start, "'return' outside of function")
        argument = None
        nxt = self.peek()
        if not (nxt.nl_before or nxt.type == 'EOF' or (nxt.type == 'PUNC' and nxt.value in (';', '}'))):
            argument = self.parse_expression()
        self.consume_semicolon()
        return self._node('ReturnStatement', tok.start, argument=argument)

    def parse_break_continue(self) -> Node:
        tok = self.eat('IDENT')
        label = None
        nxt = self.peek()
        if nxt.type == 'IDENT' and not nxt.nl_before and nxt.value not in RESERVED:
            label = self.parse_identifier()
        self.consume_semicolon()
        type_ = 'BreakStatement' if tok.value == 'break' else 'ContinueStatement'
        return self._node(type_, tok.start, label=label)

    def parse_debugger(self) -> Node:
        start = self.eat('IDENT', 'debugger').start
        self.consume_semicolon()
        return self._node('DebuggerStatement', start)

    def parse_labeled(self) -> Node:
        start = self.peek().start
        label = self.parse_identifier()
        self.eat('PUNC', ':')
        body = self.parse_statement()
        return self._node('LabeledStatement', start, label=label, body=body)

    def parse_expression_statement(self) -> Node:
        start = self.peek().start
        expression = self.parse_expression()
        self.consume_semicolon()
        return self._node('ExpressionStatement', start, expression=expression)

    # --- functions & classes ---

    def parse_function(self, expression: bool) -> Node:
        start = self.eat('IDENT', 'function').start
        fn_id = None
        if self.match('IDENT'):
            fn_id = self.parse_identifier()
        elif not expression:
            self._unexpected(expected='function name')
        params = self.parse_params()
        body = self.parse_function_body()
        type_ = 'FunctionExpression' if expression else 'FunctionDeclaration'
        return self._node(type_, start, id=fn_id, params=params, body=body, expression=False, method=False)

    def parse_params(self) -> List[Node]:
        self.eat('PUNC', '(')
        params = []
        while not self.match('PUNC', ')'):
            if self.match('OP', '...'):
                rest_start = self.eat().start
                argument = self.parse_binding_target()
                params.append(self._node('RestElement', rest_start, argument=argument))
                if not self.match('PUNC', ')'):
                    raise _error(self.src, self.peek().start, "Rest parameter must be last formal parameter")
                break
            params.append(self.parse_binding_element())
            if not self.match('PUNC', ')'):
                self.eat('PUNC', ',')
        self.eat('PUNC', ')')
        return params

    def parse_function_body(self) -> Node:
        self.function_depth += 1
        try:
            return self.parse_block()
        finally:
            self.function_depth -= 1

    def parse_class(self, expression: bool) -> Node:
        start = self.eat('IDENT', 'class').start
        class_id = None
        if self.match('IDENT') and not self.match('IDENT', 'extends'):
            class_id = self.parse_identifier()
        elif not expression:
            self._unexpected(expected='class name')
        super_class = None
        if self.match('IDENT', 'extends'):
            self.eat()
            super_class = self.parse_call_member()
        body_start = self.eat('PUNC', '{').start
        members = []
        while not self.match('PUNC', '}'):
            if self.match('PUNC', ';'):
                self.eat()
                continue
            if self.match('EOF'):
                self._unexpected()
            members.append(self.parse_class_member())
        self.eat('PUNC', '}')
        body = self._node('ClassBody', body_start, body=members)
        type_ = 'ClassExpression' if expression else 'ClassDeclaration'
        return self._node(type_, start, id=class_id, superClass=super_class, body=body)

    def parse_class_member(self) -> Node:
        start = self.peek().start
        is_static = False
        nxt = self.peek(1)
        if self.match('IDENT', 'static') and not (
                (nxt.type == 'PUNC' and nxt.value in ('(', ';', '}')) or (nxt.type == 'OP' and nxt.value == '=')):
            self.eat()
            is_static = True
        key, computed = self.parse_property_key()
        if self.match('PUNC', '('):
            value = self._parse_method_function()
            is_ctor = (not is_static and not computed and
                       getattr(key, 'name', getattr(key, 'value', None)) == 'constructor')
            return self._node('MethodDefinition', start, key=key, computed=computed, value=value,
                              kind='constructor' if is_ctor else 'method', static=is_static)
        value = None
        if self.match('OP', '='):
            self.eat()
            value = self.parse_assignment()
        self.consume_semicolon()
        return self._node('PropertyDefinition', start, key=key, computed=computed, value=value, static=is_static)

    def _parse_method_function(self) -> Node:
        start = self.peek().start
        params = self.parse_params()
        body = self.parse_function_body()
        return self._node('FunctionExpression', start, id=None, params=params, body=body,
                          expression=False, method=True)

    def parse_property_key(self) -> Tuple[Node, bool]:
        tok = self.peek()
        if tok.type == 'PUNC' and tok.value == '[':
            self.eat()
            key = self.parse_assignment()
            self.eat('PUNC', ']')
            return key, True
        if tok.type == 'IDENT':
            self.eat()
            return self._node('Identifier', tok.start, name=tok.value), False
        if tok.type == 'STRING':
            self.eat()
            value = decode_escapes(tok.value[1:-1], self.src, tok.start)
            return self._node('Literal', tok.start, value=value, raw=tok.value), False
        if tok.type == 'NUMBER':
            self.eat()
            return self._node('Literal', tok.start, value=_number_value(tok.value), raw=tok.value), False
        self._unexpected(tok)

    # --- binding patterns ---

    def parse_identifier(self) -> Node:
        tok = self.peek()
        if tok.type != 'IDENT' or tok.value in RESERVED:
            self._unexpected(tok, expected='identifier')
        self.eat()
        return self._node('Identifier', tok.start, name=tok.value)

    def parse_binding_target(self) -> Node:
        if self.match('PUNC', '['):
            return self.parse_array_pattern()
        if self.match('PUNC', '{'):
            return self.parse_object_pattern()
        return self.parse_identifier()

    def parse_binding_element(self) -> Node:
        start = self.peek().start
        target = self.parse_binding_target()
        if self.match('OP', '='):
            self.eat()
            default = self.parse_assignment()
            return self._node('AssignmentPattern', start, left=target, right=default)
        return target

    def parse_array_pattern(self) -> Node:
        start = self.eat('PUNC', '[').start
        elements: List[Optional[Node]] = []
        while not self.match('PUNC', ']'):
            if self.match('PUNC', ','):
                self.eat()
                elements.append(None)
                continue
            if self.match('OP', '...'):
                rest_start = self.eat().start
                argument = self.parse_binding_target()
                elements.append(self._node('RestElement', rest_start, argument=argument))
                if not self.match('PUNC', ']'):
                    raise _error(self.src, self.peek().start, "Rest element must be last element")
                break
            elements.append(self.parse_binding_element())
            if not self.match('PUNC', ']'):
                self.eat('PUNC', ',')
        self.eat('PUNC', ']')
        return self._node('ArrayPattern', start, elements=elements)

    def parse_object_pattern(self) -> Node:
        start = self.eat('PUNC', '{').start
        properties = []
        while not self.match('PUNC', '}'):
            prop_start = self.peek().start
            if self.match('OP', '...'):
                self.eat()
                argument = self.parse_identifier()
                properties.append(self._node('RestElement', prop_start, argument=argument))
                if not self.match('PUNC', '}'):
                    raise _error(self.src, self.peek().start, "Rest element must be last element")
                break
            key, computed = self.parse_property_key()
            if self.match('PUNC', ':'):
                self.eat()
                value = self.parse_binding_element()
                shorthand = False
            else:
                if computed or key.type != 'Identifier' or key.name in RESERVED:
                    self._unexpected()
                value = self._like('Identifier', key, name=key.name)
                if self.match('OP', '='):
                    self.eat()
                    default = self.parse_assignment()
                    value = self._node('AssignmentPattern', prop_start, left=value, right=default)
                shorthand = True
            properties.append(self._node('Property', prop_start, key=key, value=value, computed=computed,
                                         shorthand=shorthand, method=False, kind='init'))
            if not self.match('PUNC', '}'):
                self.eat('PUNC', ',')
        self.eat('PUNC', '}')
        return self._node('ObjectPattern', start, properties=properties)

    def to_pattern(self, node: Node) -> Node:
        """Reinterpret an already-parsed expression as an assignment target."""
        t = node.type
        if t in ('Identifier', 'MemberExpression', 'ObjectPattern', 'ArrayPattern', 'AssignmentPattern'):
            return node
        if t == 'ArrayExpression':
            elements = []
            for idx, el in enumerate(node.elements):
                if el is None:
                    elements.append(None)
                elif el.type == 'SpreadElement':
                    if idx != len(node.elements) - 1:
                        raise _error(self.src, el.start, "Rest element must be last element")
                    elements.append(self._like('RestElement', el, argument=self.to_pattern(el.argument)))
                else:
                    elements.append(self.to_pattern(el))
            return self._like('ArrayPattern', node, elements=elements)
        if t == 'ObjectExpression':
            properties = []
            for idx, prop in enumerate(node.properties):
                if prop.type == 'SpreadElement':
                    if idx != len(node.properties) - 1:
                        raise _error(self.src, prop.start, "Rest element must be last element")
                    properties.append(self._like('RestElement', prop, argument=self.to_pattern(prop.argument)))
                    continue
                if prop.method:
                    raise _error(self.src, prop.start, "Invalid destructuring assignment target")
                properties.append(self._like('Property', prop, key=prop.key, value=self.to_pattern(prop.value),
                                             computed=prop.computed, shorthand=prop.shorthand,
                                             method=False, kind='init'))
            return self._like('ObjectPattern', node, properties=properties)
        if t == 'AssignmentExpression' and node.operator == '=':
            return self._like('AssignmentPattern', node, left=node.left, right=node.right)
        raise _error(self.src, node.start, "Invalid destructuring assignment target")

    # --- expressions ---

    def parse_expression(self, no_in: bool = False) -> Node:
        start = self.peek().start
        expr = self.parse_assignment(no_in)
        if not self.match('PUNC', ','):
            return expr
        expressions = [expr]
        while self.match('PUNC', ','):
            self.eat()
            expressions.append(self.parse_assignment(no_in))
        return self._node('SequenceExpression', start, expressions=expressions)

    def _at_arrow(self) -> bool:
        tok = self.peek()
        if tok.type == 'IDENT' and tok.value not in RESERVED:
            nxt = self.peek(1)
            return nxt.type == 'OP' and nxt.value == '=>' and not nxt.nl_before
        if not (tok.type == 'PUNC' and tok.value == '('):
            return False
        depth = 0
        j = self.i
        while j < len(self.tokens):
            t = self.tokens[j]
            if t.type == 'EOF':
                return False
            if t.type == 'PUNC' and t.value in '([{':
                depth += 1
            elif t.type == 'PUNC' and t.value in ')]}':
                depth -= 1
                if depth == 0:
                    after = self.tokens[j + 1] if j + 1 < len(self.tokens) else None
                    return after is not None and after.type == 'OP' and after.value == '=>'
            j += 1
        return False

    def parse_arrow(self) -> Node:
        start = self.peek().start
        if self.match('IDENT'):
            params = [self.parse_identifier()]
        else:
            params = self.parse_params()
        self.eat('OP', '=>')
        if self.match('PUNC', '{'):
            body = self.parse_function_body()
            expression = False
        else:
            body = self.parse_assignment()
            expression = True
        return self._node('ArrowFunctionExpression', start, id=None, params=params, body=body,
                          expression=expression, method=False)

    def parse_assignment(self, no_in: bool = False) -> Node:
        if self._at_arrow():
            return self.parse_arrow()
        start = self.peek().start
        left = self.parse_conditional(no_in)
        tok = self.peek()
        if tok.type == 'OP' and tok.value in ASSIGN_OPS:
            if tok.value == '=':
                target = self.to_pattern(left)
            elif left.type in ('Identifier', 'MemberExpression'):
                target = left
            else:
                raise _error(self.src, left.start, "Invalid left-hand side in assignment")
            self.eat()
            right = self.parse_assignment(no_in)
            return self._node('AssignmentExpression', start, operator=tok.value, left=target, right=right)
        return left

    def parse_conditional(self, no_in: bool = False) -> Node:
        start = self.peek().start
        test = self.parse_binary(0, no_in)
        if not self.match('PUNC', '?'):
            return test
        self.eat()
        consequent = self.parse_assignment()
        self.eat('PUNC', ':')
        alternate = self.parse_assignment(no_in)
        return self._node('ConditionalExpression', start, test=test, consequent=consequent, alternate=alternate)

    def parse_binary(self, min_prec: int, no_in: bool = False) -> Node:
        start = self.peek().start
        left = self.parse_unary()
        while True:
            tok = self.peek()
            op = tok.value
            if tok.type not in ('OP', 'IDENT') or op not in BINARY_PRECEDENCE:
                break
            if op == 'in' and no_in:
                break
            prec = BINARY_PRECEDENCE[op]
            if prec < min_prec:
                break
            self.eat()
            # `**` is right-associative
            right = self.parse_binary(prec if op == '**' else prec + 1, no_in)
            type_ = 'LogicalExpression' if op in LOGICAL_OPS else 'BinaryExpression'
            left = self._node(type_, start, operator=op, left=left, right=right)
        return left

    def _check_update_target(self, node: Node, tok: Token):
        if node.type not in ('Identifier', 'MemberExpression'):
            raise _error(self.src, tok.start, "Invalid left-hand side expression in update operation")

    def parse_unary(self) -> Node:
        tok = self.peek()
        if (tok.type == 'OP' and tok.value in ('!', '-', '+', '~')) or \
                (tok.type == 'IDENT' and tok.value in ('typeof', 'void', 'delete')):
            self.eat()
            argument = self.parse_unary()
            return self._node('UnaryExpression', tok.start, operator=tok.value, prefix=True, argument=argument)
        if tok.type == 'OP' and tok.value in ('++', '--'):
            self.eat()
            argument = self.parse_unary()
            self._check_update_target(argument, tok)
            return self._node('UpdateExpression', tok.start, operator=tok.value, prefix=True, argument=argument)
        return self.parse_postfix()

    def parse_postfix(self) -> Node:
        start = self.peek().start
        expr = self.parse_call_member()
        tok = self.peek()
        if tok.type == 'OP' and tok.value in ('++', '--') and not tok.nl_before:
            self._check_update_target(expr, tok)
            self.eat()
            return self._node('UpdateExpression', start, operator=tok.value, prefix=False, argument=expr)
        return expr

    def parse_arguments(self) -> List[Node]:
        self.eat('PUNC', '(')
        args = []
        while not self.match('PUNC', ')'):
            if self.match('OP', '...'):
                spread_start = self.eat().start
                argument = self.parse_assignment()
                args.append(self._node('SpreadElement', spread_start, argument=argument))
            else:
                args.append(self.parse_assignment())
            if not self.match('PUNC', ')'):
                self.eat('PUNC', ',')
        self.eat('PUNC', ')')
        return args

    def _parse_member_name(self) -> Node:
        tok = self.peek()
        if tok.type != 'IDENT':
            self._unexpected(tok, expected='property name')
        self.eat()
        return self._node('Identifier', tok.start, name=tok.value)

    def parse_call_member(self) -> Node:
        start = self.peek().start
        node = self.parse_new() if self.match('IDENT', 'new') else self.parse_primary()
        chained = False
        while True:
            tok = self.peek()
            if tok.type == 'PUNC' and tok.value == '.':
                self.eat()
                prop = self._parse_member_name()
                node = self._node('MemberExpression', start, object=node, property=prop,
                                  computed=False, optional=False)
            elif tok.type == 'PUNC' and tok.value == '[':
                self.eat()
                prop = self.parse_expression()
                self.eat('PUNC', ']')
                node = self._node('MemberExpression', start, object=node, property=prop,
                                  computed=True, optional=False)
            elif tok.type == 'PUNC' and tok.value == '(':
                args = self.parse_arguments()
                node = self._node('CallExpression', start, callee=node, arguments=args, optional=False)
            elif tok.type == 'OP' and tok.value == '?.':
                self.eat()
                chained = True
                if self.match('PUNC', '('):
                    args = self.parse_arguments()
                    node = self._node('CallExpression', start, callee=node, arguments=args, optional=True)
                elif self.match('PUNC', '['):
                    self.eat()
                    prop = self.parse_expression()
                    self.eat('PUNC', ']')
                    node = self._node('MemberExpression', start, object=node, property=prop,
                                      computed=True, optional=True)
                else:
                    prop = self._parse_member_name()
                    node = self._node('MemberExpression', start, object=node, property=prop,
                                      computed=False, optional=True)
            elif tok.type == 'TEMPLATE':
                raise _error(self.src, tok.start, "Tagged templates are not supported")
            else:
                break
        if chained:
            node = self._node('ChainExpression', start, expression=node)
        return node

    def parse_new(self) -> Node:
        start = self.eat('IDENT', 'new').start
        callee = self.parse_new() if self.match('IDENT', 'new') else self.parse_primary()
        while True:
            if self.match('PUNC', '.'):
                self.eat()
                prop = self._parse_member_name()
                callee = self._node('MemberExpression', start, object=callee, property=prop,
                                    computed=False, optional=False)
            elif self.match('PUNC', '['):
                self.eat()
                prop = self.parse_expression()
                self.eat('PUNC', ']')
                callee = self._node('MemberExpression', start, object=callee, property=prop,
                                    computed=True, optional=False)
            else:
                break
        args = self.parse_arguments() if self.match('PUNC', '(') else []
        return self._node('NewExpression', start, callee=callee, arguments=args)

    def parse_primary(self) -> Node:
        tok = self.peek()
        if tok.type == 'NUMBER':
            self.eat()
            return self._node('Literal', tok.start, value=_number_value(tok.value), raw=tok.value)
        if tok.type == 'STRING':
            self.eat()
            value = decode_escapes(tok.value[1:-1], self.src, tok.start)
            return self._node('Literal', tok.start, value=value, raw=tok.value)
        if tok.type == 'TEMPLATE':
            return self.parse_template()
        if tok.type == 'IDENT':
            word = tok.value
            if word == 'function':
                return self.parse_function(expression=True)
            if word == 'class':
                return self.parse_class(expression=True)
            if word in ('true', 'false', 'null'):
                self.eat()
                value = {'true': True, 'false': False, 'null': None}[word]
                return self._node('Literal', tok.start, value=value, raw=word)
            if word == 'this':
                self.eat()
                return self._node('ThisExpression', tok.start)
            if word == 'super':
                self.eat()
                return self._node('Super', tok.start)
            return self.parse_identifier()
        if tok.type == 'PUNC' and tok.value == '(':
            self.eat()
            expr = self.parse_expression()
            self.eat('PUNC', ')')
            return expr
        if tok.type == 'PUNC' and tok.value == '[':
            return self.parse_array_literal()
        if tok.type == 'PUNC' and tok.value == '{':
            return self.parse_object_literal()
        self._unexpected(tok)

    def parse_array_literal(self) -> Node:
        start = self.eat('PUNC', '[').start
        elements: List[Optional[Node]] = []
        while not self.match('PUNC', ']'):
            if self.match('PUNC', ','):
                self.eat()
                elements.append(None)
                continue
            if self.match('OP', '...'):
                spread_start = self.eat().start
                argument = self.parse_assignment()
                elements.append(self._node('SpreadElement', spread_start, argument=argument))
            else:
                elements.append(self.parse_assignment())
            if not self.match('PUNC', ']'):
                self.eat('PUNC', ',')
        self.eat('PUNC', ']')
        return self._node('ArrayExpression', start, elements=elements)

    def parse_object_literal(self) -> Node:
        start = self.eat('PUNC', '{').start
        properties = []
        while not self.match('PUNC', '}'):
            prop_start = self.peek().start
            if self.match('OP', '...'):
                self.eat()
                argument = self.parse_assignment()
                properties.append(self._node('SpreadElement', prop_start, argument=argument))
            else:
                key, computed = self.parse_property_key()
                method = shorthand = False
                if self.match('PUNC', ':'):
                    self.eat()
                    value = self.parse_assignment()
                elif self.match('PUNC', '('):
                    value = self._parse_method_function()
                    method = True
                else:
                    if computed or key.type != 'Identifier' or key.name in RESERVED:
                        self._unexpected()
                    value = self._like('Identifier', key, name=key.name)
                    if self.match('OP', '='):
                        # only meaningful once the literal is reinterpreted as a pattern
                        self.eat()
                        default = self.parse_assignment()
                        value = self._node('AssignmentPattern', prop_start, left=value, right=default)
                    shorthand = True
                properties.append(self._node('Property', prop_start, key=key, value=value, computed=computed,
                                             shorthand=shorthand, method=method, kind='init'))
            if not self.match('PUNC', '}'):
                self.eat('PUNC', ',')
        self.eat('PUNC', '}')
        return self._node('ObjectExpression', start, properties=properties)

    def parse_template(self) -> Node:
        tok = self.eat('TEMPLATE')
        _, parts = scan_template(self.src, tok.start)
        quasis, expressions = [], []
        for kind, s, e in parts:
            if kind == 'str':
                raw = self.src[s:e]
                quasis.append(Node('TemplateElement', s, e, self._loc(s, e),
                                   value={'raw': raw, 'cooked': decode_escapes(raw, self.src, s)}, tail=False))
                continue
            sub = Parser(tokenize(self.src, s, e), self.src, self.line_starts)
            sub.function_depth = self.function_depth
            expr = sub.parse_expression()
            if not sub.match('EOF'):
                sub._unexpected()
            expressions.append(expr)
        quasis[-1].tail = True
        return self._node('TemplateLiteral', tok.start, quasis=quasis, expressions=expressions)


def parse(src: str) -> Node:
    """Parse a complete program.

    Raises JSSyntaxError carrying the 0-based line and column of the offending token.
    """
    try:
        tokens = tokenize(src)
        return Parser(tokens, src).parse_program()
    except JSSyntaxError as err:
        if err.offset is not None:
            log.debug("parse failed: %s\n%s", err.message, format_error_context(src, err.offset))
        raise
