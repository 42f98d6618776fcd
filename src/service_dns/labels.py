"""Kubernetes label selector parsing and matching.

Selectors are used for the Service label selector, for the annotation filter
(the same syntax evaluated against annotations) and for Service pod selectors.
"""
import re
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from .exceptions import ConfigError

EXISTS = 'exists'
DOES_NOT_EXIST = '!'
EQUALS = '='
DOUBLE_EQUALS = '=='
NOT_EQUALS = '!='
IN = 'in'
NOT_IN = 'notin'
GREATER_THAN = '>'
LESS_THAN = '<'

_NAME = re.compile(r'^[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?$')
_DNS_SUBDOMAIN = re.compile(r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$')

_TOKEN = re.compile(r'\s*(?:(?P<op>!=|==|=|!|>|<)|(?P<punct>[(),])|(?P<ident>[^\s,()!=<>]+))')


class SelectorError(ConfigError):
    pass


def _validate_key(key: str):
    if '/' in key:
        prefix, name = key.split('/', 1)
        if not prefix or len(prefix) > 253 or not _DNS_SUBDOMAIN.match(prefix):
            raise SelectorError(f'invalid label key {key!r}: prefix must be a DNS subdomain')
    else:
        name = key
    if not name or len(name) > 63 or not _NAME.match(name):
        raise SelectorError(f'invalid label key {key!r}: name must be 63 characters or less, '
                            'alphanumeric, with -, _ or . in between')


def _validate_value(value: str):
    if value == '':
        return
    if len(value) > 63 or not _NAME.match(value):
        raise SelectorError(f'invalid label value {value!r}: must be 63 characters or less, '
                            'alphanumeric, with -, _ or . in between')


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: str
    values: Tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        if self.operator == EXISTS:
            return present
        if self.operator == DOES_NOT_EXIST:
            return not present
        if self.operator in (EQUALS, DOUBLE_EQUALS, IN):
            return present and labels[self.key] in self.values
        if self.operator in (NOT_EQUALS, NOT_IN):
            return not present or labels[self.key] not in self.values
        if self.operator in (GREATER_THAN, LESS_THAN):
            if not present:
                return False
            try:
                actual = int(labels[self.key])
            except ValueError:
                return False
            expected = int(self.values[0])
            return actual > expected if self.operator == GREATER_THAN else actual < expected
        return False

    def __str__(self) -> str:
        if self.operator == EXISTS:
            return self.key
        if self.operator == DOES_NOT_EXIST:
            return f'!{self.key}'
        if self.operator in (IN, NOT_IN):
            return f"{self.key} {self.operator} ({','.join(self.values)})"
        return f'{self.key}{self.operator}{self.values[0]}'


class Selector:
    def __init__(self, requirements: Optional[List[Requirement]] = None):
        self.requirements = list(requirements or [])

    @classmethod
    def from_set(cls, labels: Optional[Mapping[str, str]]) -> 'Selector':
        """Equality selector for a label set; an empty set selects everything."""
        return cls([Requirement(k, EQUALS, (v,)) for k, v in sorted((labels or {}).items())])

    def empty(self) -> bool:
        return not self.requirements

    def matches(self, labels: Optional[Mapping[str, str]]) -> bool:
        labels = labels or {}
        return all(r.matches(labels) for r in self.requirements)

    def __str__(self) -> str:
        return ','.join(str(r) for r in self.requirements)

    def __repr__(self) -> str:
        return f'Selector({str(self)!r})'


def _tokenize(expr: str) -> List[Tuple[str, str]]:
    tokens = []
    pos = 0
    expr = expr.rstrip()
    while pos < len(expr):
        m = _TOKEN.match(expr, pos)
        if not m or m.end() == pos:
            raise SelectorError(f'unable to parse selector {expr!r} at position {pos}')
        kind = m.lastgroup
        tokens.append((kind, m.group(kind)))
        pos = m.end()
    return tokens


class _Parser:
    def __init__(self, expr: str):
        self.expr = expr
        self.tokens = _tokenize(expr)
        self.pos = 0

    def error(self, message: str) -> SelectorError:
        return SelectorError(f'unable to parse selector {self.expr!r}: {message}')

    def peek(self) -> Tuple[Optional[str], Optional[str]]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None, None

    def next(self) -> Tuple[Optional[str], Optional[str]]:
        token = self.peek()
        self.pos += 1
        return token

    def parse(self) -> Selector:
        requirements = []
        if not self.tokens:
            return Selector()
        while True:
            requirements.append(self.requirement())
            kind, value = self.next()
            if kind is None:
                break
            if value != ',':
                raise self.error(f"found '{value}', expected ','")
        return Selector(requirements)

    def requirement(self) -> Requirement:
        kind, value = self.next()
        if kind == 'op' and value == '!':
            kind, key = self.next()
            if kind != 'ident':
                raise self.error('expected a key after "!"')
            _validate_key(key)
            return Requirement(key, DOES_NOT_EXIST)
        if kind != 'ident':
            raise self.error(f"found '{value}', expected a key")
        key = value
        _validate_key(key)

        kind, value = self.peek()
        if kind is None or value == ',':
            return Requirement(key, EXISTS)
        self.pos += 1
        if kind == 'ident' and value in (IN, NOT_IN):
            return Requirement(key, value, self.value_set())
        if kind != 'op' or value == '!':
            raise self.error(f"found '{value}', expected an operator")
        kind, operand = self.peek()
        if kind == 'ident':
            self.pos += 1
        elif kind is None or operand == ',':
            operand = ''
        else:
            raise self.error(f"found '{operand}', expected a value")
        if value in (GREATER_THAN, LESS_THAN):
            try:
                int(operand)
            except ValueError:
                raise self.error(f'{operand!r} is not an integer') from None
        else:
            _validate_value(operand)
        return Requirement(key, value, (operand,))

    def value_set(self) -> Tuple[str, ...]:
        kind, value = self.next()
        if value != '(':
            raise self.error(f"found '{value}', expected '('")
        values = []
        while True:
            kind, value = self.next()
            if kind == 'ident':
                _validate_value(value)
                values.append(value)
                kind, value = self.next()
            elif value == ')' and not values:
                break
            if value == ')':
                break
            if value != ',':
                raise self.error(f"found '{value}', expected ',' or ')'")
        return tuple(values)


def parse(expr: Optional[str]) -> Selector:
    """Parse a label selector expression; an empty expression selects everything."""
    if not expr or not expr.strip():
        return Selector()
    return _Parser(expr).parse()
