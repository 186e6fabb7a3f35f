"""Reading of ADMB model templates

Only the declarative sections are understood. A template is split into its
sections and the declarations of the PARAMETER_SECTION are parsed with a small
grammar, which is enough to recover the parameters of a generated template.
"""

import re
from dataclasses import dataclass
from functools import lru_cache

from lark import Lark, UnexpectedInput

from pyadmb.errors import ReportParseError

_section_header = re.compile(r'^([A-Z_]+_SECTION)\b')

_grammar = r"""
    start: _line*
    _line: declaration? _NL
    declaration: NAME items ";"?
    items: item ("," item)*
    item: NAME args?
    args: "(" ARG ("," ARG)* ")"
    NAME: /[A-Za-z_][A-Za-z0-9_]*/
    ARG: /[^,()\s][^,()\n]*/
    COMMENT: "//" /[^\n]*/
    _NL: /\r?\n/
    %import common.WS_INLINE
    %ignore WS_INLINE
    %ignore COMMENT
"""


@dataclass(frozen=True)
class Declaration:
    type: str
    name: str
    args: tuple[str, ...]

    @property
    def is_estimated(self) -> bool:
        return self.type.startswith('init_')


@lru_cache(maxsize=1)
def _parser() -> Lark:
    return Lark(
        _grammar,
        start='start',
        parser='lalr',
        lexer='contextual',
        propagate_positions=False,
        maybe_placeholders=False,
    )


def split_sections(code: str) -> dict[str, str]:
    """Split template code into its sections

    Text before the first section header is ignored.
    """
    sections = {}
    current = None
    lines: list[str] = []
    for line in code.splitlines():
        m = _section_header.match(line)
        if m:
            if current is not None:
                sections[current] = '\n'.join(lines) + '\n'
            current = m.group(1)
            lines = []
        elif current is not None:
            lines.append(line)
    if current is not None:
        sections[current] = '\n'.join(lines) + '\n'
    return sections


def parse_declarations(code: str) -> list[Declaration]:
    """Parse the declarations of a DATA_SECTION or PARAMETER_SECTION"""
    # Embedded C++ statements (!!) and LOCAL_CALCS blocks are not declarations
    kept = []
    in_local_calcs = False
    for line in code.splitlines():
        stripped = line.strip()
        if stripped.startswith('LOCAL_CALCS'):
            in_local_calcs = True
        elif stripped.startswith('END_CALCS'):
            in_local_calcs = False
        elif not in_local_calcs and not stripped.startswith('!!'):
            kept.append(line)
            continue
        kept.append('')
    tree = _parser().parse('\n'.join(kept) + '\n')

    declarations = []
    for decl in tree.find_data('declaration'):
        type_token, items = decl.children
        for item in items.children:
            name = str(item.children[0])
            args = ()
            if len(item.children) > 1:
                args = tuple(str(arg).strip() for arg in item.children[1].children)
            declarations.append(Declaration(str(type_token), name, args))
    return declarations


def parse_parameter_names(code: str) -> list[str]:
    """Names of the estimated parameters of a template, in declaration order

    Parameters
    ----------
    code : str
        Code of a complete ADMB template

    Returns
    -------
    list
        Names of all ``init_`` declarations in the PARAMETER_SECTION
    """
    sections = split_sections(code)
    try:
        section = sections['PARAMETER_SECTION']
    except KeyError:
        raise ReportParseError(
            'Template has no PARAMETER_SECTION', section='PARAMETER_SECTION'
        ) from None
    try:
        declarations = parse_declarations(section)
    except UnexpectedInput as e:
        raise ReportParseError(
            f'Could not parse PARAMETER_SECTION at line {e.line} column {e.column}',
            section='PARAMETER_SECTION',
        ) from e
    return [d.name for d in declarations if d.is_estimated]
