from contextlib import contextmanager


class CodeGenerator:
    """Line based builder for ADMB template code

    Section headers are written in the first column and everything inside a
    section is indented, which is what the ADMB translator expects.
    """

    def __init__(self, indent_width=2):
        self.indent_width = indent_width
        self.indent_level = 0
        self.lines = []

    def indent(self):
        self.indent_level += self.indent_width

    def dedent(self):
        self.indent_level = max(0, self.indent_level - self.indent_width)

    def add(self, line):
        if line:
            self.lines.append(f'{" " * self.indent_level}{line}')
        else:
            self.lines.append('')

    def add_lines(self, code):
        for line in code.splitlines():
            self.add(line.rstrip())

    def empty_line(self):
        self.lines.append('')

    @contextmanager
    def section(self, name):
        self.add(name)
        self.indent()
        try:
            yield self
        finally:
            self.dedent()
            self.empty_line()

    def __str__(self):
        return '\n'.join(self.lines) + '\n'
