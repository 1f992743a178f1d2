"""
Recursive walkers over the free-form JSON stored in ``product_data`` and
``json_data``. Nesting deeper than ``max_depth`` is not descended into.
"""

from typing import Any, List

Primitive = (str, int, float, bool)


class JsonVisitor:
    max_depth = 3

    def visit(self, value: Any, depth: int = 0, key: str | None = None) -> None:
        if value is None:
            return
        if isinstance(value, dict):
            if depth >= self.max_depth:
                self.visit_truncated(key, depth)
                return
            self.visit_dict(value, depth, key)
        elif isinstance(value, (list, tuple)):
            if depth >= self.max_depth:
                self.visit_truncated(key, depth)
                return
            self.visit_list(list(value), depth, key)
        else:
            self.visit_primitive(value, depth, key)

    def visit_dict(self, value: dict, depth: int, key: str | None) -> None:
        for child_key, child in value.items():
            self.visit(child, depth + 1, str(child_key))

    def visit_list(self, value: list, depth: int, key: str | None) -> None:
        for child in value:
            self.visit(child, depth + 1, key)

    def visit_primitive(self, value: Any, depth: int, key: str | None) -> None:
        pass

    def visit_truncated(self, key: str | None, depth: int) -> None:
        pass


class JsonStringCollector(JsonVisitor):
    """Flattens every primitive (and key) into a list of strings for substring search."""

    def __init__(self):
        self.values: List[str] = []

    def visit_dict(self, value, depth, key):
        for child_key, child in value.items():
            self.values.append(str(child_key))
            self.visit(child, depth + 1, str(child_key))

    def visit_primitive(self, value, depth, key):
        text = str(value).strip()
        if text:
            self.values.append(text)

    @classmethod
    def collect(cls, value: Any) -> List[str]:
        collector = cls()
        collector.visit(value)
        return collector.values


class MarkdownJsonRenderer(JsonVisitor):
    """Renders JSON as an indented markdown bullet list for prompts."""

    def __init__(self):
        self.lines: List[str] = []

    def _indent(self, depth: int) -> str:
        return "  " * max(depth - 1, 0)

    def visit_dict(self, value, depth, key):
        if key is not None:
            self.lines.append(f"{self._indent(depth)}- **{key}**:")
        for child_key, child in value.items():
            self.visit(child, depth + 1, str(child_key))

    def visit_list(self, value, depth, key):
        if all(isinstance(item, Primitive) for item in value):
            joined = ", ".join(str(item) for item in value)
            label = f"**{key}**: " if key is not None else ""
            self.lines.append(f"{self._indent(depth)}- {label}{joined}")
            return
        if key is not None:
            self.lines.append(f"{self._indent(depth)}- **{key}**:")
        for child in value:
            self.visit(child, depth + 1, None)

    def visit_primitive(self, value, depth, key):
        if key is None:
            self.lines.append(f"{self._indent(depth)}- {value}")
        else:
            self.lines.append(f"{self._indent(depth)}- **{key}**: {value}")

    def visit_truncated(self, key, depth):
        label = f"**{key}**: " if key is not None else ""
        self.lines.append(f"{self._indent(depth)}- {label}…")

    @classmethod
    def render(cls, value: Any) -> str:
        renderer = cls()
        renderer.visit(value)
        return "\n".join(renderer.lines)
