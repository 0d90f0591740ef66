import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

# Table queries are described by a transport-neutral Query and executed by
# whichever backend transport the client was built with (memory or rest).


@dataclass
class Column:
    name: str
    alias: Optional[str] = None


@dataclass
class Embed:
    alias: str
    relation: str
    fields: List[Union[Column, "Embed"]]


SelectItem = Union[Column, Embed]


class _SelectParser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def skip_ws(self):
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def peek(self) -> str:
        self.skip_ws()
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def name(self) -> str:
        self.skip_ws()
        start = self.pos
        while self.pos < len(self.text) and (self.text[self.pos].isalnum() or self.text[self.pos] in "_*"):
            self.pos += 1
        if start == self.pos:
            raise ValueError(f"expected a column name at position {start} in select {self.text!r}")
        return self.text[start:self.pos]

    def parse_list(self) -> List[SelectItem]:
        items = [self.parse_item()]
        while self.peek() == ",":
            self.pos += 1
            items.append(self.parse_item())
        return items

    def parse_item(self) -> SelectItem:
        first = self.name()
        alias = None
        if self.peek() == ":":
            self.pos += 1
            alias, first = first, self.name()
        if self.peek() == "(":
            self.pos += 1
            fields = [] if self.peek() == ")" else self.parse_list()
            if self.peek() != ")":
                raise ValueError(f"unclosed '(' in select {self.text!r}")
            self.pos += 1
            return Embed(alias or first, first, fields)
        return Column(first, alias)


def parse_select(columns: str) -> List[SelectItem]:
    """Parse `id, qty, product:product_id (id, name)` into columns and embeds."""
    if not columns or not columns.strip():
        return [Column("*")]
    parser = _SelectParser(columns)
    items = parser.parse_list()
    if parser.peek():
        raise ValueError(f"unexpected {parser.peek()!r} in select {columns!r}")
    return items


def compact_select(columns: str) -> str:
    return re.sub(r"\s+", "", columns or "*")


@dataclass
class Query:
    table: str
    action: str = "select"  # select | insert | update | delete
    columns: str = "*"
    filters: List[Tuple[str, str, Any]] = field(default_factory=list)
    orders: List[Tuple[str, bool]] = field(default_factory=list)  # (column, ascending)
    limit: Optional[int] = None
    values: Any = None
    single: bool = False
    maybe_single: bool = False
    count: Optional[str] = None
    head: bool = False


@dataclass
class QueryResult:
    data: Any
    count: Optional[int] = None


Runner = Callable[[Query], Awaitable[QueryResult]]


class TableQuery:
    def __init__(self, table: str, runner: Runner):
        self._query = Query(table=table)
        self._runner = runner

    @property
    def query(self) -> Query:
        return self._query

    def select(self, columns: str = "*", count: Optional[str] = None, head: bool = False) -> "TableQuery":
        # after insert/update/delete this only shapes the returned rows
        self._query.columns = columns
        if self._query.action == "select":
            self._query.count = count
            self._query.head = head
        return self

    def insert(self, values: Union[Dict[str, Any], List[Dict[str, Any]]]) -> "TableQuery":
        self._query.action = "insert"
        self._query.values = [values] if isinstance(values, dict) else list(values)
        return self

    def update(self, values: Dict[str, Any]) -> "TableQuery":
        self._query.action = "update"
        self._query.values = dict(values)
        return self

    def delete(self) -> "TableQuery":
        self._query.action = "delete"
        return self

    def eq(self, column: str, value: Any) -> "TableQuery":
        self._query.filters.append((column, "eq", value))
        return self

    def neq(self, column: str, value: Any) -> "TableQuery":
        self._query.filters.append((column, "neq", value))
        return self

    def in_(self, column: str, values: List[Any]) -> "TableQuery":
        self._query.filters.append((column, "in", list(values)))
        return self

    def order(self, column: str, desc: bool = False) -> "TableQuery":
        self._query.orders.append((column, not desc))
        return self

    def limit(self, count: int) -> "TableQuery":
        self._query.limit = count
        return self

    def single(self) -> "TableQuery":
        self._query.single = True
        return self

    def maybe_single(self) -> "TableQuery":
        self._query.maybe_single = True
        return self

    async def execute(self) -> QueryResult:
        return await self._runner(self._query)


def same_value(left: Any, right: Any) -> bool:
    # ids arrive as strings from URLs and as ints from the tables
    if left == right:
        return True
    if left is None or right is None:
        return False
    return str(left) == str(right)


def matches(row: Dict[str, Any], filters: List[Tuple[str, str, Any]]) -> bool:
    for column, op, value in filters:
        current = row.get(column)
        if op == "eq" and not same_value(current, value):
            return False
        if op == "neq" and same_value(current, value):
            return False
        if op == "in" and not any(same_value(current, v) for v in value):
            return False
    return True
