import math
from typing import Any, Dict, List, Optional

from .errors import FormError
from .query import same_value

ROWS_PER_PAGE_CHOICES = (5, 10, 25)


class ListView:
    """A downloaded table paginated in memory (0-based pages).

    Deleting a row filters it out of the downloaded list; nothing is refetched.
    """

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None, rows_per_page: int = 10):
        self.rows: List[Dict[str, Any]] = list(rows or [])
        self.page = 0
        self.rows_per_page = rows_per_page

    def load(self, rows: List[Dict[str, Any]]):
        self.rows = list(rows)
        self._clamp()

    @property
    def total(self) -> int:
        return len(self.rows)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.rows_per_page) if self.rows_per_page else 0

    @property
    def visible(self) -> List[Dict[str, Any]]:
        start = self.page * self.rows_per_page
        return self.rows[start:start + self.rows_per_page]

    def set_page(self, page: int):
        if page < 0:
            raise FormError({"page": "Page must be 0 or greater"})
        self.page = page
        self._clamp()

    def set_rows_per_page(self, rows_per_page: int):
        if rows_per_page not in ROWS_PER_PAGE_CHOICES:
            raise FormError({"rows_per_page": f"Rows per page must be one of {ROWS_PER_PAGE_CHOICES}"})
        self.rows_per_page = rows_per_page
        self.page = 0

    def find(self, row_id: Any) -> Optional[Dict[str, Any]]:
        for row in self.rows:
            if same_value(row.get("id"), row_id):
                return row
        return None

    def remove(self, row_id: Any) -> bool:
        before = len(self.rows)
        self.rows = [row for row in self.rows if not same_value(row.get("id"), row_id)]
        self._clamp()
        return len(self.rows) != before

    def _clamp(self):
        # an emptied trailing page falls back to the last page that still has rows
        last = max(self.total_pages - 1, 0)
        if self.page > last:
            self.page = last

    def page_model(self) -> Dict[str, Any]:
        return {
            "rows": self.visible,
            "page": self.page,
            "rows_per_page": self.rows_per_page,
            "total": self.total,
            "total_pages": self.total_pages,
        }
