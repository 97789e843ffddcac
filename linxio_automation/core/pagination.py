"""Paging for audit history listings.

Page sizes are capped by ``API_MAX_PAGE_SIZE`` so a single request cannot pull
an unbounded slice of ``rule_executions``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from fastapi import Response


MAX_PAGE_SIZE_FALLBACK = 200


def max_page_size() -> int:
    raw = (os.getenv("API_MAX_PAGE_SIZE") or "").strip()
    if not raw.isdigit() or int(raw) < 1:
        return MAX_PAGE_SIZE_FALLBACK
    return int(raw)


def clamp_page_size(page_size: int) -> int:
    return max(1, min(page_size, max_page_size()))


@dataclass(frozen=True)
class PageWindow:
    page: int
    size: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size

    def apply_headers(self, response: Response | None, total: int | None) -> None:
        if response is None:
            return
        headers = {"X-Page": self.page, "X-Page-Size": self.size}
        if total is not None:
            headers["X-Total-Count"] = total
        for name, value in headers.items():
            response.headers[name] = str(value)


def page_window(page: int, page_size: int) -> PageWindow:
    return PageWindow(page=max(page, 1), size=clamp_page_size(page_size))
