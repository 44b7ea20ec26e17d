"""
Shared listing envelope.
"""

from pydantic import BaseModel


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    results: int
