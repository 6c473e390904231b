# book_scraper/book_models.py
from typing import Optional

from pydantic import BaseModel, Field

from .source_models import RuleSet


class FetchedPage(BaseModel):
    url: str
    final_url: str = Field(..., description="URL after following redirects; used as the document base.")
    status_code: int = 200
    text: str = ""
    content: bytes = b""
    encoding: Optional[str] = None


class SearchResult(BaseModel):
    title: str
    author: str = ""
    cover_url: Optional[str] = None
    book_url: str
    intro: str = ""
    source: RuleSet = Field(..., description="Rule set that produced this hit; used for follow-up fetches.")
    last_chapter: Optional[str] = None
    word_count: Optional[str] = None
    status: Optional[str] = None
    rank: int = Field(default=0, description="Document order of the hit within its source's result page.")

    @property
    def source_name(self) -> str:
        return self.source.name


class BookInfo(BaseModel):
    title: str
    author: str = ""
    cover_url: Optional[str] = None
    intro: str = ""
    last_chapter: str = ""
    catalog_url: Optional[str] = None
    status: Optional[str] = None
    update_time: Optional[str] = None
    word_count: Optional[str] = None
    category: Optional[str] = None


class Chapter(BaseModel):
    title: str = ""
    url: str
    update_time: Optional[str] = None
    is_vip: bool = False


class ExtractedContent(BaseModel):
    text: str = ""
    next_page_url: Optional[str] = None
    title: Optional[str] = None
