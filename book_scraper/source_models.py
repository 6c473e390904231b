# book_scraper/source_models.py
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

KEYWORD_PLACEHOLDER = "{keyword}"


# --- Pydantic Models for Rule Sets (exchange format uses the camelCase aliases) ---

class _RuleModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def drop_null_defaults(cls, data: Any) -> Any:
        """Exported sources often carry explicit nulls; those fields fall back to their defaults."""
        if not isinstance(data, dict):
            return data
        defaulted = set()
        for field_name, field_info in cls.model_fields.items():
            if not field_info.is_required():
                defaulted.add(field_name)
                if field_info.alias:
                    defaulted.add(field_info.alias)
        return {key: value for key, value in data.items() if value is not None or key not in defaulted}


class ReplaceRule(_RuleModel):
    pattern: str = Field(..., description="Text or regular expression to look for in chapter text.")
    replacement: str = Field(default="", description="Replacement text.")
    is_regex: bool = Field(default=False, alias="isRegex")


class SearchRule(_RuleModel):
    list_selector: Optional[str] = Field(default=None, alias="list",
                                         description="Selector yielding one node per search hit.")
    name: Optional[str] = None
    author: Optional[str] = None
    intro: Optional[str] = None
    cover_url: Optional[str] = Field(default=None, alias="coverUrl")
    book_url: Optional[str] = Field(default=None, alias="bookUrl")
    last_chapter: Optional[str] = Field(default=None, alias="lastChapter")
    word_count: Optional[str] = Field(default=None, alias="wordCount")
    status: Optional[str] = None


class BookInfoRule(_RuleModel):
    name: Optional[str] = None
    author: Optional[str] = None
    cover: Optional[str] = None
    intro: Optional[str] = None
    last_chapter: Optional[str] = Field(default=None, alias="lastChapter")
    catalog: Optional[str] = Field(default=None, description="Selector for a separate catalog (chapter list) URL.")
    status: Optional[str] = None
    update_time: Optional[str] = Field(default=None, alias="updateTime")
    word_count: Optional[str] = Field(default=None, alias="wordCount")
    category: Optional[str] = None


class ChapterRule(_RuleModel):
    list_selector: Optional[str] = Field(default=None, alias="list",
                                         description="Selector yielding one node per chapter.")
    name: Optional[str] = None
    url: Optional[str] = None
    next_page: Optional[str] = Field(default=None, alias="nextPage")
    update_time: Optional[str] = Field(default=None, alias="updateTime")
    is_vip: Optional[str] = Field(default=None, alias="isVip")


class ContentRule(_RuleModel):
    content: Optional[str] = None
    next_page: Optional[str] = Field(default=None, alias="next")
    title: Optional[str] = None
    ads: List[str] = Field(default_factory=list, description="Selectors of nodes removed before text extraction.")
    purify: List[str] = Field(default_factory=list,
                              description="Regular expressions removed from the extracted text, in order.")


class RuleSet(_RuleModel):
    name: str = Field(..., description="Display name of the book source.")
    url: str = Field(..., description="Base URL; relative search result links are resolved against it.")
    search_url: str = Field(..., alias="searchUrl",
                            description="Search URL template containing the {keyword} placeholder.")
    enabled: bool = True
    weight: int = Field(default=0, description="Higher weight sorts first when merging results.")
    header: Optional[Dict[str, str]] = None

    search_rule: SearchRule = Field(default_factory=SearchRule, alias="searchRule")
    book_info_rule: BookInfoRule = Field(default_factory=BookInfoRule, alias="bookInfoRule")
    chapter_list_rule: ChapterRule = Field(default_factory=ChapterRule, alias="chapterListRule")
    content_rule: ContentRule = Field(default_factory=ContentRule, alias="contentRule")

    charset: str = "utf-8"
    login_url: Optional[str] = Field(default=None, alias="loginUrl")
    cookies: Optional[str] = None
    user_agent: Optional[str] = Field(default=None, alias="userAgent")
    rate_limit: int = Field(default=0, alias="rateLimit", description="Minimum interval between requests in ms.")

    search_encoding: str = Field(default="utf-8", alias="searchEncoding")
    content_encoding: str = Field(default="utf-8", alias="contentEncoding")
    content_replace_rules: List[ReplaceRule] = Field(default_factory=list, alias="contentReplaceRules")

    @field_validator('name', 'url', 'search_url')
    @classmethod
    def validate_not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    def build_search_url(self, keyword: str) -> str:
        """Substitutes the percent-encoded keyword into the search URL template."""
        try:
            encoded = quote(keyword, safe="", encoding=self.search_encoding)
        except (LookupError, UnicodeEncodeError):
            encoded = quote(keyword, safe="")
        return self.search_url.replace(KEYWORD_PLACEHOLDER, encoded)

    def request_headers(self) -> Dict[str, str]:
        headers = dict(self.header or {})
        if self.user_agent:
            headers["User-Agent"] = self.user_agent
        if self.cookies:
            headers["Cookie"] = self.cookies
        return headers

    def to_exchange_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
