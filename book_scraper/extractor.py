# book_scraper/extractor.py
"""
Rule-driven extraction of search hits, book info, chapter lists and chapter content.

A field expression is a CSS selector optionally followed by ``@accessor``:

    ``h3 a``          text of the matched nodes
    ``h3 a@href``     value of the ``href`` attribute
    ``.intro@html``   outer markup of the first match
    ``@href``         attribute of the context node itself

URL fields default to ``@href`` (cover fields to ``@src``); all others to ``@text``.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urljoin

import config
from .book_models import BookInfo, Chapter, ExtractedContent, SearchResult
from .document import Document, Node
from .errors import RuleMismatch
from .source_models import BookInfoRule, ChapterRule, ContentRule, ReplaceRule, RuleSet, SearchRule

logger = logging.getLogger(__name__)

_SCHEME_RE = re.compile(r'^[a-zA-Z][a-zA-Z0-9+.\-]*:')
_ACCESSOR_RE = re.compile(r'^[A-Za-z_][\w:.\-]*$')

TEXT = "text"
HTML = "html"


class UrlResolution(str, Enum):
    CONCAT = "concat"
    JOIN = "join"


def default_url_strategy() -> UrlResolution:
    try:
        return UrlResolution(str(config.URL_RESOLUTION_STRATEGY).lower())
    except ValueError:
        logger.warning(f"Unknown URL_RESOLUTION_STRATEGY '{config.URL_RESOLUTION_STRATEGY}', using 'concat'.")
        return UrlResolution.CONCAT


def resolve_url(value: Optional[str], base: Optional[str],
                strategy: Optional[UrlResolution] = None) -> Optional[str]:
    """
    Makes an extracted link absolute. Values that start with a URI scheme pass through.
    CONCAT appends the value to the base verbatim (no normalization, double slashes are kept);
    JOIN applies RFC 3986 resolution.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if _SCHEME_RE.match(value) or not base:
        return value
    strategy = strategy or default_url_strategy()
    if strategy == UrlResolution.JOIN:
        return urljoin(base, value)
    return base + value


@dataclass(frozen=True)
class SourceContext:
    rule_set: Optional[RuleSet] = None
    base_url: Optional[str] = None
    url_strategy: UrlResolution = UrlResolution.CONCAT

    @classmethod
    def for_source(cls, rule_set: RuleSet, url_strategy: Optional[UrlResolution] = None) -> "SourceContext":
        return cls(rule_set=rule_set, base_url=rule_set.url, url_strategy=url_strategy or default_url_strategy())

    def resolve(self, value: Optional[str], base: Optional[str] = None) -> Optional[str]:
        return resolve_url(value, base or self.base_url, self.url_strategy)


# --- Field expressions ---

def split_field_expression(expression: str, default_accessor: str = TEXT) -> Tuple[str, str]:
    """Splits ``css@accessor`` into its parts. An '@' inside an attribute selector is left alone."""
    expression = expression.strip()
    if "@" in expression:
        css, accessor = expression.rsplit("@", 1)
        if _ACCESSOR_RE.match(accessor):
            return css.strip(), accessor
    return expression, default_accessor


def _match_nodes(context_node: Node, css: str) -> List[Node]:
    if not css:
        return [context_node]
    return context_node.select(css)


def _read_nodes(nodes: Sequence[Node], accessor: str, joiner: str = " ") -> Optional[str]:
    if not nodes:
        return None
    if accessor == TEXT:
        value = joiner.join(t for t in (n.text() for n in nodes) if t)
    elif accessor == HTML:
        value = nodes[0].html()
    else:
        value = next((v.strip() for v in (n.attr(accessor) for n in nodes) if v and v.strip()), None)
    return value if value else None


def extract_field(context_node: Node, expression: Optional[str], default_accessor: str = TEXT) -> Optional[str]:
    """Value of one field relative to context_node, or None when the rule is absent or yields nothing."""
    if expression is None or not expression.strip():
        return None
    css, accessor = split_field_expression(expression, default_accessor)
    return _read_nodes(_match_nodes(context_node, css), accessor)


def _require_rule(expression: Optional[str], field_name: str, group: str) -> str:
    if expression is None or not expression.strip():
        raise RuleMismatch(f"{group} has no '{field_name}' rule", field_name=field_name)
    return expression


def _list_nodes(document: Document, expression: str) -> List[Node]:
    css, _ = split_field_expression(expression)
    return document.select(css) if css else [document.root]


# --- Search results ---

def extract_search_results(document: Document, rule: SearchRule, context: SourceContext) -> List[SearchResult]:
    if context.rule_set is None:
        raise ValueError("extract_search_results needs a SourceContext carrying the rule set")
    list_expr = _require_rule(rule.list_selector, "list", "searchRule")
    _require_rule(rule.name, "name", "searchRule")
    _require_rule(rule.book_url, "bookUrl", "searchRule")

    hits = _list_nodes(document, list_expr)
    results: List[SearchResult] = []
    for index, hit in enumerate(hits):
        title = extract_field(hit, rule.name)
        book_url = context.resolve(extract_field(hit, rule.book_url, default_accessor="href"))
        if not title or not book_url:
            logger.debug(f"Search hit #{index} from '{context.rule_set.name}' has no title or book URL, dropped.")
            continue
        results.append(SearchResult(
            title=title,
            author=extract_field(hit, rule.author) or "",
            cover_url=context.resolve(extract_field(hit, rule.cover_url, default_accessor="src")),
            book_url=book_url,
            intro=extract_field(hit, rule.intro) or "",
            source=context.rule_set,
            last_chapter=extract_field(hit, rule.last_chapter),
            word_count=extract_field(hit, rule.word_count),
            status=extract_field(hit, rule.status),
            rank=index,
        ))
    logger.debug(f"Extracted {len(results)}/{len(hits)} search hits for '{context.rule_set.name}'.")
    return results


# --- Book info ---

def extract_book_info(document: Document, rule: BookInfoRule, context: SourceContext) -> BookInfo:
    name_expr = _require_rule(rule.name, "name", "bookInfoRule")
    root = document.root
    title = extract_field(root, name_expr)
    if not title:
        raise RuleMismatch(f"bookInfoRule 'name' selector '{name_expr}' matched nothing",
                           field_name="name", selector=name_expr)
    base = document.base_url()
    return BookInfo(
        title=title,
        author=extract_field(root, rule.author) or "",
        cover_url=context.resolve(extract_field(root, rule.cover, default_accessor="src"), base),
        intro=extract_field(root, rule.intro) or "",
        last_chapter=extract_field(root, rule.last_chapter) or "",
        catalog_url=context.resolve(extract_field(root, rule.catalog, default_accessor="href"), base),
        status=extract_field(root, rule.status),
        update_time=extract_field(root, rule.update_time),
        word_count=extract_field(root, rule.word_count),
        category=extract_field(root, rule.category),
    )


# --- Chapter list ---

def extract_chapter_list(document: Document, rule: ChapterRule, context: SourceContext) -> List[Chapter]:
    list_expr = _require_rule(rule.list_selector, "list", "chapterListRule")
    _require_rule(rule.url, "url", "chapterListRule")

    # Pages may redirect; links are relative to where the catalog actually lives.
    base = document.base_url() or context.base_url
    nodes = _list_nodes(document, list_expr)
    chapters: List[Chapter] = []
    for node in nodes:
        url = context.resolve(extract_field(node, rule.url, default_accessor="href"), base)
        if not url:
            continue
        chapters.append(Chapter(
            title=extract_field(node, rule.name) or "",
            url=url,
            update_time=extract_field(node, rule.update_time),
            is_vip=bool(extract_field(node, rule.is_vip)),
        ))
    logger.debug(f"Extracted {len(chapters)}/{len(nodes)} chapters from {document.url or 'document'}.")
    return chapters


def extract_chapter_next_page(document: Document, rule: ChapterRule, context: SourceContext) -> Optional[str]:
    base = document.base_url() or context.base_url
    return context.resolve(extract_field(document.root, rule.next_page, default_accessor="href"), base)


# --- Content ---

def purify_text(text: str, patterns: Sequence[str]) -> str:
    for pattern in patterns:
        try:
            text = re.sub(pattern, "", text)
        except re.error as e:
            raise RuleMismatch(f"Invalid purify pattern '{pattern}': {e}", field_name="purify") from e
    return text


def apply_replace_rules(text: str, rules: Sequence[ReplaceRule]) -> str:
    for replace_rule in rules:
        if replace_rule.is_regex:
            try:
                text = re.sub(replace_rule.pattern, replace_rule.replacement, text)
            except re.error as e:
                raise RuleMismatch(f"Invalid replace pattern '{replace_rule.pattern}': {e}",
                                   field_name="contentReplaceRules") from e
        else:
            text = text.replace(replace_rule.pattern, replace_rule.replacement)
    return text


def extract_content(document: Document, rule: ContentRule, context: SourceContext) -> ExtractedContent:
    """
    Ads are removed from the live tree first (in listed order), then the text is
    extracted and purified. Paragraph matches are joined by newlines.
    """
    content_expr = _require_rule(rule.content, "content", "contentRule")

    removed = 0
    for ad_selector in rule.ads:
        removed += document.remove(ad_selector)
    if removed:
        logger.debug(f"Removed {removed} ad nodes from {document.url or 'document'}.")

    css, accessor = split_field_expression(content_expr)
    nodes = _match_nodes(document.root, css)
    if not nodes:
        raise RuleMismatch(f"contentRule 'content' selector '{content_expr}' matched nothing",
                           field_name="content", selector=content_expr)
    text = _read_nodes(nodes, accessor, joiner="\n") or ""
    text = purify_text(text, rule.purify)
    if context.rule_set is not None and context.rule_set.content_replace_rules:
        text = apply_replace_rules(text, context.rule_set.content_replace_rules)

    base = document.base_url() or context.base_url
    return ExtractedContent(
        text=text.strip(),
        next_page_url=context.resolve(extract_field(document.root, rule.next_page, default_accessor="href"), base),
        title=extract_field(document.root, rule.title),
    )
