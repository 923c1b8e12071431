"""
Content matching for monitors.

Two modes:
- Simple: the company name, or any keyword, appears in title + body
- Boolean search query, when the monitor has one:
    "exact phrase"     phrase must appear
    a OR b             either term
    NOT a, -a          term must not appear
    title:x body:x     term restricted to one field
    author:name        exact author match (ignored when author unknown)
  Terms are ANDed by default. Parentheses are accepted but not grouped.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

FIELDS = ("title", "body", "author")

_TOKEN_PATTERN = re.compile(r'-?(?:\w+:)?"[^"]*"|[^\s()]+')


@dataclass
class SearchTerm:
    term: str
    field: Optional[str] = None


@dataclass
class ParsedQuery:
    required: List[SearchTerm] = field(default_factory=list)
    any_of: List[SearchTerm] = field(default_factory=list)
    excluded: List[SearchTerm] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.required or self.any_of or self.excluded)


@dataclass
class MatchResult:
    matches: bool
    matched_terms: List[str] = field(default_factory=list)
    match_type: str = "keyword"  # company, keyword, boolean_search


def _parse_term(token: str) -> SearchTerm:
    fieldname = None
    prefix, sep, rest = token.partition(":")
    if sep and prefix.lower() in FIELDS and rest:
        fieldname = prefix.lower()
        token = rest
    return SearchTerm(term=token.strip('"').lower(), field=fieldname)


def parse_search_query(query: str) -> ParsedQuery:
    """Parse a boolean search query into required/any-of/excluded terms."""
    parsed = ParsedQuery()
    negate_next = False
    or_next = False
    last_required = False

    for token in _TOKEN_PATTERN.findall(query or ""):
        upper = token.upper()
        if upper == "AND":
            continue
        if upper == "OR":
            # "a OR b": a moves from required into the any-of group
            if last_required:
                parsed.any_of.append(parsed.required.pop())
                last_required = False
            or_next = True
            continue
        if upper == "NOT" or token == "-":
            negate_next = True
            continue

        if token.startswith("-") and len(token) > 1:
            negate_next = True
            token = token[1:]

        term = _parse_term(token)
        if not term.term:
            continue

        last_required = False
        if negate_next:
            parsed.excluded.append(term)
        elif or_next:
            parsed.any_of.append(term)
        else:
            parsed.required.append(term)
            last_required = True
        negate_next = False
        or_next = False

    return parsed


def _term_found(term: SearchTerm, title: str, body: str, author: Optional[str]) -> bool:
    if term.field == "author":
        # Unknown author never excludes content
        return author is None or author.lower() == term.term
    if term.field == "title":
        return term.term in title
    if term.field == "body":
        return term.term in body
    return term.term in f"{title} {body}"


def matches_query(
    parsed: ParsedQuery, title: str, body: Optional[str] = None, author: Optional[str] = None
) -> MatchResult:
    """Evaluate a parsed query against one piece of content."""
    title_lower = (title or "").lower()
    body_lower = (body or "").lower()
    matched: List[str] = []

    for term in parsed.required:
        if not _term_found(term, title_lower, body_lower, author):
            return MatchResult(False, matched, "boolean_search")
        matched.append(term.term)

    for term in parsed.excluded:
        if term.field == "author" and author is None:
            continue
        if _term_found(term, title_lower, body_lower, author):
            return MatchResult(False, matched, "boolean_search")

    if parsed.any_of:
        hits = [t.term for t in parsed.any_of if _term_found(t, title_lower, body_lower, author)]
        if not hits:
            return MatchResult(False, matched, "boolean_search")
        matched.extend(hits)

    return MatchResult(True, matched, "boolean_search")


def matches_monitor(
    title: str,
    body: Optional[str] = None,
    author: Optional[str] = None,
    company_name: Optional[str] = None,
    keywords: Optional[List[str]] = None,
    search_query: Optional[str] = None,
) -> MatchResult:
    """
    Check whether content matches a monitor's criteria.

    A non-blank search_query takes over completely. Otherwise a company name
    mention wins, then any keyword mention.
    """
    if search_query and search_query.strip():
        return matches_query(parse_search_query(search_query), title, body, author)

    text = f"{title or ''} {body or ''}".lower()

    if company_name and company_name.lower() in text:
        return MatchResult(True, [company_name], "company")

    hits = [k for k in (keywords or []) if k and k.lower() in text]
    if hits:
        return MatchResult(True, hits, "keyword")

    return MatchResult(False)
