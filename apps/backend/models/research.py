from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field


class SearchResult(BaseModel):
    """One web search hit as returned by the search provider"""
    title: str = ""
    url: str
    description: str = ""


class Source(BaseModel):
    title: str
    url: str
    domain: str
    date: Optional[str] = None


class ResearchFinding(BaseModel):
    stat: str = Field(description="The statistic or fact, stated verbatim")
    context: str = ""
    source: Source


class Framework(BaseModel):
    name: str
    description: str = ""
    source: Source


class ResearchBundle(BaseModel):
    topic: str
    findings: List[ResearchFinding] = Field(default_factory=list)
    frameworks: List[Framework] = Field(default_factory=list)
    queries: List[str] = Field(default_factory=list)
    sources_consulted: int = 0
    search_errors: int = 0


def today_iso() -> str:
    return date.today().isoformat()
