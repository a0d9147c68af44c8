"""
Per-category request and decode table.

Each Category maps to a CategorySpec describing which endpoint to call, with
which query parameters, whether the endpoint paginates, which rate-limit
bucket it draws from and how to decode a response body. The fetcher never
branches on the category itself; it only reads this table.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .errors import DecodeError
from .models import Category, Commit, Contributor, LanguageShare, RepositoryRef, WeeklyActivity
from .query import Query

Decoder = Callable[[bytes], Any]
ParamBuilder = Callable[[RepositoryRef], Dict[str, str]]


def _no_params(ref: RepositoryRef) -> Dict[str, str]:
    return {}


@dataclass(frozen=True)
class CategorySpec:
    """
    How to fetch one category.

    Attributes:
        path: Endpoint path template with {owner} and {name}
        decode: Turns a response body into a count (single requests) or a
            list of records for one page (paginated requests)
        paginated: Collection endpoint; follows Link-header pages when the
            service sends them
        resource: Rate-limit bucket the endpoint draws from
        params: Extra query parameters for the first request
    """

    path: str
    decode: Decoder
    paginated: bool = False
    resource: str = "core"
    params: ParamBuilder = _no_params

    def url(self, base_url: str, ref: RepositoryRef) -> str:
        return base_url.rstrip("/") + self.path.format(owner=ref.owner, name=ref.name)


def load_json(body: bytes) -> Any:
    """Parse a JSON body; an empty body decodes to None."""
    if not body or not body.strip():
        return None
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise DecodeError(f"Invalid JSON body: {e}") from e


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _expect(data: Any, kind: type, what: str) -> Any:
    if not isinstance(data, kind):
        raise DecodeError(f"Expected {what}, got {type(data).__name__}")
    return data


def repo_field(name: str) -> Decoder:
    """Decoder for an integer field of the repository resource."""

    def decode(body: bytes) -> int:
        data = _expect(load_json(body), dict, "repository object")
        value = data.get(name)
        if not isinstance(value, int):
            raise DecodeError(f"Repository field '{name}' missing or not an integer")
        return value

    return decode


def decode_total_count(body: bytes) -> int:
    data = _expect(load_json(body), dict, "search result")
    total = data.get("total_count")
    if not isinstance(total, int):
        raise DecodeError("Search result has no total_count")
    if data.get("incomplete_results"):
        raise DecodeError("Search results incomplete")
    return total


def decode_contributors(body: bytes) -> List[Contributor]:
    data = load_json(body)
    if data is None:
        return []
    try:
        return [
            Contributor(
                login=item.get("login") or item.get("name") or item.get("email") or "anonymous",
                contributions=int(item["contributions"]),
                kind=item.get("type", "User"),
            )
            for item in _expect(data, list, "contributor list")
        ]
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise DecodeError(f"Malformed contributor record: {e}") from e


def decode_commits(body: bytes) -> List[Commit]:
    data = load_json(body)
    if data is None:
        return []
    commits = []
    try:
        for item in _expect(data, list, "commit list"):
            detail = item.get("commit") or {}
            author = detail.get("author") or {}
            login = (item.get("author") or {}).get("login")
            message = detail.get("message") or ""
            commits.append(
                Commit(
                    sha=item["sha"],
                    author=login or author.get("name"),
                    authored_at=parse_timestamp(author.get("date")),
                    message=message.splitlines()[0] if message else "",
                )
            )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise DecodeError(f"Malformed commit record: {e}") from e
    return commits


def decode_commit_activity(body: bytes) -> List[WeeklyActivity]:
    data = load_json(body)
    if data is None:
        return []
    try:
        return [
            WeeklyActivity(
                week_start=datetime.fromtimestamp(int(item["week"]), tz=timezone.utc),
                total=int(item["total"]),
                days=tuple(int(d) for d in item.get("days", [])),
            )
            for item in _expect(data, list, "weekly activity list")
        ]
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise DecodeError(f"Malformed activity record: {e}") from e


def decode_languages(body: bytes) -> List[LanguageShare]:
    data = load_json(body)
    if data is None:
        return []
    shares = []
    for language, size in _expect(data, dict, "language map").items():
        if not isinstance(size, int):
            raise DecodeError(f"Byte count for {language} is not an integer")
        shares.append(LanguageShare(language=language, bytes=size))
    return sorted(shares, key=lambda s: (-s.bytes, s.language))


def _search(*qualifiers: str) -> ParamBuilder:
    def build(ref: RepositoryRef) -> Dict[str, str]:
        query = Query().repo(ref.owner, ref.name)
        for qualifier in qualifiers:
            key, value = qualifier.split(":", 1)
            query.qualifier(key, value)
        return {"q": str(query), "per_page": "1"}

    return build


_REPO = "/repos/{owner}/{name}"
_SEARCH = "/search/issues"

CATEGORY_TABLE: Dict[Category, CategorySpec] = {
    Category.STARS: CategorySpec(_REPO, repo_field("stargazers_count")),
    Category.FORKS: CategorySpec(_REPO, repo_field("forks_count")),
    Category.WATCHERS: CategorySpec(_REPO, repo_field("subscribers_count")),
    Category.OPEN_ISSUES: CategorySpec(
        _SEARCH, decode_total_count, resource="search", params=_search("is:issue", "is:open")
    ),
    Category.CLOSED_ISSUES: CategorySpec(
        _SEARCH, decode_total_count, resource="search", params=_search("is:issue", "is:closed")
    ),
    Category.OPEN_PULLS: CategorySpec(
        _SEARCH, decode_total_count, resource="search", params=_search("is:pr", "is:open")
    ),
    Category.MERGED_PULLS: CategorySpec(
        _SEARCH, decode_total_count, resource="search", params=_search("is:pr", "is:merged")
    ),
    Category.CONTRIBUTORS: CategorySpec(
        _REPO + "/contributors", decode_contributors, paginated=True, params=lambda ref: {"anon": "1"}
    ),
    Category.COMMITS: CategorySpec(_REPO + "/commits", decode_commits, paginated=True),
    Category.COMMIT_ACTIVITY: CategorySpec(_REPO + "/stats/commit_activity", decode_commit_activity, paginated=True),
    Category.LANGUAGES: CategorySpec(_REPO + "/languages", decode_languages, paginated=True),
}


def spec_for(category: Category) -> CategorySpec:
    try:
        return CATEGORY_TABLE[category]
    except KeyError:
        raise ValueError(f"No fetch definition for category {category!r}") from None
