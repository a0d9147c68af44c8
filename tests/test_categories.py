"""Tests for the category table, decoders and search query builder."""

import json

import pytest

from forgestats.categories import (
    CATEGORY_TABLE,
    decode_commit_activity,
    decode_commits,
    decode_contributors,
    decode_languages,
    decode_total_count,
    repo_field,
    spec_for,
)
from forgestats.errors import DecodeError
from forgestats.models import Category, RepositoryRef
from forgestats.query import Query

REF = RepositoryRef("acme", "widgets")


def body(data):
    return json.dumps(data).encode("utf-8")


class TestCategoryTable:
    """Test the category -> request table."""

    def test_every_category_defined(self):
        """Test each category has a fetch definition."""
        assert set(CATEGORY_TABLE) == set(Category)

    def test_repo_url(self):
        """Test URL building from the path template."""
        spec = spec_for(Category.CONTRIBUTORS)
        assert spec.url("https://api.github.com/", REF) == "https://api.github.com/repos/acme/widgets/contributors"
        assert spec.paginated
        assert spec.params(REF) == {"anon": "1"}

    def test_search_categories(self):
        """Test count categories built on the search API."""
        spec = spec_for(Category.MERGED_PULLS)
        assert spec.resource == "search"
        assert not spec.paginated
        assert spec.params(REF) == {"q": "repo:acme/widgets is:pr is:merged", "per_page": "1"}
        assert spec_for(Category.CLOSED_ISSUES).params(REF)["q"] == "repo:acme/widgets is:issue is:closed"

    def test_repo_field_categories(self):
        """Test stars/forks/watchers read the repository resource."""
        for category in (Category.STARS, Category.FORKS, Category.WATCHERS):
            spec = spec_for(category)
            assert spec.path == "/repos/{owner}/{name}"
            assert spec.resource == "core"


class TestDecoders:
    """Test response decoders."""

    def test_repo_field(self):
        """Test integer field extraction."""
        assert repo_field("stargazers_count")(body({"stargazers_count": 5})) == 5

    def test_repo_field_missing(self):
        """Test a missing field is a decode error."""
        with pytest.raises(DecodeError):
            repo_field("forks_count")(body({"stargazers_count": 5}))

    def test_invalid_json(self):
        """Test malformed JSON is a decode error."""
        with pytest.raises(DecodeError, match="Invalid JSON"):
            repo_field("stargazers_count")(b"{not json")

    def test_total_count(self):
        """Test search total_count."""
        assert decode_total_count(body({"total_count": 321, "incomplete_results": False, "items": []})) == 321

    def test_total_count_incomplete(self):
        """Test incomplete search results are rejected."""
        with pytest.raises(DecodeError):
            decode_total_count(body({"total_count": 3, "incomplete_results": True}))

    def test_contributors(self):
        """Test contributor records, including anonymous ones."""
        records = decode_contributors(
            body(
                [
                    {"login": "alice", "contributions": 50, "type": "User"},
                    {"name": "Bob", "email": "bob@example.com", "contributions": 3, "type": "Anonymous"},
                ]
            )
        )
        assert [(c.login, c.contributions, c.kind) for c in records] == [
            ("alice", 50, "User"),
            ("Bob", 3, "Anonymous"),
        ]

    def test_contributors_empty_body(self):
        """Test an empty body (204 for empty repositories) yields no records."""
        assert decode_contributors(b"") == []

    def test_contributors_malformed(self):
        """Test a record without contributions."""
        with pytest.raises(DecodeError):
            decode_contributors(body([{"login": "alice"}]))

    def test_commits(self):
        """Test commit records keep the first message line."""
        records = decode_commits(
            body(
                [
                    {
                        "sha": "abc123",
                        "author": {"login": "alice"},
                        "commit": {
                            "author": {"name": "Alice", "date": "2024-03-01T12:00:00Z"},
                            "message": "Fix parser\n\nLonger body",
                        },
                    },
                    {
                        "sha": "def456",
                        "author": None,
                        "commit": {"author": {"name": "Ghost", "date": "2024-03-02T08:30:00Z"}, "message": ""},
                    },
                ]
            )
        )
        assert records[0].sha == "abc123"
        assert records[0].author == "alice"
        assert records[0].message == "Fix parser"
        assert records[0].authored_at.year == 2024
        assert records[0].authored_at.tzinfo is not None
        assert records[1].author == "Ghost"
        assert records[1].message == ""

    def test_commits_not_a_list(self):
        """Test an object where a list is expected."""
        with pytest.raises(DecodeError, match="commit list"):
            decode_commits(body({"message": "Git Repository is empty."}))

    def test_commit_activity(self):
        """Test weekly activity records."""
        records = decode_commit_activity(body([{"week": 1704585600, "total": 7, "days": [0, 1, 2, 1, 1, 2, 0]}]))
        assert records[0].total == 7
        assert records[0].days == (0, 1, 2, 1, 1, 2, 0)
        assert records[0].week_start.isoformat().startswith("2024-01-07")

    def test_languages_sorted(self):
        """Test languages are ordered by size, largest first."""
        records = decode_languages(body({"C": 100, "Python": 900, "Shell": 100}))
        assert [(s.language, s.bytes) for s in records] == [("Python", 900), ("C", 100), ("Shell", 100)]


class TestQuery:
    """Test the search query builder."""

    def test_chain(self):
        """Test qualifiers render in order."""
        query = Query().repo("rust-lang", "rust").is_("pr").is_("merged")
        assert str(query) == "repo:rust-lang/rust is:pr is:merged"

    def test_quoted_label(self):
        """Test labels with spaces are quoted."""
        assert str(Query().label("good first issue").state("open")) == 'label:"good first issue" state:open'

    def test_keyword(self):
        """Test free-text keywords."""
        assert str(Query().keyword("crash").type_("issue")) == "crash type:issue"
