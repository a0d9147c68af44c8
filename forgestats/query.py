"""Builder for GitHub search qualifiers."""

from typing import List


class Query:
    """
    Chainable search query, e.g. ``repo:rust-lang/rust is:pr is:merged``.

    Example:
        >>> str(Query().repo("rust-lang", "rust").is_("pr").is_("merged"))
        'repo:rust-lang/rust is:pr is:merged'
    """

    def __init__(self) -> None:
        self._terms: List[str] = []

    def repo(self, owner: str, name: str) -> "Query":
        return self.qualifier("repo", f"{owner}/{name}")

    def is_(self, value: str) -> "Query":
        return self.qualifier("is", value)

    def type_(self, value: str) -> "Query":
        return self.qualifier("type", value)

    def state(self, value: str) -> "Query":
        return self.qualifier("state", value)

    def label(self, value: str) -> "Query":
        if " " in value:
            value = f'"{value}"'
        return self.qualifier("label", value)

    def qualifier(self, key: str, value: str) -> "Query":
        self._terms.append(f"{key}:{value}")
        return self

    def keyword(self, word: str) -> "Query":
        self._terms.append(word)
        return self

    def __str__(self) -> str:
        return " ".join(self._terms)

    def __repr__(self) -> str:
        return f"Query({str(self)!r})"
