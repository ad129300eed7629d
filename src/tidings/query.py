"""
Search query parser for Tidings.

Turns a free-form search string into operators plus free text:

    repo:acme/api is:unread -reason:subscribed "flaky test"

Tokens look like `key:value` or `-key:value`. Values are either quoted
('...' or "...", taken literally) or a run of non-whitespace that may be a
comma-separated list. Everything else is free text.
"""

import re
from collections.abc import Mapping
from functools import lru_cache
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, Field, field_validator

TOKEN_RE = re.compile(
    r"""(?<!\S)(?P<key>-?\w+):(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>\S+))"""
)


class Query(BaseModel):
    """A parsed search string. Keys are lower-cased; values keep their case."""

    model_config = ConfigDict(frozen=True)

    operators: Mapping[str, tuple[str, ...]] = Field(default_factory=dict, validate_default=True)
    free_text: str = ""

    @field_validator("operators", mode="after")
    @classmethod
    def _read_only(cls, value: Mapping[str, tuple[str, ...]]) -> Mapping[str, tuple[str, ...]]:
        # parse() hands the same instance to every caller
        return MappingProxyType(dict(value))

    @property
    def empty(self) -> bool:
        return not self.operators and not self.free_text

    def values(self, key: str) -> tuple[str, ...]:
        """All values given for `key`, in the order they appeared."""
        return self.operators.get(key.lower(), ())

    def first_of(self, *keys: str) -> tuple[str, ...]:
        """Values of the first key in `keys` that has any."""
        for key in keys:
            if values := self.values(key):
                return values
        return ()


@lru_cache(maxsize=256)
def parse(raw: str | None) -> Query:
    """
    Parse a raw search string.

    Cached per string: the search box re-parses on every keystroke and the
    result is immutable.
    """
    raw = raw or ""
    operators: dict[str, list[str]] = {}
    leftovers: list[str] = []
    position = 0

    for match in TOKEN_RE.finditer(raw):
        leftovers.append(raw[position:match.start()])
        position = match.end()

        key = match.group("key").lower()
        if match.group("bare") is not None:
            pieces = [p.strip() for p in match.group("bare").split(",")]
        else:
            quoted = match.group("dq")
            pieces = [quoted if quoted is not None else match.group("sq")]

        pieces = [p for p in pieces if p]
        if pieces:
            operators.setdefault(key, []).extend(pieces)

    leftovers.append(raw[position:])
    free_text = " ".join(" ".join(leftovers).split())

    return Query(
        operators={key: tuple(values) for key, values in operators.items()},
        free_text=free_text,
    )
