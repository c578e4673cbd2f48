"""Resolution of duplicate entry keys by letter suffixes."""

from collections.abc import Container, Iterator
from itertools import count, product
from string import ascii_lowercase


def key_suffixes() -> Iterator[str]:
    """Yield ``b`` ... ``z``, then ``aa``, ``ab`` ... ``zz``, then ``aaa`` and so on."""
    yield from ascii_lowercase[1:]
    for length in count(2):
        for letters in product(ascii_lowercase, repeat=length):
            yield "".join(letters)


def uniquify_key(base: str, existing: Container[str]) -> str:
    """Return the first ``base + suffix`` not present in ``existing``.

    ``base`` itself is not considered; callers only ask once it is taken.
    The result depends only on ``existing``.
    """
    for suffix in key_suffixes():
        candidate = base + suffix
        if candidate not in existing:
            return candidate
    raise AssertionError("unreachable")  # pragma: no cover - the suffix stream is infinite
