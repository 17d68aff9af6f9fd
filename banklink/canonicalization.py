"""
Banklink Canonical String Encoding

A canonical string is the deterministic, order-dependent text a signing
algorithm authenticates. Two encoders are provided:

- query_string: name=value pairs joined by '&', in parameter order.
  Example: VK_SERVICE=1012&VK_VERSION=008&VK_AMOUNT=100.00
  No escaping is applied; names and values are used verbatim.

- length_prefixed: IPizza style. Each value is preceded by its length in
  characters as three zero-padded digits; names are not included.
  Example: 0041012003008006100.00
"""

from typing import Callable, Iterable

from .parameters import Parameter


Canonicalizer = Callable[[Iterable[Parameter]], str]


def query_string(parameters: Iterable[Parameter]) -> str:
    """Join name=value pairs with '&' in the given order."""
    return "&".join(f"{p.name}={p.value}" for p in parameters)


def length_prefixed(parameters: Iterable[Parameter]) -> str:
    """
    Concatenate values, each prefixed with its 3-digit length.

    Raises:
        ValueError: a value is 1000 characters or longer
    """
    parts = []
    for p in parameters:
        if len(p.value) > 999:
            raise ValueError(f"Value of {p.name} too long for length-prefixed encoding")
        parts.append(f"{len(p.value):03d}{p.value}")
    return "".join(parts)


CANONICALIZERS = {
    "query_string": query_string,
    "length_prefixed": length_prefixed,
}
