"""
Banklink Packet Parameters

The ParameterStore is the canonical source of a packet's contents.
Insertion order is significant: it defines the byte sequence fed to the
signing algorithm, so two stores holding the same pairs in a different
order produce different canonical strings.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .exceptions import InvalidParameter


# A rule inspects (name, value) and returns an error message, or None if valid.
ParameterRule = Callable[[str, str], Optional[str]]

# C0 controls except tab, LF and CR, plus DEL
_FORBIDDEN_CONTROL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

LATIN_1 = "iso-8859-1"


@dataclass(frozen=True)
class Parameter:
    """A single packet field. Name is case-sensitive; value is opaque text."""
    name: str
    value: str

    def as_tuple(self) -> Tuple[str, str]:
        return self.name, self.value


def no_control_characters(name: str, value: str) -> Optional[str]:
    """Reject values carrying control characters other than tab, CR and LF."""
    match = _FORBIDDEN_CONTROL.search(value)
    if match:
        return f"forbidden control character 0x{ord(match.group()):02x} in value"
    return None


def max_length(limit: int) -> ParameterRule:
    """Build a rule capping value length at `limit` characters."""
    def rule(name: str, value: str) -> Optional[str]:
        if len(value) > limit:
            return f"value longer than {limit} characters"
        return None
    return rule


DEFAULT_RULES: Tuple[ParameterRule, ...] = (no_control_characters,)


def recode(value: str, charset: Optional[str]) -> str:
    """
    Re-decode a value that the transport decoded as ISO-8859-1.

    ISO-8859-1 maps every byte to one code point, so encoding with it
    recovers the original bytes, which are then decoded with `charset`.
    """
    if not charset or charset.lower().replace("_", "-") in (LATIN_1, "latin-1", "latin1"):
        return value
    return value.encode(LATIN_1).decode(charset)


class ParameterStore:
    """
    Ordered, uniquely-keyed name -> value container.

    Re-setting an existing name updates the value in place; the parameter
    keeps its original position. Not thread-safe: a store belongs to the
    single request that owns its packet.
    """

    def __init__(self, rules: Optional[Sequence[ParameterRule]] = None):
        self._params: Dict[str, Parameter] = {}
        self._rules: Tuple[ParameterRule, ...] = DEFAULT_RULES if rules is None else tuple(rules)

    def reset(self):
        """Remove all parameters."""
        self._params.clear()

    def put(self, name: str, value: str):
        """Insert or overwrite without validation, preserving position on overwrite."""
        self._params[name] = Parameter(name, value)

    def set_parameter(self, name: str, value: str):
        """
        Validate and store a parameter.

        Raises:
            InvalidParameter: name is None/empty, value is not text, or a
                format rule rejects the value. Nothing is stored in that case.
        """
        if not name:
            raise InvalidParameter("Parameter name must not be empty", name=name)
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise InvalidParameter(f"Parameter {name} value must be text", name=name,
                                   details={"type": type(value).__name__})
        for rule in self._rules:
            error = rule(name, value)
            if error:
                raise InvalidParameter(f"Invalid value for {name}: {error}", name=name)
        self.put(name, value)

    def get(self, name: str) -> Optional[str]:
        if not name:
            return None
        param = self._params.get(name)
        return param.value if param else None

    def contains(self, name: str) -> bool:
        return name in self._params

    def remove(self, name: str) -> Optional[str]:
        param = self._params.pop(name, None)
        return param.value if param else None

    def values(self) -> List[Parameter]:
        """Parameters in insertion order."""
        return list(self._params.values())

    def names(self) -> List[str]:
        return list(self._params.keys())

    def as_dict(self) -> Dict[str, str]:
        return {p.name: p.value for p in self._params.values()}

    def load(
        self,
        pairs: Iterable[Tuple[str, str]],
        charset: Optional[str] = None,
        only: Optional[Sequence[str]] = None
    ):
        """
        Replace the store contents with inbound (name, value) pairs.

        Args:
            pairs: Inbound fields, e.g. parsed form data
            charset: Re-encoding hint; see recode()
            only: If given, keep just these names and insert them in this
                order instead of the source order

        Raises:
            InvalidParameter: a value cannot be re-decoded or fails a rule
        """
        self.reset()
        decoded: Dict[str, str] = {}
        for name, value in pairs:
            try:
                decoded[name] = recode(value, charset)
            except (UnicodeError, LookupError) as e:
                raise InvalidParameter(
                    f"Cannot re-decode {name} from {charset}: {e}", name=name,
                    details={"charset": charset}
                ) from e

        names = list(decoded) if only is None else [n for n in only if n in decoded]
        for name in names:
            self.set_parameter(name, decoded[name])

    def __contains__(self, name: str) -> bool:
        return self.contains(name)

    def __iter__(self) -> Iterator[Parameter]:
        return iter(self.values())

    def __len__(self) -> int:
        return len(self._params)

    def __repr__(self) -> str:
        return f"ParameterStore({self.as_dict()!r})"
