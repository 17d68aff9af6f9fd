"""
Banklink Packet Rendering

Pure projections of a packet's parameters, in store order, into the two
formats merchants hand to browsers: an HTML hidden-input fragment for
auto-submitting forms, and a flat JSON object.
"""

import html
import json
from typing import Iterable

from .parameters import Parameter


def render_html(parameters: Iterable[Parameter]) -> str:
    """One <input type="hidden"/> line per parameter, attribute-escaped."""
    return "".join(
        f' <input type="hidden" name="{html.escape(p.name, quote=True)}" '
        f'value="{html.escape(p.value, quote=True)}"/>\n'
        for p in parameters
    )


def render_json(parameters: Iterable[Parameter]) -> str:
    """A JSON object with one string-valued key per parameter, in order."""
    return json.dumps({p.name: p.value for p in parameters}, ensure_ascii=False, separators=(',', ':'))
