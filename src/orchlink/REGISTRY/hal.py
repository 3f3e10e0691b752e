# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
HAL+JSON document helpers.
Reads '_links' and '_embedded' sections and expands templated hrefs such as
'http://host/containers/{name}' or 'http://host/containers{?name}'.
"""

import re
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote, urlencode

HAL_JSON = "application/hal+json"

_TEMPLATE_EXPR = re.compile(r"\{([?&]?)([^}]+)\}")


def links_of(document: Mapping[str, Any]) -> Dict[str, str]:
    """
    Collect the links of a HAL document as a rel -> href mapping.

    When a relation holds an array of links, the first one wins.
    """
    links: Dict[str, str] = {}
    for rel, link in (document.get("_links") or {}).items():
        if isinstance(link, list):
            if not link:
                continue
            link = link[0]
        if isinstance(link, dict) and link.get("href"):
            links[rel] = link["href"]
    return links


def find_link(document: Mapping[str, Any], rel: str) -> Optional[str]:
    """Return the href for a relation, or None if the document lacks it."""
    return links_of(document).get(rel)


def embedded_items(document: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """
    Flatten every collection found under '_embedded'.

    Collection resources name their embedded key after the item type
    (e.g. 'cu:images' or 'imageResourceList'), so no key is assumed.
    """
    items: List[Dict[str, Any]] = []
    for value in (document.get("_embedded") or {}).values():
        if isinstance(value, list):
            items.extend(v for v in value if isinstance(v, dict))
        elif isinstance(value, dict):
            items.append(value)
    return items


def expand(href: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """
    Expand a URI template with the given parameters.

    Supports simple '{var}' substitution and form-style '{?a,b}' / '{&a,b}'
    query expansion. Variables without a value are dropped.

    Args:
        href: Possibly templated href.
        params: Template variables.

    Returns:
        A concrete URI.
    """
    params = params or {}

    def _replace(match: "re.Match[str]") -> str:
        operator, names = match.group(1), match.group(2).split(",")
        if not operator:
            value = params.get(names[0])
            return "" if value is None else quote(str(value), safe="")
        pairs = [(n, params[n]) for n in names if params.get(n) is not None]
        if not pairs:
            return ""
        return operator + urlencode(pairs)

    return _TEMPLATE_EXPR.sub(_replace, href)
