"""Query string handling for ``key=value&key=value`` strings.

Tokens are passed through as raw text: nothing is percent-decoded on the way
in and nothing is percent-encoded on the way out.
"""

from typing import Dict, Mapping, Optional


def parse(raw: str) -> Dict[str, Optional[str]]:
    """Parse ``raw`` into a dict, later keys overwriting earlier ones.

    A token without ``=`` maps to ``None``. An empty string is a single empty
    token, so ``parse("")`` returns ``{"": None}`` rather than ``{}``.
    """
    if raw == "":
        return {"": None}
    params: Dict[str, Optional[str]] = {}
    for token in raw.split("&"):
        if not token:
            continue
        key, sep, value = token.partition("=")
        params[key] = value if sep else None
    return params


def format(params: Mapping[str, Optional[str]]) -> str:
    return "&".join(key if value is None else f"{key}={value}" for key, value in params.items())
