"""
Response composition helpers.

Several subsystems may want to set a cookie on the same response (commit the
session, destroy the verification cookie, flash a toast...). Headers are passed
around as lists of (name, value) pairs so that every `set-cookie` survives the
merge; a plain dict would keep only the last one.

Flow control results:
    Continue(value, headers)  → the caller proceeds with `value`, forwarding `headers`
    Redirect(location, headers) → the caller returns `redirect.to_response()`
"""
from dataclasses import dataclass, field
from typing import Any, Generic, Iterable, Mapping, Optional, TypeVar, Union
from urllib.parse import urlsplit

from fastapi.responses import JSONResponse, RedirectResponse

HeaderPairs = list[tuple[str, str]]
HeaderSet = Optional[Union[Mapping[str, str], Iterable[tuple[str, str]]]]

T = TypeVar("T")


def _pairs(header_set: HeaderSet) -> HeaderPairs:
    if header_set is None:
        return []
    if isinstance(header_set, Mapping):
        return list(header_set.items())
    return list(header_set)


def combine_headers(*header_sets: HeaderSet) -> HeaderPairs:
    """
    Merge header sets left to right. `None` entries are skipped.
    Every set-cookie value is kept; any other header is last-writer-wins.
    """
    combined: HeaderPairs = []
    for header_set in header_sets:
        for name, value in _pairs(header_set):
            if name.lower() != "set-cookie":
                combined = [(n, v) for n, v in combined if n.lower() != name.lower()]
            combined.append((name, value))
    return combined


def apply_headers(response, *header_sets: HeaderSet):
    """Append merged headers onto a Starlette response (append keeps duplicates)."""
    for name, value in combine_headers(*header_sets):
        if name.lower() == "set-cookie":
            response.headers.append(name, value)
        else:
            response.headers[name] = value
    return response


def safe_redirect(to: Optional[str], default: str = "/") -> str:
    """
    Only allow local, absolute paths as redirect targets.
    Protocol-relative (`//evil.com`) and full URLs fall back to `default`.
    """
    if not to or not isinstance(to, str):
        return default
    to = to.strip()
    if not to.startswith("/") or to.startswith("//") or to.startswith("/\\"):
        return default
    if urlsplit(to).netloc:
        return default
    return to


@dataclass
class Continue(Generic[T]):
    value: T
    headers: HeaderPairs = field(default_factory=list)


@dataclass
class Redirect:
    location: str
    headers: HeaderPairs = field(default_factory=list)
    status_code: int = 302

    def to_response(self, *header_sets: HeaderSet) -> RedirectResponse:
        response = RedirectResponse(self.location, status_code=self.status_code)
        return apply_headers(response, self.headers, *header_sets)


def redirect(location: str, *header_sets: HeaderSet, status_code: int = 302) -> Redirect:
    return Redirect(location=location, headers=combine_headers(*header_sets), status_code=status_code)


def json_response(content: Any, *header_sets: HeaderSet, status_code: int = 200) -> JSONResponse:
    response = JSONResponse(content=content, status_code=status_code)
    return apply_headers(response, *header_sets)


def form_error(errors: dict, *header_sets: HeaderSet, status_code: int = 400) -> JSONResponse:
    """Shape used for every recoverable form failure (bad code, bad credentials)."""
    return json_response({"status": "error", "errors": errors}, *header_sets, status_code=status_code)
