"""
One-shot flash messages carried in the `en_toast` cookie.
Set with a redirect, read (and destroyed) by the next page render.
"""
from typing import Optional

from fastapi import Request

from epic_notes.core.cookies import toast_storage
from epic_notes.core.responses import HeaderPairs, HeaderSet, Redirect, redirect
from epic_notes.schemas.cookies import Toast


def create_toast_headers(toast: Toast) -> HeaderPairs:
    return [toast_storage.commit(toast)]


def redirect_with_toast(url: str, toast: Toast, *header_sets: HeaderSet) -> Redirect:
    return redirect(url, *header_sets, create_toast_headers(toast))


def get_toast(request: Request) -> tuple[Optional[Toast], HeaderPairs]:
    """Returns the pending toast (if any) plus the header that clears it."""
    toast = toast_storage.read_optional(request)
    if toast is None:
        return None, []
    return toast, [toast_storage.destroy()]
