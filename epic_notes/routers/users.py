"""
Users router: account deletion, guarded by permissions.

Deleting yourself needs delete:user:own (or :any); deleting someone else
needs delete:user:any.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from epic_notes.core.cookies import session_storage
from epic_notes.core.exceptions import NotFoundException
from epic_notes.core.responses import Redirect
from epic_notes.database import get_db
from epic_notes.models.user import User
from epic_notes.schemas.cookies import Toast
from epic_notes.services import auth_service
from epic_notes.services.permission_service import require_user_with_permission
from epic_notes.services.session_service import require_user_id
from epic_notes.services.toast_service import redirect_with_toast

router = APIRouter()


@router.post("/{user_id}/delete")
async def delete_user(request: Request, user_id: str, db: Session = Depends(get_db)):
    current = require_user_id(request, db)
    if isinstance(current, Redirect):
        return current.to_response()

    is_self = current.value == user_id
    permission = "delete:user:own,any" if is_self else "delete:user:any"
    result = require_user_with_permission(request, db, permission)
    if isinstance(result, Redirect):
        return result.to_response()

    if not db.query(User.id).filter(User.id == user_id).first():
        raise NotFoundException("User")
    auth_service.delete_user(db, user_id)

    toast = Toast(type="success", title="Deleted", description="The account has been deleted.")
    if is_self:
        # Sessions went with the user; drop the cookie too
        return redirect_with_toast("/", toast, [session_storage.destroy()]).to_response()
    return redirect_with_toast("/", toast).to_response()
