from fastapi import APIRouter, Depends

from rootra.core.auth import AuthUser, auth_required, get_current_user
from rootra.models.lifecycle import Role

router = APIRouter()


@router.get("/whoami")
def whoami(current_user: AuthUser = Depends(get_current_user)) -> dict:
    roles = [Role(r) for r in current_user.roles]
    return {
        "auth_enabled": auth_required(),
        "user_id": current_user.user_id,
        "roles": [r.value for r in roles],
        # Callers holding several roles must name one per transition request.
        "acting_role": roles[0].value if len(roles) == 1 else None,
        "token_source": current_user.token_source,
    }
