"""
User Management Endpoints

Users within the caller's tenant, scoped further by the caller's role
(see services/users.py).

RBAC:
- List / get users: LAB_OWNER or higher
- Create user: LAB_OWNER or higher, never above the caller's own role
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from pathosaathi.api.deps import get_db, get_state, require_lab_owner
from pathosaathi.core.responses import success_response
from pathosaathi.models.user import UserRole
from pathosaathi.schemas.user import UserCreate, UserListResponse, UserResponse
from pathosaathi.services.auth import AuthenticatedUser
from pathosaathi.state import AppState
from pathosaathi.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(None, ge=1, le=100),
    role: UserRole = Query(None),
    is_active: bool = Query(None),
    current_user: AuthenticatedUser = Depends(require_lab_owner),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    """
    List users visible to the caller.

    Supports filtering by role and active status.
    """
    page_size = page_size or state.settings.DEFAULT_PAGE_SIZE
    users, total = state.users.list_users(
        db,
        current_user,
        page=page,
        page_size=page_size,
        role=role,
        is_active=is_active,
    )

    logger.debug(f"Listed {len(users)} users for {current_user.tenant_prefix}")

    return success_response(
        UserListResponse(
            users=[UserResponse.model_validate(user) for user in users],
            total=total,
            page=page,
            page_size=page_size,
        ),
        "Users retrieved successfully",
    )


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    current_user: AuthenticatedUser = Depends(require_lab_owner),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    user = state.users.get_user(db, current_user, user_id)
    return success_response(UserResponse.model_validate(user), "User retrieved successfully")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    current_user: AuthenticatedUser = Depends(require_lab_owner),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    """
    Create a staff user in the tenant the role belongs to.

    BUSINESS LOGIC: Lab roles need a lab_id; LAB_OWNER callers always
    create users in their own lab.
    """
    user = state.users.create_user(db, current_user, user_data)
    return success_response(UserResponse.model_validate(user), "User created successfully")
