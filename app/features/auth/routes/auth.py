from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.auth.models.user import User
from app.features.auth.schemas.auth import LoginRequest, SignupRequest, UserResponse
from app.features.auth.services.auth_service import AuthService
from app.features.auth.utils.security import decode_access_token
from app.platform.db.session import get_db
from app.platform.response import api_response
from app.platform.services.email_validation import ensure_deliverable

router = APIRouter(prefix="/auth", tags=["Authentication"])
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency to get the current authenticated project owner.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required. Please log in.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(credentials.credentials)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await AuthService(db).get_user_by_id(user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User associated with this token was not found.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


@router.post(
    "/signup",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new user account",
    description="Registers a new user and returns their details along with a JWT.",
)
async def signup(request: SignupRequest, db: AsyncSession = Depends(get_db)):
    """
    Register a new project owner.
    The email must pass the deliverability check before the account is created.
    """
    await ensure_deliverable(request.email)

    token_response = await AuthService(db).register_user(request)

    return api_response(
        data=token_response,
        message="User registered successfully",
        status_code=status.HTTP_201_CREATED,
    )


@router.post(
    "/login",
    response_model=dict,
    status_code=status.HTTP_200_OK,
    summary="Authenticate a user",
    description="Logs a user in with their email and password, returning a new JWT.",
)
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    token_response = await AuthService(db).login_user(request)

    return api_response(
        data=token_response,
        message="Login successful",
        status_code=status.HTTP_200_OK,
    )


@router.get(
    "/me",
    response_model=dict,
    status_code=status.HTTP_200_OK,
    summary="Get current user profile",
)
async def me(current_user: User = Depends(get_current_user)):
    return api_response(
        data=UserResponse.model_validate(current_user),
        message="User retrieved successfully",
    )
