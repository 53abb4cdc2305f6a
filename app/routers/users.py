from fastapi import APIRouter, Depends, Path, Query, Request, status

from app.schemas.user_schemas import CreateUserRequest, UserResponse
from app.services.user_service import UserService, get_user_service
from app.utils.error_handlers import handle_service_error
from app.utils.errors import BusinessLogicError
from app.utils.responses import ResponseBuilder

users_router = APIRouter()


@users_router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new user",
    description="Register a user to receive a birthday message at 9 AM in their own timezone",
)
async def create_user(
    request: Request,
    user_data: CreateUserRequest,
    user_service: UserService = Depends(get_user_service),
):
    try:
        user_response = await user_service.create_user(user_data)

        return ResponseBuilder.success(
            request=request,
            data=user_response.model_dump(by_alias=True),
            message="User created successfully",
            status_code=status.HTTP_201_CREATED,
        )

    except ValueError as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to create user",
            error_code="USER_CREATION_FAILED",
        )


@users_router.get(
    "",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Get all users",
)
async def get_users(
    request: Request,
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(50, ge=1, le=200, alias="perPage", description="Items per page"),
    user_service: UserService = Depends(get_user_service),
):
    try:
        users, total = await user_service.list_users(page, per_page)
        message = f"Retrieved {len(users)} user{'s' if len(users) != 1 else ''} successfully"

        return ResponseBuilder.paginated(
            request=request,
            data=[user.model_dump(by_alias=True) for user in users],
            page=page,
            per_page=per_page,
            total=total,
            message=message,
        )

    except ValueError as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to retrieve users",
            error_code="USERS_RETRIEVAL_FAILED",
        )


@users_router.get(
    "/{user_id}",
    response_model=UserResponse,
    status_code=status.HTTP_200_OK,
    summary="Get user by ID",
)
async def get_user(
    request: Request,
    user_id: str = Path(..., description="User ID"),
    user_service: UserService = Depends(get_user_service),
):
    try:
        user_response = await user_service.get_user(user_id)

        return ResponseBuilder.success(
            request=request,
            data=user_response.model_dump(by_alias=True),
            message="User retrieved successfully",
        )

    except ValueError as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to retrieve user",
            error_code="USERS_RETRIEVAL_FAILED",
        )


@users_router.delete(
    "/{user_id}",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Delete a user",
)
async def delete_user(
    request: Request,
    user_id: str = Path(..., description="User ID"),
    user_service: UserService = Depends(get_user_service),
):
    try:
        await user_service.delete_user(user_id)

        return ResponseBuilder.success(
            request=request,
            data={"id": user_id},
            message="User deleted successfully",
        )

    except ValueError as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to delete user",
            error_code="USER_DELETION_FAILED",
        )
