from fastapi import Request, status

from app.utils.responses import ResponseBuilder


def handle_service_error(request: Request, error: Exception):
    """Centralized service error handler for all routers"""
    error_message = str(error)

    # Extract error code (format: "ERROR_CODE: message")
    if ":" in error_message:
        error_code = error_message.split(":", 1)[0]
    else:
        error_code = error_message

    error_status_mapping = {
        "USER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    }

    status_code = error_status_mapping.get(
        error_code, status.HTTP_500_INTERNAL_SERVER_ERROR
    )

    error_messages = {
        "USER_NOT_FOUND": "User not found",
        "USER_CREATION_FAILED": "Failed to create user",
        "USERS_RETRIEVAL_FAILED": "Failed to retrieve users",
        "USER_DELETION_FAILED": "Failed to delete user",
    }

    message = error_messages.get(error_code, "An unexpected error occurred")

    return ResponseBuilder.error(
        request=request,
        message=message,
        error_code=error_code,
        status_code=status_code,
    )
