from typing import Any, Dict, List, Optional
from fastapi import status, Request
from fastapi.responses import JSONResponse
from app.schemas.response_schemas import ApiResponse, PaginationMeta, ResponseStatus


class ResponseBuilder:
    """Builds the standard `ApiResponse` envelope as a JSONResponse"""

    @staticmethod
    def _build(request: Request, status_code: int, **fields) -> JSONResponse:
        response = ApiResponse(
            request_id=request.state.request_id,
            path=str(request.url.path),
            **fields,
        )
        return JSONResponse(
            status_code=status_code, content=response.model_dump(exclude_none=True)
        )

    @staticmethod
    def success(
        request: Request,
        data: Any = None,
        message: str = "Request successful",
        pagination: Optional[PaginationMeta] = None,
        status_code: int = status.HTTP_200_OK,
    ) -> JSONResponse:
        return ResponseBuilder._build(
            request,
            status_code,
            success=True,
            status=ResponseStatus.SUCCESS,
            message=message,
            data=data,
            pagination=pagination,
        )

    @staticmethod
    def error(
        request: Request,
        message: str = "An error occurred",
        errors: Optional[List[Dict[str, Any]]] = None,
        error_code: Optional[str] = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
    ) -> JSONResponse:
        return ResponseBuilder._build(
            request,
            status_code,
            success=False,
            status=ResponseStatus.ERROR,
            message=message,
            meta={"error_code": error_code} if error_code else None,
            errors=errors,
        )

    @staticmethod
    def paginated(
        request: Request,
        data: List[Any],
        page: int,
        per_page: int,
        total: int,
        message: str = "Data retrieved successfully",
    ) -> JSONResponse:
        total_pages = (total + per_page - 1) // per_page
        pagination = PaginationMeta(
            page=page,
            per_page=per_page,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )
        return ResponseBuilder.success(
            request=request, data=data, message=message, pagination=pagination
        )
