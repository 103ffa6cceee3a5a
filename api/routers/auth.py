"""
Auth API Endpoints.

Portal login and staff discount codes.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import ServiceContainer, get_container
from api.models import (
    DiscountCodeResponse,
    DiscountRedeemRequest,
    DiscountValidationResponse,
    LoginRequest,
    LoginResponse,
    StaffAllocationResponse,
    UserResponse,
)
from services.auth_service import authenticate

router = APIRouter()


@router.post(
    "/auth/login",
    response_model=LoginResponse,
    summary="Log In",
    description="Check portal credentials and return the user with the active role for the session."
)
def login(request: LoginRequest):
    result = authenticate(request.username, request.password)
    if not result.success or result.user is None:
        raise HTTPException(status_code=401, detail=result.message)

    user = result.user
    return LoginResponse(
        user=UserResponse(
            id=user.id,
            username=user.username,
            name=user.name,
            roles=[role.value for role in user.roles],
        ),
        active_role=result.active_role.value if result.active_role else None,
        message=result.message,
    )


@router.get(
    "/discount-codes/{code}",
    response_model=DiscountValidationResponse,
    summary="Validate Discount Code"
)
def validate_discount_code(code: str, container: ServiceContainer = Depends(get_container)):
    result = container.discount_codes.validate(code)
    return DiscountValidationResponse(
        is_valid=result.is_valid,
        discount_percent=result.discount_percent,
        staff_name=result.staff_name,
        error=result.error,
    )


@router.post(
    "/discount-codes/redeem",
    response_model=DiscountCodeResponse,
    summary="Redeem Discount Code",
    description="Mark a staff discount code as used for a quote. Each code can be redeemed once."
)
def redeem_discount_code(request: DiscountRedeemRequest, container: ServiceContainer = Depends(get_container)):
    try:
        used = container.discount_codes.mark_used(
            request.code,
            request.customer_name,
            request.customer_contact,
            request.quote_id,
        )
    except KeyError:
        raise HTTPException(status_code=404, detail="Invalid discount code")
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return DiscountCodeResponse(
        code=used.code,
        staff_name=used.staff_name,
        percent=used.percent,
        is_used=used.is_used,
        used_at=used.used_at,
        used_by=used.used_by,
        quote_id=used.quote_id,
    )


@router.get(
    "/discount-codes",
    response_model=List[StaffAllocationResponse],
    summary="Staff Code Allocations"
)
def list_allocations(container: ServiceContainer = Depends(get_container)):
    return [
        StaffAllocationResponse(
            staff_id=a.staff_id,
            staff_name=a.staff_name,
            department=a.department,
            year=a.year,
            total_used=a.total_used,
            total_remaining=a.total_remaining,
            codes=[
                DiscountCodeResponse(
                    code=c.code,
                    staff_name=c.staff_name,
                    percent=c.percent,
                    is_used=c.is_used,
                    used_at=c.used_at,
                    used_by=c.used_by,
                    quote_id=c.quote_id,
                )
                for c in a.codes
            ],
        )
        for a in container.discount_codes.allocations()
    ]
