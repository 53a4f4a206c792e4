from typing import List

from fastapi import APIRouter, Depends, status

from app.api.v1.dependencies import get_coordinator
from app.api.v1.dependencies_auth import get_current_user
from app.core.errors import Forbidden
from app.db.models import User, UserRole
from app.schemas.loan import LoanCreate, LoanRead
from app.services.lending_coordinator import LendingCoordinator

router = APIRouter(
    prefix="/api/v1/loans",
    tags=["loans"],
)


# ---- Préstamos del usuario actual ----
@router.get("/", response_model=List[LoanRead])
def list_my_loans(
    current_user: User = Depends(get_current_user),
    coordinator: LendingCoordinator = Depends(get_coordinator),
):
    return coordinator.loans_for_user(current_user.id)


# ---- Pedir prestado ----
@router.post("/", response_model=LoanRead, status_code=status.HTTP_201_CREATED)
def borrow_book(
    payload: LoanCreate,
    current_user: User = Depends(get_current_user),
    coordinator: LendingCoordinator = Depends(get_coordinator),
):
    return coordinator.borrow(current_user.id, payload.book_id)


# ---- Detalle de un préstamo ----
@router.get("/{loan_id}", response_model=LoanRead)
def get_loan(
    loan_id: int,
    current_user: User = Depends(get_current_user),
    coordinator: LendingCoordinator = Depends(get_coordinator),
):
    loan = coordinator.get_loan(loan_id)
    if current_user.role != UserRole.ADMIN and loan.user_id != current_user.id:
        raise Forbidden(resource="loan", loan_id=loan_id, user_id=current_user.id)
    return loan


# ---- Devolver ----
@router.put("/{loan_id}/return", response_model=LoanRead)
def return_book(
    loan_id: int,
    current_user: User = Depends(get_current_user),
    coordinator: LendingCoordinator = Depends(get_coordinator),
):
    return coordinator.return_loan(loan_id, current_user.id)
