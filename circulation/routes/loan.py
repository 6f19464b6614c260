from fastapi import APIRouter, Depends, Query, status
from typing import List
from circulation.dependencies import get_circulation
from circulation.models.loan import LoanRecord, LoanStatus
from circulation.services.loans import CirculationManager
from circulation.schemas.loan import LoanCreate, LoanResponse, LoanDetailResponse, EligibilityResponse

router = APIRouter(tags=["Loans"])


def loan_response(circulation: CirculationManager, loan: LoanRecord) -> LoanResponse:
    return LoanResponse(
        **loan.to_dict(),
        isOverdue=circulation.is_overdue(loan),
        daysRemaining=circulation.days_remaining(loan) if loan.status == LoanStatus.ACTIVE else None,
    )


@router.post("/loans", response_model=LoanResponse, status_code=status.HTTP_201_CREATED)
def create_loan(
    payload: LoanCreate,
    circulation: CirculationManager = Depends(get_circulation),
):
    """Borrow a book. 422 with {eligible: false, reason} when a lending rule refuses it."""
    loan = circulation.create_loan(payload.user_id, payload.book_id, payload.library_id)
    return loan_response(circulation, loan)

@router.get("/loans/eligibility", response_model=EligibilityResponse)
def check_eligibility(
    user_id: str = Query(..., alias="userId"),
    book_id: str = Query(..., alias="bookId"),
    circulation: CirculationManager = Depends(get_circulation),
):
    """Advisory eligibility check. POST /loans re-checks under lock."""
    return EligibilityResponse(**circulation.check_eligibility(user_id, book_id).to_dict())

@router.get("/loans/overdue", response_model=List[LoanResponse])
def get_overdue_loans(circulation: CirculationManager = Depends(get_circulation)):
    """Active loans past their due date, most overdue first."""
    return [loan_response(circulation, loan) for loan in circulation.overdue_loans()]

@router.get("/loans/{loan_id}", response_model=LoanResponse)
def get_loan(loan_id: str, circulation: CirculationManager = Depends(get_circulation)):
    """Get specific loan details."""
    return loan_response(circulation, circulation.get_loan(loan_id))

@router.post("/loans/{loan_id}/return", response_model=LoanResponse)
def return_loan(loan_id: str, circulation: CirculationManager = Depends(get_circulation)):
    """Return a borrowed book. 404 for unknown loans, 409 if already returned."""
    return loan_response(circulation, circulation.return_loan(loan_id))

@router.get("/users/{user_id}/loans", response_model=List[LoanResponse])
def get_user_loans(
    user_id: str,
    active: bool = Query(False, description="Only loans not yet returned"),
    circulation: CirculationManager = Depends(get_circulation),
):
    """A user's loans, newest first."""
    if active:
        loans = circulation.active_loans_for_user(user_id)
    else:
        loans = circulation.loan_history_for_user(user_id)
    return [loan_response(circulation, loan) for loan in loans]

@router.get("/users/{user_id}/loans/details", response_model=List[LoanDetailResponse])
def get_user_loan_details(user_id: str, circulation: CirculationManager = Depends(get_circulation)):
    """A user's loans with book and library details."""
    return [LoanDetailResponse(**item) for item in circulation.loans_with_details(user_id)]
