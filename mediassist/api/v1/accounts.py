from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...api.deps import rate_limit_check
from ...core.database import get_db
from ...schemas.accounts import AccountCreate, AccountResponse
from ...services.account_service import AccountService

router = APIRouter(prefix="/accounts", tags=["Accounts"])

@router.post(
    "",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit_check)],
)
def register(
    account_data: AccountCreate,
    db: Session = Depends(get_db),
):
    """Create an account. Its roles cannot change afterwards."""
    account_service = AccountService(db)
    user = account_service.register(
        email=account_data.email,
        password=account_data.password,
        display_name=account_data.display_name,
        roles=account_data.roles,
        specialization=account_data.specialization,
    )
    return AccountResponse(
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
        roles=sorted(user.roles),
        patient_id=user.patient.id if user.patient else None,
        doctor_id=user.doctor.id if user.doctor else None,
    )
