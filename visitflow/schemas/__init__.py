from visitflow.schemas.user import (
    UserCreate,
    UserResponse,
    UserLogin,
    UserLoginResponse,
    TokenData,
)
from visitflow.schemas.capacity import (
    CapacityResult,
    AlternativeSlot,
    CapacityValidationRequest,
    OccupancyLogResponse,
)
from visitflow.schemas.invitation import (
    InvitationCreate,
    InvitationUpdate,
    InvitationResponse,
    InvitationListResponse,
)

__all__ = [
    "UserCreate",
    "UserResponse",
    "UserLogin",
    "UserLoginResponse",
    "TokenData",
    "CapacityResult",
    "AlternativeSlot",
    "CapacityValidationRequest",
    "OccupancyLogResponse",
    "InvitationCreate",
    "InvitationUpdate",
    "InvitationResponse",
    "InvitationListResponse",
]
