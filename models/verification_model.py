from enum import Enum
from typing import Optional
from pydantic import BaseModel


class VerificationStatus(str, Enum):
    INIT = "init"
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class VerificationContext(BaseModel):
    """Identity verification state for one booking session.

    Held alongside the draft instead of in browser storage so the engine can
    be driven from tests and from the Streamlit session alike.
    """
    session_id: Optional[str] = None
    session_url: Optional[str] = None
    status: VerificationStatus = VerificationStatus.INIT

    def reset(self):
        self.session_id = None
        self.session_url = None
        self.status = VerificationStatus.INIT

    @property
    def is_verified(self):
        return self.status == VerificationStatus.VERIFIED
