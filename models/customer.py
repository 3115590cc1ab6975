"""Customer contact details collected during checkout."""

from typing import Optional

from pydantic import BaseModel


class CustomerInfo(BaseModel):
    """
    Customer contact details.

    Fields may be empty while the customer is typing; they are only
    enforced when leaving the customer-info step.
    """

    name: str = ""
    email: str = ""
    phone: str = ""
    notes: Optional[str] = None

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "name": "Jana Novakova",
                "email": "jana@example.com",
                "phone": "+420123456789",
                "notes": "Prefers window seat",
            }
        }
