from pydantic import BaseModel, Field
from typing import Optional

# E.164: до 15 цифр, опционально с "+"
PHONE_PATTERN = r"^\+?[1-9]\d{1,14}$"


class ShareCartRequest(BaseModel):
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    message: Optional[str] = Field(None, max_length=4096)


class ShareProductRequest(BaseModel):
    product_id: str = Field(..., min_length=1)
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    message: Optional[str] = Field(None, max_length=4096)


class SendMessageRequest(BaseModel):
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    message: Optional[str] = Field(None, max_length=4096)
