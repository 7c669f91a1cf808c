from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List

class UserOut(BaseModel):
    id: str
    email: Optional[EmailStr] = None
    display_name: Optional[str] = None
    phone: Optional[str] = None
    photo_url: Optional[str] = None
    providers: List[str] = []
    created_at: Optional[str] = None

class UserUpdateMe(BaseModel):
    display_name: str = Field(..., min_length=2, max_length=50)

class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
