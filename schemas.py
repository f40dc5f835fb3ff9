"""
Database Schemas

Each Pydantic model represents a MongoDB collection and is used to validate
documents before they are written. Model name is converted to lowercase for
the collection name:
- Advertisement -> "advertisement" collection
- Service -> "service" collection
- Enquiry -> "enquiry" collection
- Visitor -> "visitor" collection
- User -> "user" collection
"""

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, Field, StringConstraints

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


def collection_name(model) -> str:
    return model.__name__.lower()


class Advertisement(BaseModel):
    title: NonEmptyStr = Field(..., description="Headline shown on the site")
    image: NonEmptyStr = Field(..., description="Public URL of the stored image")
    description: NonEmptyStr = Field(..., description="Advertisement body text")


class Service(BaseModel):
    title: NonEmptyStr = Field(..., description="Service name")
    description: NonEmptyStr = Field(..., description="Service description")
    image: Optional[str] = Field(None, description="Public URL of the stored image")


class Enquiry(BaseModel):
    name: NonEmptyStr = Field(..., description="Full name")
    email: NonEmptyStr = Field(..., description="Email address")
    mobile: NonEmptyStr = Field(..., description="Mobile number")
    subject: NonEmptyStr
    address: NonEmptyStr
    message: NonEmptyStr


class Visitor(BaseModel):
    ipAddress: NonEmptyStr = Field(..., description="Network address, one record per address")
    city: NonEmptyStr
    region: NonEmptyStr
    country: NonEmptyStr
    visitTime: Optional[datetime] = Field(None, description="Time of the latest visit")


class User(BaseModel):
    username: NonEmptyStr = Field(..., description="Unique login name")
    password: str = Field(..., description="bcrypt hash, never plaintext")
    isAdmin: bool = Field(False, description="Whether the user may use the admin panel")
