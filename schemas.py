"""
Database Schemas

MongoDB collection schemas, defined as Pydantic models.
Model name is converted to lowercase plural for the collection name:
- User -> "users" collection
"""

from enum import Enum
from pydantic import BaseModel, Field, EmailStr
from typing import Optional
from datetime import datetime


class Role(str, Enum):
    STUDENT = "student"
    PARENT = "parent"
    TEACHER = "teacher"
    ADMIN = "admin"


class User(BaseModel):
    """
    Users collection schema
    Collection name: "users"
    """
    firstName: str = Field(..., description="Given name")
    lastName: str = Field(..., description="Family name")
    email: EmailStr = Field(..., description="Email address, stored lower-cased and unique")
    passwordHash: str = Field(..., min_length=1, description="BCrypt password hash")
    role: Role = Field(Role.STUDENT, description="student | parent | teacher | admin")
    resetTokenHash: Optional[str] = Field(None, description="SHA-256 of the pending reset token")
    resetTokenExpiresAt: Optional[datetime] = Field(None, description="Expiry of the pending reset token")


class Principal(BaseModel):
    """
    The authenticated identity handed to route handlers.
    Never carries the password hash or reset state.
    """
    id: str
    firstName: str
    lastName: str
    email: str
    role: Role

    @classmethod
    def from_document(cls, doc: dict) -> "Principal":
        return cls(
            id=str(doc["_id"]),
            firstName=doc.get("firstName", ""),
            lastName=doc.get("lastName", ""),
            email=doc.get("email", ""),
            role=doc.get("role", Role.STUDENT),
        )

    def public(self) -> dict:
        return {
            "_id": self.id,
            "firstName": self.firstName,
            "lastName": self.lastName,
            "email": self.email,
            "role": self.role.value,
        }
