from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class PhoneNumber(BaseModel):
    value: str
    type: str = "other"  # "home" | "work" | "mobile" | "fax" | ...


class EmailAddress(BaseModel):
    value: str
    type: str = "other"


class Address(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""
    type: str = "other"


class Organization(BaseModel):
    name: str = ""
    title: str = ""
    department: str = ""


class Contact(BaseModel):
    # Provider sync fields
    uid: str = ""
    etag: str = ""
    url: str = ""  # provider resource name

    given_name: str = ""
    family_name: str = ""
    full_name: str = ""
    nickname: str = ""

    phone_numbers: list[PhoneNumber] = []
    email_addresses: list[EmailAddress] = []
    addresses: list[Address] = []

    organization: Optional[Organization] = None

    birthday: Optional[date] = None
    anniversary: Optional[date] = None
    photo_url: str = ""

    tags: list[str] = []
    notes: str = ""

    last_modified: Optional[datetime] = None  # set only by local writes
    last_synced: Optional[datetime] = None  # set only by provider sync

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, tags: list[str]) -> list[str]:
        return list(dict.fromkeys(t for t in tags if t))

    @property
    def is_local(self) -> bool:
        """Locally generated uids are UUIDs; provider-assigned ones never contain a hyphen."""
        return "-" in self.uid

    def primary_phone(self) -> str:
        """First mobile/cell number, else the first number, else ""."""
        for phone in self.phone_numbers:
            if phone.type in ("mobile", "cell"):
                return phone.value
        if self.phone_numbers:
            return self.phone_numbers[0].value
        return ""

    def primary_email(self) -> str:
        if self.email_addresses:
            return self.email_addresses[0].value
        return ""

    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        name = f"{self.given_name} {self.family_name}".strip()
        return name or self.primary_email() or self.uid
