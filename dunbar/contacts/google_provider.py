"""Google Contacts provider backed by the People API."""

import logging
from datetime import date
from pathlib import Path
from typing import Any, Optional

import httpx

from ..config import DunbarConfig
from ..crypto import set_strict_permissions
from ..errors import PersistError, ProviderError
from .base import ContactSource
from .google_auth import GoogleAuth
from .models import Address, Contact, EmailAddress, Organization, PhoneNumber

logger = logging.getLogger(__name__)

PEOPLE_BASE = "https://people.googleapis.com/v1"
PERSON_FIELDS = (
    "names,nicknames,emailAddresses,phoneNumbers,addresses,organizations,"
    "birthdays,events,photos,biographies,metadata"
)
UPDATE_PERSON_FIELDS = (
    "names,nicknames,phoneNumbers,emailAddresses,addresses,organizations,"
    "birthdays,events,biographies"
)
PAGE_SIZE = 1000


def _resource_id(resource_name: str) -> str:
    """``people/c8935729599066447265`` -> ``c8935729599066447265``."""
    return resource_name.rsplit("/", 1)[-1]


def _type_tag(value: str) -> str:
    return value.lower() if value else "other"


def _parse_date(raw: dict) -> Optional[date]:
    """Accept a Google ``Date`` only when year, month and day are all set."""
    year, month, day = raw.get("year", 0), raw.get("month", 0), raw.get("day", 0)
    if year > 0 and month > 0 and day > 0:
        try:
            return date(year, month, day)
        except ValueError:
            return None
    return None


def person_to_contact(person: dict) -> Contact:
    resource_name = person.get("resourceName", "")
    contact = Contact(
        uid=_resource_id(resource_name),
        etag=person.get("etag", ""),
        url=resource_name,
    )

    names = person.get("names") or []
    if names:
        contact.full_name = names[0].get("displayName", "")
        contact.given_name = names[0].get("givenName", "")
        contact.family_name = names[0].get("familyName", "")

    nicknames = person.get("nicknames") or []
    if nicknames:
        contact.nickname = nicknames[0].get("value", "")

    contact.phone_numbers = [
        PhoneNumber(value=p.get("value", ""), type=_type_tag(p.get("type", "")))
        for p in person.get("phoneNumbers") or []
    ]
    contact.email_addresses = [
        EmailAddress(value=e.get("value", ""), type=_type_tag(e.get("type", "")))
        for e in person.get("emailAddresses") or []
    ]
    contact.addresses = [
        Address(
            street=a.get("streetAddress", ""),
            city=a.get("city", ""),
            state=a.get("region", ""),
            postal_code=a.get("postalCode", ""),
            country=a.get("country", ""),
            type=_type_tag(a.get("type", "")),
        )
        for a in person.get("addresses") or []
    ]

    orgs = person.get("organizations") or []
    if orgs:
        contact.organization = Organization(
            name=orgs[0].get("name", ""),
            title=orgs[0].get("title", ""),
            department=orgs[0].get("department", ""),
        )

    birthdays = person.get("birthdays") or []
    if birthdays:
        contact.birthday = _parse_date(birthdays[0].get("date") or {})

    for event in person.get("events") or []:
        if event.get("type", "").lower() == "anniversary":
            contact.anniversary = _parse_date(event.get("date") or {})
            break

    photos = person.get("photos") or []
    if photos:
        contact.photo_url = photos[0].get("url", "")

    bios = person.get("biographies") or []
    if bios:
        contact.notes = bios[0].get("value", "")

    return contact


def contact_to_person(contact: Contact) -> dict[str, Any]:
    person: dict[str, Any] = {}
    if contact.etag:
        person["etag"] = contact.etag

    if contact.full_name or contact.given_name or contact.family_name:
        person["names"] = [{"givenName": contact.given_name, "familyName": contact.family_name}]
    if contact.nickname:
        person["nicknames"] = [{"value": contact.nickname}]
    if contact.phone_numbers:
        person["phoneNumbers"] = [{"value": p.value, "type": p.type} for p in contact.phone_numbers]
    if contact.email_addresses:
        person["emailAddresses"] = [
            {"value": e.value, "type": e.type} for e in contact.email_addresses
        ]
    if contact.addresses:
        person["addresses"] = [
            {
                "streetAddress": a.street,
                "city": a.city,
                "region": a.state,
                "postalCode": a.postal_code,
                "country": a.country,
                "type": a.type,
            }
            for a in contact.addresses
        ]
    if contact.organization:
        person["organizations"] = [contact.organization.model_dump()]
    if contact.birthday:
        b = contact.birthday
        person["birthdays"] = [{"date": {"year": b.year, "month": b.month, "day": b.day}}]
    if contact.anniversary:
        a = contact.anniversary
        person["events"] = [
            {"type": "anniversary", "date": {"year": a.year, "month": a.month, "day": a.day}}
        ]
    if contact.notes:
        person["biographies"] = [{"value": contact.notes}]
    return person


class GoogleContactsProvider(ContactSource):
    name = "google"
    supports_incremental_sync = True

    def __init__(
        self,
        auth: GoogleAuth,
        sync_token_path: Path,
        client: Optional[httpx.Client] = None,
    ):
        self.auth = auth
        self.sync_token_path = sync_token_path
        self._client = client or httpx.Client(timeout=30)
        self.sync_token = ""
        self._pending_sync_token = ""
        self._deleted: list[str] = []

    @classmethod
    def from_config(cls, cfg: DunbarConfig, client: Optional[httpx.Client] = None) -> "GoogleContactsProvider":
        auth = GoogleAuth(cfg.google_creds_path, cfg.key_path, client=client)
        return cls(auth, cfg.google_sync_token_path, client=client)

    def initialize(self) -> None:
        self.auth.initialize()
        if self.sync_token_path.exists():
            self.sync_token = self.sync_token_path.read_text(encoding="utf-8").strip()

    def save_sync_token(self, token: str) -> None:
        self.sync_token = token
        try:
            self.sync_token_path.write_text(token, encoding="utf-8")
        except OSError as e:
            raise PersistError(f"failed to write sync token: {e}") from e
        set_strict_permissions(self.sync_token_path)

    def clear_sync_token(self) -> None:
        self.sync_token = ""
        self._pending_sync_token = ""
        self.sync_token_path.unlink(missing_ok=True)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.auth.valid_access_token()}"}

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(f"People API request failed: {e}") from e

    def fetch_all(self) -> list[Contact]:
        try:
            return self._fetch(self.sync_token)
        except ProviderError as e:
            if e.status_code == 410 and self.sync_token:
                logger.info("Google sync token expired, falling back to a full fetch")
                self.clear_sync_token()
                return self._fetch("")
            raise

    def _fetch(self, sync_token: str) -> list[Contact]:
        contacts: list[Contact] = []
        deleted: list[str] = []
        page_token = ""
        next_sync_token = ""
        pages = 0

        while True:
            params = {
                "personFields": PERSON_FIELDS,
                "pageSize": PAGE_SIZE,
                "sources": "READ_SOURCE_TYPE_CONTACT",
                "requestSyncToken": "true",
            }
            if sync_token:
                params["syncToken"] = sync_token
            if page_token:
                params["pageToken"] = page_token

            resp = self._request("GET", f"{PEOPLE_BASE}/people/me/connections", params=params)
            if resp.status_code != 200:
                raise ProviderError(
                    f"People API request failed with status {resp.status_code}: {resp.text}",
                    status_code=resp.status_code,
                    body=resp.text,
                )
            try:
                data = resp.json()
            except ValueError as e:
                raise ProviderError(f"People API returned invalid JSON: {e}", body=resp.text) from e
            pages += 1

            for person in data.get("connections") or []:
                if (person.get("metadata") or {}).get("deleted"):
                    uid = _resource_id(person.get("resourceName", ""))
                    logger.debug("Contact %s deleted upstream", uid)
                    deleted.append(uid)
                    continue
                contacts.append(person_to_contact(person))

            next_sync_token = data.get("nextSyncToken", next_sync_token)
            page_token = data.get("nextPageToken", "")
            if not page_token:
                break

        logger.info(
            "Fetched %d contacts from Google in %d page(s)%s",
            len(contacts), pages, " (incremental)" if sync_token else "",
        )
        self._deleted = deleted
        # Only a fully drained listing may advance the cursor, and only once
        # the caller has stored what it returned
        self._pending_sync_token = next_sync_token
        return contacts

    def commit_sync_token(self) -> None:
        if self._pending_sync_token:
            self.save_sync_token(self._pending_sync_token)
            self._pending_sync_token = ""

    def deleted_uids(self) -> list[str]:
        return list(self._deleted)

    def write_one(self, contact: Contact) -> None:
        body = contact_to_person(contact)
        if "-" not in contact.uid:
            resp = self._request(
                "PATCH",
                f"{PEOPLE_BASE}/people/{contact.uid}:updateContact",
                params={"updatePersonFields": UPDATE_PERSON_FIELDS},
                json=body,
            )
        else:
            resp = self._request("POST", f"{PEOPLE_BASE}/people:createContact", json=body)

        if resp.status_code != 200:
            raise ProviderError(
                f"failed to update contact {contact.full_name} (status {resp.status_code}): {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

    def delete_one(self, uid: str) -> None:
        resp = self._request("DELETE", f"{PEOPLE_BASE}/people/{uid}:deleteContact")
        if resp.status_code not in (200, 204):
            raise ProviderError(
                f"failed to delete contact {uid} (status {resp.status_code}): {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )
