"""
Read models for Patreon's JSON:API responses.

Patreon returns a primary ``data`` member plus a flat ``included`` array of
typed resources that point at each other through ``{type, id}`` pairs. Any
level of that structure may be missing or malformed, so parsing here never
raises: absent values collapse to empty strings, zeros and empty tuples.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_str(value: Any, default: str = "") -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return default


def _as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


class PatronStatus(str, Enum):
    """Values Patreon reports in ``member.patron_status``."""

    ACTIVE = "active_patron"
    DECLINED = "declined_patron"
    FORMER = "former_patron"

    @classmethod
    def parse(cls, value: Any) -> Optional["PatronStatus"]:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class ResourceRef:
    type: str
    id: str

    @classmethod
    def parse(cls, raw: Any) -> Optional["ResourceRef"]:
        raw = _as_mapping(raw)
        ref_id = _as_str(raw.get("id"))
        if not ref_id:
            return None
        return cls(type=_as_str(raw.get("type")), id=ref_id)


@dataclass(frozen=True, slots=True)
class Resource:
    """A single JSON:API resource object."""

    type: str
    id: str
    attributes: Mapping[str, Any] = field(default_factory=dict)
    relationships: Mapping[str, tuple[ResourceRef, ...]] = field(default_factory=dict)

    @classmethod
    def parse(cls, raw: Any) -> Optional["Resource"]:
        if not isinstance(raw, Mapping):
            return None

        relationships: Dict[str, tuple[ResourceRef, ...]] = {}
        for name, relationship in _as_mapping(raw.get("relationships")).items():
            linkage = _as_mapping(relationship).get("data")
            if isinstance(linkage, list):
                refs = (ResourceRef.parse(item) for item in linkage)
            else:
                refs = (ResourceRef.parse(linkage),)
            relationships[name] = tuple(ref for ref in refs if ref is not None)

        return cls(
            type=_as_str(raw.get("type")),
            id=_as_str(raw.get("id")),
            attributes=_as_mapping(raw.get("attributes")),
            relationships=relationships,
        )

    def attr_str(self, name: str, default: str = "") -> str:
        return _as_str(self.attributes.get(name), default)

    def attr_int(self, name: str, default: int = 0) -> int:
        return _as_int(self.attributes.get(name), default)

    def related(self, name: str) -> tuple[ResourceRef, ...]:
        return self.relationships.get(name, ())

    def related_one(self, name: str) -> Optional[ResourceRef]:
        refs = self.related(name)
        return refs[0] if refs else None


def _parse_resources(raw: Any) -> tuple[Resource, ...]:
    resources = (Resource.parse(item) for item in _as_list(raw))
    return tuple(resource for resource in resources if resource is not None)


@dataclass(frozen=True, slots=True)
class TierDescriptor:
    id: str
    title: str
    amount_cents: int

    @classmethod
    def from_resource(cls, resource: Resource) -> "TierDescriptor":
        return cls(
            id=resource.id,
            title=resource.attr_str("title", "Unknown") or "Unknown",
            amount_cents=resource.attr_int("amount_cents"),
        )


@dataclass(frozen=True, slots=True)
class Membership:
    """A ``member`` resource: one user's relationship to one campaign."""

    id: str
    patron_status: Optional[PatronStatus]
    amount_cents: int
    tier_ids: tuple[str, ...]
    user_id: Optional[str] = None
    full_name: str = ""

    @classmethod
    def from_resource(cls, resource: Resource) -> "Membership":
        user = resource.related_one("user")
        return cls(
            id=resource.id,
            patron_status=PatronStatus.parse(resource.attributes.get("patron_status")),
            amount_cents=resource.attr_int("currently_entitled_amount_cents"),
            tier_ids=tuple(ref.id for ref in resource.related("currently_entitled_tiers")),
            user_id=user.id if user else None,
            full_name=resource.attr_str("full_name"),
        )

    @property
    def is_active(self) -> bool:
        return self.patron_status is PatronStatus.ACTIVE


@dataclass(frozen=True, slots=True)
class UserProfile:
    patreon_id: str
    email: str = ""
    full_name: str = ""


@dataclass(frozen=True)
class JsonApiDocument:
    """Top-level JSON:API document with resource lookup by ``{type, id}``."""

    data: tuple[Resource, ...] = ()
    included: tuple[Resource, ...] = ()
    meta: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def parse(cls, payload: Any) -> "JsonApiDocument":
        payload = _as_mapping(payload)
        raw_data = payload.get("data")
        if isinstance(raw_data, list):
            data = _parse_resources(raw_data)
        else:
            primary = Resource.parse(raw_data)
            data = (primary,) if primary is not None else ()
        return cls(
            data=data,
            included=_parse_resources(payload.get("included")),
            meta=_as_mapping(payload.get("meta")),
        )

    @property
    def primary(self) -> Optional[Resource]:
        return self.data[0] if self.data else None

    def included_of_type(self, resource_type: str) -> Iterable[Resource]:
        return (item for item in self.included if item.type == resource_type)

    def find(self, resource_type: str, resource_id: str) -> Optional[Resource]:
        for item in self.included:
            if item.type == resource_type and item.id == resource_id:
                return item
        return None

    def tiers(self) -> list[TierDescriptor]:
        return [TierDescriptor.from_resource(item) for item in self.included_of_type("tier")]

    def tier(self, tier_id: str) -> Optional[TierDescriptor]:
        resource = self.find("tier", tier_id)
        return TierDescriptor.from_resource(resource) if resource else None


class MembershipSnapshot(JsonApiDocument):
    """Identity response: the user as ``data`` with memberships and tiers included."""

    @property
    def user(self) -> Optional[Resource]:
        return self.primary

    def profile(self) -> Optional[UserProfile]:
        user = self.user
        if user is None or not user.id:
            return None
        return UserProfile(
            patreon_id=user.id,
            email=user.attr_str("email"),
            full_name=user.attr_str("full_name"),
        )

    def memberships(self) -> list[Membership]:
        return [Membership.from_resource(item) for item in self.included_of_type("member")]


@dataclass(frozen=True)
class MemberPage:
    """One page of ``/campaigns/{id}/members``."""

    members: tuple[Membership, ...]
    document: JsonApiDocument
    next_cursor: Optional[str] = None
    total: Optional[int] = None

    @classmethod
    def from_document(cls, document: JsonApiDocument) -> "MemberPage":
        pagination = _as_mapping(document.meta.get("pagination"))
        cursors = _as_mapping(pagination.get("cursors"))
        next_cursor = _as_str(cursors.get("next")) or None
        total = pagination.get("total")
        return cls(
            members=tuple(
                Membership.from_resource(item) for item in document.data if item.type == "member"
            ),
            document=document,
            next_cursor=next_cursor,
            total=_as_int(total) if total is not None else None,
        )


__all__ = [
    "JsonApiDocument",
    "MemberPage",
    "Membership",
    "MembershipSnapshot",
    "PatronStatus",
    "Resource",
    "ResourceRef",
    "TierDescriptor",
    "UserProfile",
]
