"""
Declarative per-collection, per-field authorization policy for client document access.

``RULES`` is the single source of truth. ``evaluate`` enforces it on every read
and write made through the documents API, and ``render_firestore_rules`` emits
the same policy as Firestore security rules so direct SDK access from the
browser is held to identical constraints.

Semantics follow Firestore:

- ``existing`` is the stored document (``resource.data``), None if absent.
- ``incoming`` is the full document as it would be after the write
  (``request.resource.data``), not just the changed fields.
- Rules that depend on the stored document deny access to missing documents.
"""
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

Document = dict[str, Any]


class Operation(StrEnum):
    """Kinds of document access."""

    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class AccessRequest:
    """A single client attempt to access a document."""

    operation: Operation
    collection: str
    doc_id: str
    uid: str | None
    existing: Document | None = None
    incoming: Document | None = None


@dataclass(frozen=True)
class RuleDecision:
    """Outcome of evaluating the rules for one request."""

    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


# Python type -> Firestore rules type name
_RULES_TYPE_NAMES: dict[type, str] = {
    str: "string",
    bool: "bool",
    int: "int",
    float: "number",
    list: "list",
    dict: "map",
}


@dataclass(frozen=True)
class FieldRule:
    """Constraint on a single client-writable field."""

    type: type
    max_length: int | None = None
    required: bool = False

    def check(self, value: Any) -> str | None:
        """Return an error message, or None if the value is acceptable."""
        # bool is a subclass of int; never let True pass as an int
        if self.type is not bool and isinstance(value, bool):
            return f"must be of type {_RULES_TYPE_NAMES[self.type]}"
        if self.type is float:
            valid = isinstance(value, int | float)
        else:
            valid = isinstance(value, self.type)
        if not valid:
            return f"must be of type {_RULES_TYPE_NAMES[self.type]}"
        if self.max_length is not None and len(value) > self.max_length:
            return f"must be at most {self.max_length} long"
        return None

    def render(self, name: str) -> str:
        ref = f"request.resource.data.{name}"
        parts = [f"{ref} is {_RULES_TYPE_NAMES[self.type]}"]
        if self.max_length is not None:
            parts.append(f"{ref}.size() <= {self.max_length}")
        check = " && ".join(parts)
        if self.required:
            return f"('{name}' in request.resource.data && {check})"
        return f"(!('{name}' in request.resource.data) || ({check}))"


class Condition(ABC):
    """Base access condition for one operation on a collection."""

    @abstractmethod
    def check(self, request: AccessRequest, rules: "CollectionRules") -> bool:
        """Return True if the request passes this condition."""

    @abstractmethod
    def render(self, operation: Operation, rules: "CollectionRules") -> str:
        """Return the Firestore rules expression for this condition."""


class Deny(Condition):
    """Never allowed from clients; only the server (admin access) may do this."""

    def check(self, request: AccessRequest, rules: "CollectionRules") -> bool:
        return False

    def render(self, operation: Operation, rules: "CollectionRules") -> str:
        return "false"


class AllowOwner(Condition):
    """
    Allowed only to the authenticated owner.

    Ownership is the document id itself when ``owner_field`` is None (user
    profiles), otherwise the value of ``owner_field``: taken from the incoming
    document on create and from the stored document for everything else.
    """

    def check(self, request: AccessRequest, rules: "CollectionRules") -> bool:
        if not request.uid:
            return False
        if rules.owner_field is None:
            return request.doc_id == request.uid
        source = request.incoming if request.operation == Operation.CREATE else request.existing
        if source is None:
            return False
        return source.get(rules.owner_field) == request.uid

    def render(self, operation: Operation, rules: "CollectionRules") -> str:
        authed = "request.auth != null"
        if rules.owner_field is None:
            return f"{authed} && request.auth.uid == docId"
        source = "request.resource.data" if operation == Operation.CREATE else "resource.data"
        return f"{authed} && {source}.{rules.owner_field} == request.auth.uid"


DENY = Deny()
ALLOW_OWNER = AllowOwner()


@dataclass(frozen=True)
class CollectionRules:
    """Policy for one top-level collection."""

    read: Condition = DENY
    create: Condition = DENY
    update: Condition = DENY
    delete: Condition = DENY
    owner_field: str | None = None
    fields: Mapping[str, FieldRule] = field(default_factory=dict)
    server_fields: frozenset[str] = frozenset()
    immutable_fields: frozenset[str] = frozenset()

    def condition_for(self, operation: Operation) -> Condition:
        return getattr(self, operation.value)

    @property
    def protected_fields(self) -> frozenset[str]:
        """Fields a client update may never change."""
        owner = {self.owner_field} if self.owner_field else set()
        return self.server_fields | self.immutable_fields | owner

    @property
    def writable_fields(self) -> frozenset[str]:
        """Every field name allowed to appear in a client-written document."""
        owner = {self.owner_field} if self.owner_field else set()
        return frozenset(self.fields) | self.server_fields | owner


RULES: dict[str, CollectionRules] = {
    "users": CollectionRules(
        read=ALLOW_OWNER,
        create=ALLOW_OWNER,
        update=ALLOW_OWNER,
        fields={
            "displayName": FieldRule(str, max_length=100),
            "email": FieldRule(str, max_length=320),
            "photoUrl": FieldRule(str, max_length=2048),
            "onboardingComplete": FieldRule(bool),
            "onboardingStep": FieldRule(int),
        },
        server_fields=frozenset({"credits", "plan", "createdAt"}),
    ),
    "brands": CollectionRules(
        read=ALLOW_OWNER,
        create=ALLOW_OWNER,
        update=ALLOW_OWNER,
        delete=ALLOW_OWNER,
        owner_field="ownerId",
        fields={
            "brandName": FieldRule(str, max_length=100, required=True),
            "elevatorPitch": FieldRule(str, max_length=500),
            "targetAudience": FieldRule(str, max_length=200),
            "industry": FieldRule(str, max_length=100),
            "colorPalette": FieldRule(list, max_length=10),
            "logoId": FieldRule(str, max_length=128),
        },
        immutable_fields=frozenset({"ownerId"}),
    ),
    "logos": CollectionRules(
        read=ALLOW_OWNER,
        delete=ALLOW_OWNER,
        owner_field="ownerId",
    ),
    "creditLedger": CollectionRules(
        read=ALLOW_OWNER,
        owner_field="ownerId",
    ),
}


def _validate_write(request: AccessRequest, rules: CollectionRules) -> RuleDecision:
    incoming = request.incoming or {}

    unknown = sorted(set(incoming) - rules.writable_fields)
    if unknown:
        return RuleDecision(False, f"unknown fields: {', '.join(unknown)}")

    if request.operation == Operation.CREATE:
        forbidden = sorted(rules.server_fields & set(incoming))
        if forbidden:
            return RuleDecision(False, f"server-managed fields: {', '.join(forbidden)}")
        for name, rule in rules.fields.items():
            if rule.required and name not in incoming:
                return RuleDecision(False, f"missing required field: {name}")
    else:
        existing = request.existing or {}
        changed = sorted(
            name for name in rules.protected_fields
            if name in existing or name in incoming
            if existing.get(name) != incoming.get(name)
        )
        if changed:
            return RuleDecision(False, f"protected fields cannot change: {', '.join(changed)}")

    for name, rule in rules.fields.items():
        if name not in incoming:
            if rule.required:
                return RuleDecision(False, f"missing required field: {name}")
            continue
        error = rule.check(incoming[name])
        if error:
            return RuleDecision(False, f"{name} {error}")

    return RuleDecision(True)


def evaluate(
    request: AccessRequest, rules: Mapping[str, CollectionRules] | None = None,
) -> RuleDecision:
    """
    Decide whether a client may perform ``request``.

    Unknown collections and unauthenticated callers are always denied.
    """
    policy = RULES if rules is None else rules
    collection_rules = policy.get(request.collection)
    if collection_rules is None:
        return RuleDecision(False, f"no rules for collection '{request.collection}'")
    if not request.uid:
        return RuleDecision(False, "authentication required")

    condition = collection_rules.condition_for(request.operation)
    if not condition.check(request, collection_rules):
        return RuleDecision(False, f"{request.operation.value} not permitted")

    if request.operation in (Operation.CREATE, Operation.UPDATE):
        return _validate_write(request, collection_rules)
    return RuleDecision(True)


def _render_write_checks(operation: Operation, rules: CollectionRules) -> list[str]:
    allowed_keys = ", ".join(f"'{name}'" for name in sorted(rules.writable_fields))
    checks = [f"request.resource.data.keys().hasOnly([{allowed_keys}])"]
    if operation == Operation.CREATE and rules.server_fields:
        server = ", ".join(f"'{name}'" for name in sorted(rules.server_fields))
        checks.append(f"!request.resource.data.keys().hasAny([{server}])")
    if operation == Operation.UPDATE and rules.protected_fields:
        protected = ", ".join(f"'{name}'" for name in sorted(rules.protected_fields))
        checks.append(
            "!request.resource.data.diff(resource.data).affectedKeys()"
            f".hasAny([{protected}])",
        )
    checks.extend(rule.render(name) for name, rule in sorted(rules.fields.items()))
    return checks


def render_firestore_rules(rules: Mapping[str, CollectionRules] | None = None) -> str:
    """Render the policy as a Firestore ``firestore.rules`` file."""
    policy = RULES if rules is None else rules
    lines = [
        "rules_version = '2';",
        "",
        "service cloud.firestore {",
        "  match /databases/{database}/documents {",
    ]
    for collection, collection_rules in policy.items():
        lines.append(f"    match /{collection}/{{docId}} {{")
        for operation in Operation:
            condition = collection_rules.condition_for(operation)
            expression = condition.render(operation, collection_rules)
            if operation in (Operation.CREATE, Operation.UPDATE) and not isinstance(
                condition, Deny,
            ):
                checks = _render_write_checks(operation, collection_rules)
                expression = "\n          && ".join([expression, *checks])
            lines.append(f"      allow {operation.value}: if {expression};")
        lines.append("    }")
    lines.extend([
        "    match /{document=**} {",
        "      allow read, write: if false;",
        "    }",
        "  }",
        "}",
        "",
    ])
    return "\n".join(lines)
