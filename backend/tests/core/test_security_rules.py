"""Tests for the declarative document security rules."""
from datetime import UTC, datetime
from pathlib import Path

import pytest

from core.security_rules import (
    ALLOW_OWNER,
    RULES,
    AccessRequest,
    CollectionRules,
    FieldRule,
    Operation,
    evaluate,
    render_firestore_rules,
)

UID = "user-a"
OTHER = "user-b"


def request(
    operation: Operation,
    collection: str,
    doc_id: str,
    uid: str | None = UID,
    existing: dict | None = None,
    incoming: dict | None = None,
) -> AccessRequest:
    return AccessRequest(
        operation=operation,
        collection=collection,
        doc_id=doc_id,
        uid=uid,
        existing=existing,
        incoming=incoming,
    )


class TestGeneralRules:

    def test__evaluate__unknown_collection_denied(self) -> None:
        decision = evaluate(request(Operation.READ, "secrets", "x"))
        assert decision.allowed is False
        assert "no rules" in decision.reason

    @pytest.mark.parametrize("uid", [None, ""])
    def test__evaluate__unauthenticated_denied(self, uid: str | None) -> None:
        decision = evaluate(request(Operation.READ, "users", "", uid=uid))
        assert not decision
        assert decision.reason == "authentication required"

    def test__evaluate__custom_policy(self) -> None:
        policy = {"notes": CollectionRules(read=ALLOW_OWNER, owner_field="author")}
        allowed = evaluate(
            request(Operation.READ, "notes", "n1", existing={"author": UID}), rules=policy,
        )
        assert allowed
        assert not evaluate(request(Operation.READ, "users", UID), rules=policy)


class TestUsersCollection:
    """User profiles are keyed by uid and carry server-managed credits."""

    def test__read__own_profile_allowed(self) -> None:
        assert evaluate(request(Operation.READ, "users", UID, existing={"credits": 3}))

    def test__read__other_profile_denied(self) -> None:
        assert not evaluate(request(Operation.READ, "users", OTHER, existing={"credits": 3}))

    def test__create__own_profile_with_client_fields(self) -> None:
        decision = evaluate(request(
            Operation.CREATE, "users", UID,
            incoming={"displayName": "Ada", "onboardingComplete": False},
        ))
        assert decision.allowed, decision.reason

    def test__create__cannot_grant_self_credits(self) -> None:
        decision = evaluate(request(
            Operation.CREATE, "users", UID, incoming={"displayName": "Ada", "credits": 1000},
        ))
        assert not decision
        assert "credits" in decision.reason

    def test__update__cannot_change_credits(self) -> None:
        existing = {"displayName": "Ada", "credits": 3, "plan": "free"}
        decision = evaluate(request(
            Operation.UPDATE, "users", UID,
            existing=existing, incoming={**existing, "credits": 999},
        ))
        assert not decision
        assert "credits" in decision.reason

    def test__update__cannot_remove_server_fields(self) -> None:
        existing = {"displayName": "Ada", "credits": 3}
        decision = evaluate(request(
            Operation.UPDATE, "users", UID, existing=existing, incoming={"displayName": "Ada"},
        ))
        assert not decision

    def test__update__client_fields_with_server_fields_unchanged(self) -> None:
        created = datetime(2025, 1, 1, tzinfo=UTC)
        existing = {"displayName": "Ada", "credits": 3, "createdAt": created}
        decision = evaluate(request(
            Operation.UPDATE, "users", UID,
            existing=existing, incoming={**existing, "displayName": "Ada L."},
        ))
        assert decision.allowed, decision.reason

    def test__update__unknown_field_rejected(self) -> None:
        decision = evaluate(request(
            Operation.UPDATE, "users", UID,
            existing={"credits": 3}, incoming={"credits": 3, "isAdmin": True},
        ))
        assert not decision
        assert "isAdmin" in decision.reason

    def test__delete__never_allowed(self) -> None:
        assert not evaluate(request(Operation.DELETE, "users", UID, existing={"credits": 3}))

    def test__write__bool_is_not_an_int(self) -> None:
        decision = evaluate(request(
            Operation.CREATE, "users", UID, incoming={"onboardingStep": True},
        ))
        assert not decision
        assert "onboardingStep" in decision.reason


class TestBrandsCollection:
    """Brands are owned via ownerId, which can never change."""

    def brand(self, owner: str = UID, **fields: object) -> dict:
        return {"ownerId": owner, "brandName": "Acme", **fields}

    def test__create__owner_allowed(self) -> None:
        decision = evaluate(request(
            Operation.CREATE, "brands", "b1",
            incoming=self.brand(elevatorPitch="We make anvils", colorPalette=["#000"]),
        ))
        assert decision.allowed, decision.reason

    def test__create__for_someone_else_denied(self) -> None:
        assert not evaluate(request(Operation.CREATE, "brands", "b1", incoming=self.brand(OTHER)))

    def test__create__missing_required_brand_name(self) -> None:
        decision = evaluate(request(
            Operation.CREATE, "brands", "b1", incoming={"ownerId": UID},
        ))
        assert not decision
        assert "brandName" in decision.reason

    @pytest.mark.parametrize(("field", "value"), [
        ("brandName", "x" * 101),
        ("elevatorPitch", "x" * 501),
        ("targetAudience", "x" * 201),
        ("brandName", 42),
        ("colorPalette", "#000"),
        ("colorPalette", ["#000"] * 11),
    ])
    def test__create__field_constraints(self, field: str, value: object) -> None:
        decision = evaluate(request(
            Operation.CREATE, "brands", "b1", incoming={**self.brand(), field: value},
        ))
        assert not decision
        assert field in decision.reason

    def test__read__other_users_brand_denied(self) -> None:
        assert not evaluate(request(Operation.READ, "brands", "b1", existing=self.brand(OTHER)))

    def test__read__missing_document_denied(self) -> None:
        """Ownership can't be proven for a document that does not exist."""
        assert not evaluate(request(Operation.READ, "brands", "missing", existing=None))

    def test__update__cannot_transfer_ownership(self) -> None:
        existing = self.brand()
        decision = evaluate(request(
            Operation.UPDATE, "brands", "b1",
            existing=existing, incoming={**existing, "ownerId": OTHER},
        ))
        assert not decision
        assert "ownerId" in decision.reason

    def test__update__other_users_brand_denied(self) -> None:
        existing = self.brand(OTHER)
        decision = evaluate(request(
            Operation.UPDATE, "brands", "b1",
            existing=existing, incoming={**existing, "brandName": "Hijacked"},
        ))
        assert not decision

    def test__update__owner_can_edit(self) -> None:
        existing = self.brand()
        decision = evaluate(request(
            Operation.UPDATE, "brands", "b1",
            existing=existing, incoming={**existing, "targetAudience": "Remote-First Startups"},
        ))
        assert decision.allowed, decision.reason

    def test__delete__owner_only(self) -> None:
        assert evaluate(request(Operation.DELETE, "brands", "b1", existing=self.brand()))
        assert not evaluate(request(Operation.DELETE, "brands", "b1", existing=self.brand(OTHER)))


class TestServerWrittenCollections:
    """Logos and the credit ledger are written only by the server."""

    @pytest.mark.parametrize("collection", ["logos", "creditLedger"])
    def test__read__owner_allowed(self, collection: str) -> None:
        assert evaluate(request(Operation.READ, collection, "d1", existing={"ownerId": UID}))

    @pytest.mark.parametrize("collection", ["logos", "creditLedger"])
    @pytest.mark.parametrize("operation", [Operation.CREATE, Operation.UPDATE])
    def test__write__denied_even_for_owner(self, collection: str, operation: Operation) -> None:
        doc = {"ownerId": UID}
        assert not evaluate(request(operation, collection, "d1", existing=doc, incoming=doc))

    def test__delete__owner_may_delete_logo(self) -> None:
        assert evaluate(request(Operation.DELETE, "logos", "l1", existing={"ownerId": UID}))

    def test__delete__ledger_is_append_only(self) -> None:
        assert not evaluate(
            request(Operation.DELETE, "creditLedger", "e1", existing={"ownerId": UID}),
        )


class TestFieldRule:

    def test__float_accepts_int(self) -> None:
        assert FieldRule(float).check(3) is None
        assert FieldRule(float).check(True) is not None

    def test__render__optional_and_required(self) -> None:
        assert FieldRule(str, max_length=5).render("name") == (
            "(!('name' in request.resource.data) || "
            "(request.resource.data.name is string && request.resource.data.name.size() <= 5))"
        )
        assert FieldRule(bool, required=True).render("flag") == (
            "('flag' in request.resource.data && request.resource.data.flag is bool)"
        )


class TestRenderFirestoreRules:
    """The exported rules text mirrors the Python policy."""

    def test__render__has_block_per_collection_and_default_deny(self) -> None:
        text = render_firestore_rules()

        assert text.startswith("rules_version = '2';")
        for collection in RULES:
            assert f"match /{collection}/{{docId}} {{" in text
        assert "match /{document=**} {\n      allow read, write: if false;" in text

    def test__render__users_rules(self) -> None:
        text = render_firestore_rules()

        assert "allow read: if request.auth != null && request.auth.uid == docId;" in text
        assert "!request.resource.data.keys().hasAny(['createdAt', 'credits', 'plan'])" in text
        assert "allow delete: if false;" in text

    def test__render__server_written_collection_denies_writes(self) -> None:
        text = render_firestore_rules({"logos": RULES["logos"]})

        assert "allow read: if request.auth != null && resource.data.ownerId == request.auth.uid;" in text
        assert "allow create: if false;" in text
        assert "allow update: if false;" in text

    def test__render__create_checks_incoming_owner(self) -> None:
        text = render_firestore_rules({"brands": RULES["brands"]})

        assert (
            "allow create: if request.auth != null "
            "&& request.resource.data.ownerId == request.auth.uid"
        ) in text
        assert ".affectedKeys().hasAny(['ownerId'])" in text

    def test__render__matches_deployed_rules_file(self) -> None:
        """firestore.rules must be regenerated whenever RULES changes."""
        deployed = Path(__file__).resolve().parents[3] / "firestore.rules"

        assert deployed.read_text() == render_firestore_rules()
