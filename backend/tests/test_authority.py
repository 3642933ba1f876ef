# Overview: Pytest coverage for shop authority, sessions, audit and document numbering.

import pytest

from hirepay.models import AuditLog, DocumentSequence, SessionToken, ShopMember
from hirepay.models.auth import ROLE_BUSINESS_ADMIN, ROLE_SALES_STAFF
from hirepay.services import audit_service
from hirepay.services.authority_service import (
    NotAuthorizedError,
    can_adjust_wallet,
    can_confirm_deposit,
    can_load_wallet,
    ensure_acting_member,
    require_shop_authority,
)
from hirepay.services.concurrency import UnitOfWork
from hirepay.services.document_service import next_document_number, DOC_WAYBILL, DocumentSequenceError
from hirepay.services.session_service import create_session, revoke_session, validate_session


class TestShopAuthority:
    def test_capabilities_by_level(self, db_session, shop, shop_admin, wallet_staff, plain_staff, business_admin, super_admin):
        admin = require_shop_authority(shop.slug, shop_admin)
        staff = require_shop_authority(shop.slug, wallet_staff)
        plain = require_shop_authority(shop.slug, plain_staff)
        owner = require_shop_authority(shop.slug, business_admin)
        root = require_shop_authority(shop.slug, super_admin)

        assert [can_confirm_deposit(a) for a in (admin, staff, plain, owner, root)] == [True, False, False, True, True]
        assert [can_load_wallet(a) for a in (admin, staff, plain, owner, root)] == [True, True, False, True, True]
        assert [can_adjust_wallet(a) for a in (admin, staff, plain, owner, root)] == [False, False, False, True, True]

    def test_business_admin_has_no_reach_into_other_business(self, db_session, other_shop, business_admin):
        with pytest.raises(NotAuthorizedError):
            require_shop_authority(other_shop.slug, business_admin)

    def test_inactive_membership(self, db_session, shop, wallet_staff):
        wallet_staff.shop_memberships[0].is_active = False
        db_session.commit()
        with pytest.raises(NotAuthorizedError):
            require_shop_authority(shop.slug, wallet_staff)

    def test_inactive_shop_reported_as_missing(self, db_session, shop, super_admin):
        shop.is_active = False
        db_session.commit()
        with pytest.raises(NotAuthorizedError, match="Shop not found"):
            require_shop_authority(shop.slug, super_admin)


class TestSessions:
    def test_token_round_trip(self, db_session, shop_admin):
        session, token = create_session(shop_admin.id, user_agent="pytest")
        assert session.token_hash != token
        assert validate_session(token).id == shop_admin.id

        assert revoke_session(token) is True
        assert validate_session(token) is None

    def test_deactivated_user_session_revoked(self, db_session, shop_admin):
        _, token = create_session(shop_admin.id)
        shop_admin.is_active = False
        db_session.commit()

        assert validate_session(token) is None
        assert db_session.query(SessionToken).one().revoked_reason == "User account deactivated"


class TestAuditSink:
    def test_record_and_list(self, db_session, shop_admin):
        audit_service.record("TEST_ACTION", "THING", 7, {"k": "v"}, actor_user_id=shop_admin.id)

        entries = audit_service.list_entries(entity_type="THING", entity_id=7)
        assert len(entries) == 1
        assert entries[0].metadata_json == {"k": "v"}

    def test_failed_write_is_swallowed(self, db_session):
        # Not JSON-serializable: the write fails at flush time
        assert audit_service.record("BROKEN", "THING", 1, {"bad": object()}) is None
        assert db_session.query(AuditLog).count() == 0


class TestDocumentNumbering:
    def test_numbers_roll_back_with_the_unit_of_work(self, db_session, shop):
        with UnitOfWork():
            assert next_document_number(shop_id=shop.id, document_type=DOC_WAYBILL) == f"WB-{shop.id:03d}-0001"

        with pytest.raises(RuntimeError):
            with UnitOfWork():
                next_document_number(shop_id=shop.id, document_type=DOC_WAYBILL)
                raise RuntimeError("abort")

        with UnitOfWork():
            assert next_document_number(shop_id=shop.id, document_type=DOC_WAYBILL) == f"WB-{shop.id:03d}-0002"

        assert db_session.query(DocumentSequence).one().next_number == 3

    def test_unknown_type(self, db_session, shop):
        with pytest.raises(DocumentSequenceError):
            next_document_number(shop_id=shop.id, document_type="INVOICE")


class TestActingMember:
    def test_deactivated_shadow_membership_is_reactivated(self, db_session, shop, business_admin, authority_for):
        shadow = ensure_acting_member(authority_for(business_admin, shop))
        assert shadow.role == ROLE_BUSINESS_ADMIN
        shadow.is_active = False
        db_session.commit()

        again = ensure_acting_member(authority_for(business_admin, shop))

        assert again.id == shadow.id
        assert again.is_active is True
        assert db_session.query(ShopMember).filter_by(user_id=business_admin.id).count() == 1

    def test_deactivated_regular_seat_is_not_credited(self, db_session, shop, business_admin, authority_for):
        db_session.add(ShopMember(shop_id=shop.id, user_id=business_admin.id, role=ROLE_SALES_STAFF, is_active=False))
        db_session.commit()

        authority = authority_for(business_admin, shop)
        assert ensure_acting_member(authority) is None
        assert authority.acting_member_id is None
        assert db_session.query(ShopMember).filter_by(user_id=business_admin.id).one().is_active is False


class TestUnitOfWork:
    def test_begins_after_an_autobegun_read(self, db_session, shop):
        # The read autobegins a transaction on the scoped session
        assert db_session.query(DocumentSequence).count() == 0

        with UnitOfWork() as uow:
            assert uow.active
            next_document_number(shop_id=shop.id, document_type=DOC_WAYBILL)

        assert not uow.active
        assert db_session.query(DocumentSequence).one().next_number == 2

    def test_manual_rollback(self, db_session, shop):
        uow = UnitOfWork().begin()
        next_document_number(shop_id=shop.id, document_type=DOC_WAYBILL)
        uow.rollback()

        assert not uow.active
        assert db_session.query(DocumentSequence).count() == 0

    def test_begin_twice(self, db_session):
        uow = UnitOfWork().begin()
        try:
            with pytest.raises(RuntimeError):
                uow.begin()
        finally:
            uow.rollback()
