import pytest
from sqlalchemy.orm.exc import StaleDataError

from shopbot.models import ChatSession
from shopbot.services.session_service import (
    find_session,
    load_session,
    normalize_customer_id,
    reset_checkout,
    save_session,
)
from shopbot.services.settings_service import get_last_customer, remember_last_customer
from shopbot.services.state_machine import ConversationState

CUSTOMER = "whatsapp:+5491111111111"


class TestNormalizeCustomerId:
    def test_already_normalized(self):
        assert normalize_customer_id("whatsapp:+5491111111111") == "whatsapp:+5491111111111"

    def test_plus_prefixed(self):
        assert normalize_customer_id("+5491111111111") == "whatsapp:+5491111111111"

    def test_digits_only(self):
        assert normalize_customer_id("5491111111111") == "whatsapp:+5491111111111"

    def test_empty(self):
        assert normalize_customer_id("  ") == ""
        assert normalize_customer_id(None) == ""


class TestLoadSession:
    def test_creates_session_lazily_in_menu(self, db):
        assert find_session(db, CUSTOMER) is None

        session = load_session(db, CUSTOMER)

        assert session.state == ConversationState.MENU
        assert session.cart == []
        assert session.data.ai_mode == "off"
        assert find_session(db, CUSTOMER) is not None

    def test_corrupt_row_defaults_to_safe_values(self, db):
        db.add(ChatSession(from_number=CUSTOMER, state="BROKEN", cart="not a list", data=["x"]))
        db.commit()

        session = load_session(db, CUSTOMER)

        assert session.state == ConversationState.MENU
        assert session.cart == []
        assert session.data.company_id is None

    def test_save_round_trip(self, db):
        session = load_session(db, CUSTOMER)
        session.cart.extend([1, 2])
        session.state = ConversationState.ASK_NAME
        session.data.ai_mode = "lite"
        save_session(db, session)
        db.commit()
        db.expire_all()

        reloaded = find_session(db, CUSTOMER)
        assert reloaded.cart == [1, 2]
        assert reloaded.state == ConversationState.ASK_NAME
        assert reloaded.row.data["aiMode"] == "lite"

    def test_reset_checkout_preserves_ai_fields(self, db):
        session = load_session(db, CUSTOMER)
        session.cart = [1]
        session.state = ConversationState.READY
        session.data.ai_mode = "pro"
        session.data.ai_count = 5
        session.data.name = "Ana"

        reset_checkout(session)

        assert session.cart == []
        assert session.state == ConversationState.MENU
        assert session.data.name is None
        assert session.data.ai_mode == "pro"
        assert session.data.ai_count == 5


class TestOptimisticVersion:
    def test_version_increments_on_save(self, db):
        session = load_session(db, CUSTOMER)
        db.commit()
        first_version = session.row.version

        session.cart.append(1)
        save_session(db, session)
        db.commit()

        assert session.row.version == first_version + 1

    def test_write_from_stale_read_is_rejected(self, session_factory):
        first = session_factory()
        second = session_factory()
        try:
            load_session(first, CUSTOMER)
            first.commit()

            mine = find_session(first, CUSTOMER)
            theirs = find_session(second, CUSTOMER)

            mine.cart.append(1)
            save_session(first, mine)
            first.commit()

            theirs.cart.append(2)
            with pytest.raises(StaleDataError):
                save_session(second, theirs)
            second.rollback()
        finally:
            first.close()
            second.close()


class TestLastCustomer:
    def test_empty_by_default(self, db):
        assert get_last_customer(db) is None

    def test_last_write_wins(self, db):
        remember_last_customer(db, "whatsapp:+1")
        remember_last_customer(db, "whatsapp:+2")
        db.commit()
        assert get_last_customer(db) == "whatsapp:+2"

    def test_interleaved_customers_do_not_conflict(self, session_factory):
        first = session_factory()
        second = session_factory()
        try:
            remember_last_customer(first, "whatsapp:+3")
            first.commit()

            assert get_last_customer(first) == "whatsapp:+3"
            remember_last_customer(second, "whatsapp:+2")
            second.commit()

            remember_last_customer(first, "whatsapp:+1")
            first.commit()
        finally:
            first.close()
            second.close()

        check = session_factory()
        try:
            assert get_last_customer(check) == "whatsapp:+1"
        finally:
            check.close()
