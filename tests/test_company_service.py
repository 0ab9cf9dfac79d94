import pytest

from shopbot.models import ChatSession
from shopbot.services.company_service import (
    CompanyValidationError,
    apply_assignment,
    assign_company,
    create_company,
    delete_assignment,
    delete_company,
    get_company,
    list_companies,
    resolve_company,
    seed_default_companies,
    update_company,
    validate_catalog,
    validate_company_id,
    validate_rules,
)
from shopbot.services.session_service import load_session

CUSTOMER = "whatsapp:+5491111111111"


class TestSeed:
    def test_default_companies_present(self, db):
        assert [c.id for c in list_companies(db)] == ["babystepsbots", "veterinaria_sm"]

    def test_seed_is_idempotent(self, db):
        assert seed_default_companies(db) == 0


class TestResolveCompany:
    def test_known_company(self, db):
        profile = resolve_company(db, "veterinaria_sm")
        assert profile.name == "Veterinaria San Miguel"
        assert profile.rules.emergency_keywords == ["urgente", "accidente"]

    def test_unknown_company_falls_back_to_default(self, db):
        assert resolve_company(db, "no_such_company").id == "babystepsbots"

    def test_none_falls_back_to_default(self, db):
        assert resolve_company(db, None).id == "babystepsbots"

    def test_missing_default_row_uses_builtin_profile(self, db):
        delete_target = get_company(db, "babystepsbots")
        db.delete(delete_target)
        db.flush()

        profile = resolve_company(db, "gone")

        assert profile.id == "babystepsbots"
        assert [item.id for item in profile.catalog] == [1, 2, 3]

    def test_malformed_stored_catalog_is_tolerated(self, db):
        company = get_company(db, "veterinaria_sm")
        company.catalog = {"not": "a list"}
        company.rules = "garbage"
        db.flush()

        profile = resolve_company(db, "veterinaria_sm")

        assert profile.catalog == []
        assert profile.rules.allow_human is True


class TestValidation:
    def test_company_id_pattern(self):
        assert validate_company_id("  Mi_Tienda-1 ") == "mi_tienda-1"
        with pytest.raises(CompanyValidationError):
            validate_company_id("ab")
        with pytest.raises(CompanyValidationError):
            validate_company_id("tienda con espacios")

    def test_catalog_must_be_list(self):
        with pytest.raises(CompanyValidationError) as exc:
            validate_catalog({"id": 1})
        assert "must be a list" in exc.value.message

    def test_catalog_accepts_json_text(self):
        assert validate_catalog('[{"id": 1, "name": "Consulta", "price": 10}]') == [
            {"id": 1, "name": "Consulta", "price": 10.0}
        ]

    def test_catalog_rejects_bad_json(self):
        with pytest.raises(CompanyValidationError) as exc:
            validate_catalog("[{")
        assert "Invalid catalog JSON" in exc.value.message

    def test_catalog_rejects_duplicate_ids(self):
        with pytest.raises(CompanyValidationError):
            validate_catalog([{"id": 1, "name": "A", "price": 1}, {"id": 1, "name": "B", "price": 2}])

    def test_catalog_rejects_negative_price(self):
        with pytest.raises(CompanyValidationError):
            validate_catalog([{"id": 1, "name": "A", "price": -1}])

    def test_rules_must_be_object(self):
        with pytest.raises(CompanyValidationError):
            validate_rules([])
        assert validate_rules('{"tone": "formal"}') == {"tone": "formal"}


class TestAdminOperations:
    def test_create_company_defaults(self, db):
        company = create_company(db, "Tienda_Nueva", "Tienda Nueva")
        assert company.id == "tienda_nueva"
        assert company.catalog == []
        assert company.rules == {"tone": "neutral", "allowHuman": True}

    def test_create_existing_returns_it(self, db):
        assert create_company(db, "veterinaria_sm").name == "Veterinaria San Miguel"

    def test_update_is_all_or_nothing(self, db):
        company = get_company(db, "veterinaria_sm")
        with pytest.raises(CompanyValidationError):
            update_company(db, company, name="Otro", catalog=[], rules=["bad"])
        assert company.name == "Veterinaria San Miguel"
        assert len(company.catalog) == 2

    def test_update_applies_valid_payload(self, db):
        company = get_company(db, "veterinaria_sm")
        update_company(db, company, prompt="Nuevo prompt", catalog=[{"id": 9, "name": "Baño", "price": 3000}])
        assert company.prompt == "Nuevo prompt"
        assert company.catalog == [{"id": 9, "name": "Baño", "price": 3000.0}]

    def test_default_company_cannot_be_deleted(self, db):
        with pytest.raises(CompanyValidationError):
            delete_company(db, get_company(db, "babystepsbots"))

    def test_delete_company(self, db):
        delete_company(db, get_company(db, "veterinaria_sm"))
        assert get_company(db, "veterinaria_sm") is None


class TestAssignments:
    def test_assign_to_missing_company(self, db):
        with pytest.raises(CompanyValidationError):
            assign_company(db, CUSTOMER, "nope")

    def test_assign_rewrites_cached_session_company(self, db):
        session = load_session(db, CUSTOMER)
        session.row.data = {"companyId": "babystepsbots", "aiMode": "lite"}
        db.flush()

        assign_company(db, CUSTOMER, "veterinaria_sm")

        row = db.query(ChatSession).filter(ChatSession.from_number == CUSTOMER).one()
        assert row.data["companyId"] == "veterinaria_sm"
        assert row.data["aiMode"] == "lite"

    def test_assign_without_session(self, db):
        assignment = assign_company(db, CUSTOMER, "veterinaria_sm")
        assert assignment.company_id == "veterinaria_sm"

    def test_reassign_is_last_write_wins(self, db):
        assign_company(db, CUSTOMER, "veterinaria_sm")
        assign_company(db, CUSTOMER, "babystepsbots")
        assert apply_assignment(db, CUSTOMER, "veterinaria_sm") == "babystepsbots"

    def test_apply_assignment_precedence(self, db):
        assert apply_assignment(db, CUSTOMER, None) == "babystepsbots"
        assert apply_assignment(db, CUSTOMER, "veterinaria_sm") == "veterinaria_sm"
        assign_company(db, CUSTOMER, "veterinaria_sm")
        assert apply_assignment(db, CUSTOMER, "babystepsbots") == "veterinaria_sm"

    def test_delete_assignment(self, db):
        assign_company(db, CUSTOMER, "veterinaria_sm")
        assert delete_assignment(db, CUSTOMER) is True
        assert delete_assignment(db, CUSTOMER) is False
