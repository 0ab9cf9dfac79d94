import json
import logging

from shopbot.logging_config import CustomerLogger, JSONFormatter, get_logger

CUSTOMER = "whatsapp:+5491111111111"


def _record(**extra):
    record = logging.LogRecord("shopbot.test", logging.INFO, __file__, 1, "Order confirmed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "shopbot.test"
        assert data["message"] == "Order confirmed"
        assert "context" not in data
        assert "customer" not in data

    def test_context_is_included(self):
        data = json.loads(JSONFormatter().format(_record(context={"order_id": "PED-ABC123", "total": 280.0})))
        assert data["context"] == {"order_id": "PED-ABC123", "total": 280.0}

    def test_customer_and_company_are_top_level(self):
        record = _record(context={"from_number": CUSTOMER, "company_id": "veterinaria_sm", "order_id": "PED-ABC123"})
        data = json.loads(JSONFormatter().format(record))
        assert data["customer"] == CUSTOMER
        assert data["company"] == "veterinaria_sm"
        assert data["context"] == {"order_id": "PED-ABC123"}

    def test_non_json_values_are_stringified(self):
        from datetime import date

        data = json.loads(JSONFormatter().format(_record(context={"day": date(2026, 3, 14)})))
        assert data["context"]["day"] == "2026-03-14"


class TestLoggers:
    def test_namespaced(self):
        assert get_logger("dispatcher").name == "shopbot.dispatcher"

    def test_customer_logger_merges_context(self):
        log = CustomerLogger(get_logger("test"), CUSTOMER, "veterinaria_sm")
        _, kwargs = log.process("Handoff requested", {"context": {"urgent": True}})
        assert kwargs["extra"]["context"] == {"from_number": CUSTOMER, "company_id": "veterinaria_sm", "urgent": True}

    def test_unknown_company_is_omitted(self):
        log = CustomerLogger(get_logger("test"), CUSTOMER)
        _, kwargs = log.process("Admin command from non-admin sender", {})
        assert kwargs["extra"]["context"] == {"from_number": CUSTOMER}

    def test_for_company_keeps_customer(self):
        log = CustomerLogger(get_logger("test"), CUSTOMER, "babystepsbots").for_company("veterinaria_sm")
        assert log.from_number == CUSTOMER
        _, kwargs = log.process("Company assignment applied", {})
        assert kwargs["extra"]["context"]["company_id"] == "veterinaria_sm"
