from unittest.mock import patch

from shopbot.routers.whatsapp import to_twiml
from shopbot.services.dispatcher import DispatchResult

CUSTOMER = "whatsapp:+5491111111111"


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestWhatsappWebhook:
    def test_replies_with_twiml(self, client):
        response = client.post("/whatsapp", data={"From": CUSTOMER, "Body": "hola"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/xml")
        assert "<Response><Message>" in response.text
        assert "Babystepsbots" in response.text

    @patch("shopbot.routers.whatsapp.send_notifications")
    def test_handoff_notification_sent_in_background(self, mock_send, client):
        response = client.post("/whatsapp", data={"From": CUSTOMER, "Body": "humano"})

        assert response.status_code == 200
        mock_send.assert_called_once()
        messages = mock_send.call_args[0][0]
        assert len(messages) == 1
        assert "HUMANO SOLICITADO" in messages[0]

    @patch("shopbot.routers.whatsapp.send_notifications")
    def test_no_notification_for_plain_turn(self, mock_send, client):
        client.post("/whatsapp", data={"From": CUSTOMER, "Body": "catalogo"})
        mock_send.assert_not_called()

    @patch("shopbot.routers.whatsapp.process_inbound")
    def test_missing_fields_still_answer(self, mock_process, client):
        mock_process.return_value = DispatchResult(reply="No entendí")
        response = client.post("/whatsapp", data={})

        assert response.status_code == 200
        assert mock_process.call_args[0][1:] == ("unknown", "")

    def test_internal_failure_still_answers(self, client):
        with patch("shopbot.services.dispatcher.handle_inbound", side_effect=RuntimeError("boom")):
            response = client.post("/whatsapp", data={"From": CUSTOMER, "Body": "hola"})

        assert response.status_code == 200
        assert "Tuvimos un problema" in response.text

    def test_twiml_escapes_text(self):
        assert "&lt;b&gt;" in to_twiml("<b>")


class TestMessageEndpoint:
    def test_json_turn(self, client):
        response = client.post("/message", json={"from_number": CUSTOMER, "body": "hola"})

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "MENU"
        assert data["company_id"] == "babystepsbots"
        assert "Babystepsbots" in data["reply"]

    def test_state_carries_across_requests(self, client):
        client.post("/message", json={"from_number": CUSTOMER, "body": "agregar 1"})
        data = client.post("/message", json={"from_number": CUSTOMER, "body": "checkout"}).json()
        assert data["state"] == "ASK_NAME"

    @patch("shopbot.routers.message.send_notifications")
    def test_notifications_sent(self, mock_send, client):
        client.post("/message", json={"from_number": CUSTOMER, "body": "asesor"})
        mock_send.assert_called_once()

    def test_requires_from_number(self, client):
        response = client.post("/message", json={"body": "hola"})
        assert response.status_code == 422
