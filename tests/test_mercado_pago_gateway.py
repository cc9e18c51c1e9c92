"""Tests para MercadoPagoGateway con requests simulado."""

import base64
import unittest
from decimal import Decimal
from unittest.mock import Mock, patch

import requests

from orderflow.domain.exceptions import ExternalServiceError
from orderflow.domain.interfaces import PaymentCreationData
from orderflow.infrastructure.gateways.mercado_pago_gateway import (
    MercadoPagoGateway,
    map_provider_status,
    render_qr_base64,
)

MODULE = 'orderflow.infrastructure.gateways.mercado_pago_gateway'
ORDER_ID = "7c0e1f5a-6d1f-4c3a-9b2e-1f4d5e6a7b8c"


def json_response(payload):
    response = Mock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


class TestMercadoPagoGateway(unittest.TestCase):

    def setUp(self):
        self.gateway = MercadoPagoGateway(
            access_token="TEST-token",
            base_url="https://mp.example/",
            notification_url="https://orders.example/webhooks/payment",
            timeout=3,
        )
        self.data = PaymentCreationData(
            amount=Decimal("20.00"),
            description=f"Order {ORDER_ID}",
            order_id=ORDER_ID,
            customer_email="ana@example.com",
        )

    @patch(f'{MODULE}.requests.post')
    def test_create_payment_success(self, mock_post):
        mock_post.return_value = json_response({"id": 12345, "init_point": "https://mp.example/qr"})

        result = self.gateway.create_payment(self.data)

        assert result.provider_id == "12345"
        assert result.qr_code == "https://mp.example/qr"
        args, kwargs = mock_post.call_args
        assert args[0] == "https://mp.example/checkout/preferences"
        assert kwargs["timeout"] == 3
        assert kwargs["headers"]["Authorization"] == "Bearer TEST-token"
        body = kwargs["json"]
        assert body["external_reference"] == ORDER_ID
        assert body["items"][0]["unit_price"] == 20.0
        assert body["payer"]["email"] == "ana@example.com"
        assert body["notification_url"] == "https://orders.example/webhooks/payment"
        assert "payment_methods" not in body

    @patch(f'{MODULE}.requests.post')
    def test_create_payment_renders_qr_image_from_init_point(self, mock_post):
        mock_post.return_value = json_response({"id": 12345, "init_point": "https://mp.example/qr"})

        result = self.gateway.create_payment(self.data)

        assert result.qr_code_base64
        png = base64.b64decode(result.qr_code_base64, validate=True)
        assert png.startswith(b"\x89PNG")

    @patch(f'{MODULE}.requests.post')
    def test_create_payment_without_init_point_has_no_qr(self, mock_post):
        mock_post.return_value = json_response({"id": 12345})

        result = self.gateway.create_payment(self.data)

        assert result.qr_code is None
        assert result.qr_code_base64 is None

    def test_render_qr_base64_depends_on_content(self):
        assert render_qr_base64("https://mp.example/a") != render_qr_base64("https://mp.example/b")

    @patch(f'{MODULE}.requests.post')
    def test_create_payment_with_method(self, mock_post):
        mock_post.return_value = json_response({"id": "pref-1"})
        self.data.payment_method_id = "pix"

        self.gateway.create_payment(self.data)

        assert mock_post.call_args.kwargs["json"]["payment_methods"] == {"default_payment_method_id": "pix"}

    @patch(f'{MODULE}.requests.post', side_effect=requests.exceptions.Timeout("timeout"))
    def test_create_payment_network_error(self, mock_post):
        with self.assertRaises(ExternalServiceError):
            self.gateway.create_payment(self.data)

    @patch(f'{MODULE}.requests.post')
    def test_create_payment_http_error(self, mock_post):
        response = json_response({})
        response.raise_for_status.side_effect = requests.exceptions.HTTPError("401")
        mock_post.return_value = response

        with self.assertRaises(ExternalServiceError):
            self.gateway.create_payment(self.data)

    @patch(f'{MODULE}.requests.post')
    def test_create_payment_without_id(self, mock_post):
        mock_post.return_value = json_response({"status": "created"})
        with self.assertRaises(ExternalServiceError):
            self.gateway.create_payment(self.data)

    @patch(f'{MODULE}.requests.get')
    def test_get_payment_status_maps_provider_status(self, mock_get):
        mock_get.return_value = json_response({"status": "authorized", "external_reference": ORDER_ID})

        result = self.gateway.get_payment_status("999")

        assert result.status == "approved"
        assert result.external_reference == ORDER_ID
        assert mock_get.call_args[0][0] == "https://mp.example/v1/payments/999"

    @patch(f'{MODULE}.requests.get')
    def test_get_payment_status_empty_reference(self, mock_get):
        mock_get.return_value = json_response({"status": "approved", "external_reference": ""})
        assert self.gateway.get_payment_status("999").external_reference is None

    @patch(f'{MODULE}.requests.get', side_effect=requests.exceptions.ConnectionError("down"))
    def test_get_payment_status_never_raises(self, mock_get):
        with self.assertLogs(MODULE, level="ERROR"):
            result = self.gateway.get_payment_status("999")

        assert result.status == "error"
        assert result.external_reference is None

    def test_map_provider_status(self):
        assert map_provider_status("in_process").value == "pending"
        assert map_provider_status("rejected").value == "rejected"
        assert map_provider_status("cancelled").value == "cancelled"
        assert map_provider_status("charged_back").value == "error"
        assert map_provider_status(None).value == "error"

    def test_defaults_from_config(self):
        with patch(f'{MODULE}.Config') as MockConfig:
            MockConfig.MERCADO_PAGO_ACCESS_TOKEN = "cfg-token"
            MockConfig.MERCADO_PAGO_API_URL = "https://api.mercadopago.com"
            MockConfig.MERCADO_PAGO_NOTIFICATION_URL = ""
            MockConfig.PAYMENT_SERVICE_TIMEOUT = 10
            gateway = MercadoPagoGateway()

        assert gateway.access_token == "cfg-token"
        assert gateway.base_url == "https://api.mercadopago.com"
        assert gateway.timeout == 10


if __name__ == '__main__':
    unittest.main()
