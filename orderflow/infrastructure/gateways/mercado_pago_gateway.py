# orderflow/infrastructure/gateways/mercado_pago_gateway.py
"""Cliente HTTP para la API de Mercado Pago."""

import base64
import io
import logging
from typing import Any, Dict, Optional

import qrcode
import requests

from config import Config
from orderflow.domain.entities import PaymentStatus
from orderflow.domain.exceptions import ExternalServiceError
from orderflow.domain.interfaces import (
    PaymentGateway,
    PaymentCreationData,
    PaymentCreationResult,
    PaymentStatusResult,
)

logger = logging.getLogger(__name__)

# Estado del proveedor -> estado normalizado
PROVIDER_STATUS_MAP = {
    "pending": PaymentStatus.PENDING,
    "in_process": PaymentStatus.PENDING,
    "approved": PaymentStatus.APPROVED,
    "authorized": PaymentStatus.APPROVED,
    "rejected": PaymentStatus.REJECTED,
    "cancelled": PaymentStatus.CANCELLED,
}


def map_provider_status(status: Optional[str]) -> PaymentStatus:
    if not status:
        return PaymentStatus.ERROR
    return PROVIDER_STATUS_MAP.get(status, PaymentStatus.ERROR)


def render_qr_base64(content: str) -> str:
    """Imagen PNG del QR que codifica `content`, en base64 sin prefijo data:."""
    image = qrcode.make(content)
    buffer = io.BytesIO()
    image.save(buffer)
    return base64.b64encode(buffer.getvalue()).decode("ascii")


class MercadoPagoGateway(PaymentGateway):
    """Implementación del proveedor de pagos sobre la API REST de Mercado Pago."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        notification_url: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.access_token = access_token if access_token is not None else Config.MERCADO_PAGO_ACCESS_TOKEN
        self.base_url = (base_url or Config.MERCADO_PAGO_API_URL).rstrip('/')
        self.notification_url = notification_url if notification_url is not None else Config.MERCADO_PAGO_NOTIFICATION_URL
        self.timeout = timeout or Config.PAYMENT_SERVICE_TIMEOUT

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    def create_payment(self, data: PaymentCreationData) -> PaymentCreationResult:
        """Crea una preferencia de checkout; el pedido viaja como external_reference."""
        body: Dict[str, Any] = {
            "items": [
                {
                    "id": data.order_id,
                    "title": data.description,
                    "quantity": 1,
                    "unit_price": float(data.amount),
                }
            ],
            "payer": {"email": data.customer_email},
            "external_reference": data.order_id,
        }
        if self.notification_url:
            body["notification_url"] = self.notification_url
        if data.payment_method_id:
            body["payment_methods"] = {"default_payment_method_id": data.payment_method_id}

        try:
            response = requests.post(
                f"{self.base_url}/checkout/preferences",
                json=body,
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Error al crear el pago del pedido {data.order_id} en Mercado Pago: {e}")
            raise ExternalServiceError(f"Payment provider failed to create payment for order {data.order_id}")

        if not result.get("id"):
            raise ExternalServiceError(f"Payment provider returned no id for order {data.order_id}")

        init_point = result.get("init_point")
        return PaymentCreationResult(
            provider_id=str(result["id"]),
            qr_code=init_point,
            qr_code_base64=render_qr_base64(init_point) if init_point else None,
        )

    def get_payment_status(self, payment_id: str) -> PaymentStatusResult:
        try:
            response = requests.get(
                f"{self.base_url}/v1/payments/{payment_id}",
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Error al consultar el estado del pago {payment_id} en Mercado Pago: {e}")
            return PaymentStatusResult(status=PaymentStatus.ERROR.value)

        return PaymentStatusResult(
            status=map_provider_status(result.get("status")).value,
            external_reference=result.get("external_reference") or None,
        )
