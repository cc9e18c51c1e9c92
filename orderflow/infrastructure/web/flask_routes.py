# orderflow/infrastructure/web/flask_routes.py
from flask import Blueprint, jsonify, request, current_app
from werkzeug.exceptions import HTTPException

from orderflow.application.use_cases import OrderUseCases, ItemRequest
from orderflow.application.kitchen_use_cases import KitchenUseCases
from orderflow.application.payment_use_cases import PaymentUseCases
from orderflow.domain.exceptions import (
    DomainError,
    ValidationError,
    NotFoundError,
    InvalidTransition,
    BusinessRuleViolation,
    InsufficientStock,
    ExternalServiceError,
)
from orderflow.domain.kitchen_queue import rank_kitchen_queue
from .presenters import (
    present_order,
    present_enriched,
    present_enriched_list,
    present_kitchen_list,
    present_kitchen_order,
)


def _status_code_for(error: DomainError) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, InsufficientStock):
        return 422
    if isinstance(error, (InvalidTransition, BusinessRuleViolation)):
        return 409
    if isinstance(error, ExternalServiceError):
        return 502
    return 400


def _register_error_handlers(bp: Blueprint) -> None:
    """Traduce los errores de dominio a respuestas HTTP con mensaje descriptivo."""

    @bp.errorhandler(DomainError)
    def handle_domain_error(error):
        return jsonify({"error": type(error).__name__, "message": str(error)}), _status_code_for(error)

    @bp.errorhandler(Exception)
    def handle_unexpected_error(error):
        if isinstance(error, HTTPException):
            return error
        current_app.logger.error(f"Error inesperado procesando {request.method} {request.path}: {error}")
        return jsonify({"message": "Error interno del servicio de pedidos."}), 500


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _parse_items(raw_items):
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict) or not raw.get("product_id") or raw.get("quantity") is None:
            raise ValidationError("Each item must have product_id and quantity")
        items.append(ItemRequest(
            product_id=raw["product_id"],
            quantity=raw["quantity"],
            unit_price=raw.get("unit_price"),
            observation=raw.get("observation"),
        ))
    return items


def _parse_item_ids(raw_ids):
    """Acepta un ID suelto o una lista no vacía de IDs."""
    if isinstance(raw_ids, str) and raw_ids:
        return raw_ids
    if isinstance(raw_ids, list) and raw_ids and all(isinstance(i, str) and i for i in raw_ids):
        return raw_ids
    raise ValidationError("item_ids must be an item id or a non-empty list of item ids")


def create_api_blueprint(order_case: OrderUseCases):
    """
    Función de fábrica para inyectar el Caso de Uso en el Blueprint de pedidos.
    Crea un nuevo Blueprint en cada llamada para evitar conflictos en tests.
    """
    api_bp = Blueprint('orders', __name__)
    _register_error_handlers(api_bp)

    @api_bp.route('/', methods=['POST'])
    def create_order():
        data = _json_body()
        item_requests = _parse_items(data.get("items"))
        order = order_case.create_order_from_requests(item_requests, data.get("customer_id"))
        return jsonify(present_order(order)), 201

    @api_bp.route('/', methods=['GET'])
    def get_all_orders():
        result = order_case.find_all_orders_with_products_and_customers()
        return jsonify({"orders": present_enriched_list(result)}), 200

    @api_bp.route('/sorted', methods=['GET'])
    def list_sorted_orders():
        # Mismo criterio que la cola de cocina.
        queue = rank_kitchen_queue(order_case.find_all_orders())
        result = order_case.enrich_many(queue, with_customers=True)
        return jsonify({"orders": present_enriched_list(result)}), 200

    @api_bp.route('/<order_id>', methods=['GET'])
    def get_order_by_id(order_id):
        result = order_case.find_order_by_id_with_products_and_customers(order_id)
        return jsonify({"order": present_enriched(result)}), 200

    @api_bp.route('/customer/<customer_id>', methods=['GET'])
    def get_orders_by_customer(customer_id):
        result = order_case.find_orders_by_customer_with_products(customer_id)
        return jsonify({"orders": present_enriched_list(result)}), 200

    @api_bp.route('/status/<status>', methods=['GET'])
    def get_orders_by_status(status):
        result = order_case.find_orders_by_status_with_products(status.upper())
        return jsonify({"orders": present_enriched_list(result)}), 200

    @api_bp.route('/<order_id>/status', methods=['PATCH'])
    def update_order_status(order_id):
        data = _json_body()
        if not data.get("status"):
            raise ValidationError("status is required")
        result = order_case.update_order_status_with_products_and_customers(order_id, data["status"])
        return jsonify({"order": present_enriched(result)}), 200

    @api_bp.route('/<order_id>/items', methods=['POST'])
    def add_items(order_id):
        data = _json_body()
        items, _ = order_case.build_items(_parse_items(data.get("items")))
        order = order_case.add_items_to_order(order_id, items)
        return jsonify(present_order(order)), 200

    @api_bp.route('/<order_id>/items', methods=['DELETE'])
    def remove_items(order_id):
        data = _json_body()
        item_ids = _parse_item_ids(data.get("item_ids"))
        order = order_case.remove_items_from_order(order_id, item_ids)
        return jsonify(present_order(order)), 200

    @api_bp.route('/<order_id>/items/<item_id>', methods=['PATCH'])
    def update_item_quantity(order_id, item_id):
        data = _json_body()
        if data.get("quantity") is None:
            raise ValidationError("quantity is required")
        order = order_case.update_item_quantity(order_id, item_id, data["quantity"])
        return jsonify(present_order(order)), 200

    @api_bp.route('/<order_id>', methods=['DELETE'])
    def delete_order(order_id):
        order_case.delete_order(order_id)
        return jsonify({"message": "Order deleted successfully"}), 200

    @api_bp.route('/<order_id>/confirm', methods=['POST'])
    def confirm_order(order_id):
        order, customer = order_case.confirm_order_with_customer(order_id)
        body = present_order(order)
        body["customer"] = (
            {"id": customer.customer_id, "name": customer.name, "email": customer.email}
            if customer else None
        )
        return jsonify(body), 200

    transitions = {
        'confirm-payment': order_case.confirm_payment,
        'start-preparing': order_case.start_preparing_order,
        'ready': order_case.mark_order_as_ready,
        'deliver': order_case.mark_order_as_delivered,
        'cancel': order_case.cancel_order,
    }

    @api_bp.route('/<order_id>/<action>', methods=['POST'])
    def transition_order(order_id, action):
        handler = transitions.get(action)
        if handler is None:
            return jsonify({"message": f"Unknown action: {action}"}), 404
        order = handler(order_id)
        return jsonify({"order": present_enriched(order_case.enrich(order))}), 200

    return api_bp


def create_kitchen_blueprint(kitchen_case: KitchenUseCases):
    kitchen_bp = Blueprint('kitchen', __name__)
    _register_error_handlers(kitchen_bp)

    @kitchen_bp.route('/orders', methods=['GET'])
    def get_payment_confirmed_orders():
        result = kitchen_case.get_payment_confirmed_orders_with_customers()
        return jsonify({"orders": present_kitchen_list(result)}), 200

    @kitchen_bp.route('/queue', methods=['GET'])
    def get_kitchen_queue():
        result = kitchen_case.get_kitchen_queue_with_products_and_customers()
        return jsonify({"orders": present_kitchen_list(result)}), 200

    @kitchen_bp.route('/orders/<order_id>/status', methods=['PATCH'])
    def update_order_status(order_id):
        data = _json_body()
        if not data.get("status"):
            raise ValidationError("status is required")
        result = kitchen_case.update_order_status_with_products_and_customers(order_id, data["status"])
        return jsonify({"order": present_kitchen_order(result.order, result.products, result.customers)}), 200

    return kitchen_bp


def create_payment_blueprint(payment_case: PaymentUseCases):
    payment_bp = Blueprint('payments', __name__)
    _register_error_handlers(payment_bp)

    @payment_bp.route('/payments/<order_id>', methods=['POST'])
    def create_payment(order_id):
        data = request.get_json(silent=True) or {}
        result = payment_case.create_payment(order_id, data.get("payment_method_id"))
        return jsonify(result.to_dict()), 201

    @payment_bp.route('/payments/<order_id>/status', methods=['GET'])
    def get_payment_status(order_id):
        status = payment_case.get_payment_status(order_id)
        if status is None:
            return jsonify({"message": f"Order with ID {order_id} not found"}), 404
        return jsonify({"order_id": order_id, "payment_status": status}), 200

    @payment_bp.route('/webhooks/payment', methods=['POST'])
    def payment_webhook():
        """
        Siempre responde 200 al proveedor, incluso si la conciliación falla,
        para evitar reintentos en cascada. El fallo queda en el log.
        """
        body = request.get_json(silent=True)
        data = body.get("data") if isinstance(body, dict) else None
        payment_id = (
            (data.get("id") if isinstance(data, dict) else None)
            or request.args.get("data.id")
            or request.args.get("id")
        )
        if not payment_id:
            return jsonify({"status": "ok", "outcome": "ignored", "processed": False}), 200

        try:
            outcome = payment_case.handle_webhook_notification(str(payment_id))
        except Exception as e:
            current_app.logger.error(f"[Webhook] Error al procesar la notificación del pago {payment_id}: {e}")
            return jsonify({"status": "ok", "outcome": "error", "processed": False}), 200

        if outcome.is_noop:
            current_app.logger.info(f"[Webhook] Notificación del pago {payment_id} sin pedido asociado: {outcome.value}.")
        return jsonify({"status": "ok", "outcome": outcome.value, "processed": not outcome.is_noop}), 200

    return payment_bp
