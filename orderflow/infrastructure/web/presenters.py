# orderflow/infrastructure/web/presenters.py
from typing import Dict, List, Any

from orderflow.domain.entities import Order, Product, Customer
from orderflow.application.use_cases import EnrichedOrder, EnrichedOrders

PRODUCT_NOT_FOUND_NAME = "Product not found"


def present_order(order: Order) -> Dict[str, Any]:
    return order.to_dict()


def present_enriched_order(
    order: Order,
    products: Dict[str, Product],
    customers: Dict[str, Customer] = None,
) -> Dict[str, Any]:
    """Pedido con nombre de producto en cada ítem y datos básicos del cliente."""
    data = order.to_dict()
    for item in data["items"]:
        product = products.get(item["product_id"])
        item["product_name"] = product.name if product else PRODUCT_NOT_FOUND_NAME

    customer = (customers or {}).get(order.customer_id) if order.customer_id else None
    data["customer"] = (
        {"id": customer.customer_id, "name": customer.name, "email": customer.email}
        if customer else None
    )
    return data


def present_enriched(result: EnrichedOrder) -> Dict[str, Any]:
    return present_enriched_order(result.order, result.products, result.customers)


def present_enriched_list(result: EnrichedOrders) -> List[Dict[str, Any]]:
    return [
        present_enriched_order(order, result.products, result.customers)
        for order in result.orders
    ]


def present_kitchen_order(
    order: Order,
    products: Dict[str, Product],
    customers: Dict[str, Customer] = None,
) -> Dict[str, Any]:
    """Vista reducida para la pantalla de cocina."""
    customer = (customers or {}).get(order.customer_id) if order.customer_id else None
    return {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status.value,
        "customer_name": customer.name if customer else None,
        "items": [
            {
                "id": item.id,
                "product_id": item.product_id,
                "product_name": (
                    products[item.product_id].name
                    if item.product_id in products else PRODUCT_NOT_FOUND_NAME
                ),
                "quantity": item.quantity,
                "observation": item.observation,
            }
            for item in order.items
        ],
        "created_at": order.created_at.isoformat(),
        "updated_at": order.updated_at.isoformat(),
    }


def present_kitchen_list(result: EnrichedOrders) -> List[Dict[str, Any]]:
    return [
        present_kitchen_order(order, result.products, result.customers)
        for order in result.orders
    ]
