# app.py
import atexit
import logging

from flask import Flask, jsonify
from flask_cors import CORS
from dotenv import load_dotenv  # Necesario para cargar variables de entorno

# Cargar variables de entorno del archivo .env (si existe) antes de leer Config
load_dotenv()

from config import Config
from orderflow.application.use_cases import OrderUseCases
from orderflow.application.kitchen_use_cases import KitchenUseCases
from orderflow.application.payment_use_cases import PaymentUseCases
from orderflow.domain.order_number import ClockOrderNumberSequence
from orderflow.infrastructure.persistence.db_connector import init_db_pool, close_db_pool
from orderflow.infrastructure.persistence.db_initializer import initialize_database
from orderflow.infrastructure.persistence.pg_repository import (
    PgOrderRepository,
    PgProductRepository,
    PgCustomerRepository,
    PgOrderNumberSequence,
)
from orderflow.infrastructure.gateways.mercado_pago_gateway import MercadoPagoGateway
from orderflow.infrastructure.web.flask_routes import (
    create_api_blueprint,
    create_kitchen_blueprint,
    create_payment_blueprint,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def build_order_number_sequence():
    if Config.ORDER_NUMBER_STRATEGY == 'clock':
        return ClockOrderNumberSequence()
    return PgOrderNumberSequence()


def create_app(init_db: bool = True):
    """Crea, configura y cablea la aplicación Flask siguiendo la Arquitectura Limpia."""

    app = Flask(__name__)
    app.config.from_object(Config)

    # --- INICIALIZACIÓN DE LA BASE DE DATOS ---
    if init_db:
        try:
            init_db_pool()
            initialize_database()
            atexit.register(close_db_pool)
        except ConnectionError as e:
            # Las peticiones fallarán hasta que la base de datos esté disponible.
            logger.critical(f"Fallo al inicializar la BD. {e}")

    # --- CABLEADO DE DEPENDENCIAS (Dependency Injection - DI) ---

    # 1. Infraestructura (PostgreSQL y proveedor de pagos)
    order_repository = PgOrderRepository()
    product_repository = PgProductRepository()
    customer_repository = PgCustomerRepository()
    order_number_sequence = build_order_number_sequence()
    payment_gateway = MercadoPagoGateway()

    # 2. Capa de Aplicación (Use Cases), construidos una sola vez
    order_use_cases = OrderUseCases(
        order_repository=order_repository,
        product_repository=product_repository,
        customer_repository=customer_repository,
        order_number_sequence=order_number_sequence,
    )
    kitchen_use_cases = KitchenUseCases(order_use_cases)
    payment_use_cases = PaymentUseCases(
        order_repository=order_repository,
        payment_gateway=payment_gateway,
        customer_repository=customer_repository,
        order_number_sequence=order_number_sequence,
        guest_email=Config.GUEST_CUSTOMER_EMAIL,
    )

    # Configurar CORS
    CORS(app, resources={
        r"/*": {
            "origins": "*",
            "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization", "X-Requested-With"]
        }
    })

    # 3. Capa de Presentación (Web)
    app.register_blueprint(create_api_blueprint(order_use_cases), url_prefix='/orders')
    app.register_blueprint(create_kitchen_blueprint(kitchen_use_cases), url_prefix='/kitchen')
    app.register_blueprint(create_payment_blueprint(payment_use_cases))

    # --- Ruta de control ---
    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({'status': 'ok'})

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=8080, debug=False)
