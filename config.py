# config.py
import os


class Config:
    """Clase base de configuración, con variables de entorno para DB y pagos."""
    # Configuración de la Base de Datos (PostgreSQL)
    DB_HOST = os.environ.get('DB_HOST', 'localhost')
    DB_PORT = os.environ.get('DB_PORT', '5432')
    DB_NAME = os.environ.get('DB_NAME', 'orderflow_db')
    DB_USER = os.environ.get('DB_USER', 'postgres')
    DB_PASSWORD = os.environ.get('DB_PASSWORD', 'postgres')
    DB_POOL_MIN = int(os.environ.get('DB_POOL_MIN', '1'))
    DB_POOL_MAX = int(os.environ.get('DB_POOL_MAX', '10'))
    # Parámetros para la inicialización de la BD
    RUN_DB_INIT_ON_STARTUP = os.environ.get('RUN_DB_INIT_ON_STARTUP', 'False').lower() == 'true'

    # Proveedor de pagos (Mercado Pago)
    MERCADO_PAGO_ACCESS_TOKEN = os.environ.get('MERCADO_PAGO_ACCESS_TOKEN', '')
    MERCADO_PAGO_API_URL = os.environ.get('MERCADO_PAGO_API_URL', 'https://api.mercadopago.com')
    MERCADO_PAGO_NOTIFICATION_URL = os.environ.get('MERCADO_PAGO_NOTIFICATION_URL', '')
    PAYMENT_SERVICE_TIMEOUT = int(os.environ.get('PAYMENT_SERVICE_TIMEOUT', '10'))

    # "database" usa el contador diario persistido; "clock" el esquema provisional.
    ORDER_NUMBER_STRATEGY = os.environ.get('ORDER_NUMBER_STRATEGY', 'database').lower()
    GUEST_CUSTOMER_EMAIL = os.environ.get('GUEST_CUSTOMER_EMAIL', 'guest@orderflow.local')
