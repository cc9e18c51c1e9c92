# orderflow/infrastructure/persistence/db_connector.py
import logging

import psycopg2
from psycopg2 import pool
from config import Config

logger = logging.getLogger(__name__)

# Pool compartido por los hilos del servidor web; None hasta init_db_pool().
db_pool = None


def init_db_pool():
    """
    Crea el pool de conexiones a PostgreSQL con los límites de Config.
    Llamadas repetidas no crean un segundo pool.
    """
    global db_pool
    if db_pool is not None:
        return

    try:
        db_pool = pool.ThreadedConnectionPool(
            minconn=Config.DB_POOL_MIN,
            maxconn=Config.DB_POOL_MAX,
            host=Config.DB_HOST,
            port=Config.DB_PORT,
            database=Config.DB_NAME,
            user=Config.DB_USER,
            password=Config.DB_PASSWORD,
        )
    except psycopg2.Error as e:
        logger.error(f"No se pudo abrir el pool hacia {Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}: {e}")
        raise ConnectionError("Fallo en la conexión inicial a la base de datos de pedidos.")

    logger.info(
        f"Pool de pedidos listo ({Config.DB_POOL_MIN}-{Config.DB_POOL_MAX} conexiones) "
        f"en {Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}."
    )


def get_connection():
    if db_pool is None:
        raise ConnectionError("El pool de la base de datos no está inicializado.")
    return db_pool.getconn()


def release_connection(conn):
    # Sin pool (p.ej. ya cerrado) la conexión simplemente se descarta.
    if db_pool is not None:
        db_pool.putconn(conn)


def close_db_pool():
    """Cierra todas las conexiones; se usa al apagar el proceso."""
    global db_pool
    if db_pool is None:
        return
    db_pool.closeall()
    db_pool = None
    logger.info("Pool de conexiones de pedidos cerrado.")
