# orderflow/infrastructure/persistence/db_initializer.py
import logging
import os

import psycopg2
from .db_connector import get_connection, release_connection
from config import Config

logger = logging.getLogger(__name__)

# resources/ vive en la raíz del repositorio, junto a app.py
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
RESOURCES_DIR = os.path.join(BASE_DIR, 'resources')
SCHEMA_FILE = os.path.join(RESOURCES_DIR, 'schema.sql')
INSERT_DATA_FILE = os.path.join(RESOURCES_DIR, 'insert_data.sql')


def _read_sql_file(filepath: str) -> str:
    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            return f.read()
    except FileNotFoundError:
        logger.error(f"Archivo SQL no encontrado: {filepath}")
        return ""


def _run_seed(conn, cursor, seed_sql: str) -> None:
    """Los datos de ejemplo son opcionales: un fallo se registra y se deshace."""
    try:
        cursor.execute(seed_sql)
        conn.commit()
        logger.info("Datos de ejemplo cargados (solo se insertan sobre tablas vacías).")
    except psycopg2.ProgrammingError as e:
        conn.rollback()
        logger.warning(f"No se cargaron los datos de ejemplo: {e}")


def initialize_database():
    """
    Crea el esquema `orderflow` y, si existe, ejecuta el script de datos de
    ejemplo. Solo corre cuando RUN_DB_INIT_ON_STARTUP está activo.
    """
    if not Config.RUN_DB_INIT_ON_STARTUP:
        logger.info("Inicialización de la base de datos omitida por configuración.")
        return

    schema_sql = _read_sql_file(SCHEMA_FILE)
    seed_sql = _read_sql_file(INSERT_DATA_FILE)
    if not schema_sql:
        logger.error(f"Sin esquema en {SCHEMA_FILE}; no se inicializa la base de datos.")
        return

    conn = None
    try:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(schema_sql)
        conn.commit()
        logger.info("Esquema de pedidos creado o ya existente.")

        if seed_sql:
            _run_seed(conn, cursor, seed_sql)
    except psycopg2.Error as e:
        logger.error(f"Fallo al crear el esquema de pedidos: {e}")
        if conn:
            conn.rollback()
    except ConnectionError as e:
        logger.error(f"No se pudo inicializar la base de datos: {e}")
    finally:
        if conn:
            release_connection(conn)
