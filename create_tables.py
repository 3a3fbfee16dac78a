"""
Crea las tablas e inicializa cada tenant configurado en TENANT_DATABASE_URLS.

Uso: python create_tables.py [client_id ...]
"""
import sys

from gymapp.core.config import get_settings
from gymapp.core.logging_config import setup_logging
from gymapp.db.tenant_registry import tenant_registry

setup_logging()

client_ids = sys.argv[1:] or list(get_settings().TENANT_DATABASE_URLS.keys())
if not client_ids:
    print("No hay tenants configurados en TENANT_DATABASE_URLS")

for client_id in client_ids:
    print(f"Inicializando tenant {client_id}...")
    tenant_registry.get(client_id)

tenant_registry.dispose_all()
print('Proceso de creación de tablas completado')
