"""
Trino connector templates

Each registered database becomes one Trino catalog, written as a
`<catalog>.properties` file the coordinator loads on start.
"""

import re
from typing import Dict, List

DEFAULT_PORTS = {
    "postgresql": 5432,
    "mysql": 3306,
    "mariadb": 3306,
    "sqlserver": 1433,
    "clickhouse": 8123,
    "oracle": 1521,
}

DEFAULT_SCHEMAS = {
    "postgresql": "public",
    "mysql": "",
    "mariadb": "",
    "sqlserver": "dbo",
    "clickhouse": "default",
    "oracle": "",
}

# Engine-internal catalogs never synced into the registry
SYSTEM_CATALOGS = {"system", "jmx", "memory", "tpcds", "tpch"}


def _connection_url(connector: str, host: str, port: int, database: str) -> str:
    if connector == "postgresql":
        return f"jdbc:postgresql://{host}:{port}/{database}"
    if connector in ("mysql", "mariadb"):
        return f"jdbc:{connector}://{host}:{port}"
    if connector == "sqlserver":
        return f"jdbc:sqlserver://{host}:{port};database={database}"
    if connector == "clickhouse":
        return f"jdbc:clickhouse://{host}:{port}/"
    if connector == "oracle":
        return f"jdbc:oracle:thin:@{host}:{port}/{database}"
    raise ValueError(f"Unsupported connector type: {connector}")


def supported_connectors() -> List[str]:
    return list(DEFAULT_PORTS)


def default_port(connector: str) -> int:
    return DEFAULT_PORTS.get(connector, 5432)


def default_schema(connector: str) -> str:
    return DEFAULT_SCHEMAS.get(connector, "public")


def catalog_name(tenant_id: str, name: str) -> str:
    """Tenant-namespaced engine catalog name, e.g. ('acme', 'Sales DB') -> 'tacme_sales_db'."""
    return re.sub(r"[^a-z0-9_]", "_", f"t{tenant_id}_{name}".lower())


def render_properties(config: Dict) -> str:
    """
    Render a catalog .properties file.

    Args:
        config: connector, host, port, database, user, password

    Example:
        connector.name=postgresql
        connection-url=jdbc:postgresql://db:5432/sales
        connection-user=app
        connection-password=secret
    """
    connector = config["connector"]
    port = config.get("port") or default_port(connector)
    user = config.get("user") or ("default" if connector == "clickhouse" else "")
    lines = [
        f"connector.name={connector}",
        f"connection-url={_connection_url(connector, config['host'], port, config.get('database') or '')}",
        f"connection-user={user}",
        f"connection-password={config.get('password') or ''}",
    ]
    return "\n".join(lines) + "\n"
