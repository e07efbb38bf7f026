# connectors/schema.py

from typing import TypedDict, Dict, List, Optional

# --------------------------
# Topology
# --------------------------

# schema names of one database
SchemaList = List[str]

# database name -> schema names; drives per-database / per-schema iteration
DatabaseList = Dict[str, SchemaList]


# --------------------------
# YAML config file schema
# --------------------------

class CollectorConfig(TypedDict, total=False):
    hostname: str
    port: str
    username: str
    password: str
    database: str               # primary connection target
    collection_list: dict       # database -> [schema, ...]
    enable_ssl: bool
    trust_server_certificate: bool
    ssl_root_cert_location: Optional[str]
    ssl_cert_location: Optional[str]
    ssl_key_location: Optional[str]
    timeout: str                # connect timeout, seconds
    pgbouncer: bool
    collect_db_lock_metrics: bool
    verbose: bool
    log_file: Optional[str]
    output: Optional[str]
    publish_url: Optional[str]
    publish_token: Optional[str]
