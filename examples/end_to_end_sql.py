# Copyright 2021-present Kensho Technologies, LLC.
from sqlalchemy import create_engine

from crud_compiler import CrudConfig, CrudFacade, SQLAlchemyBackend, get_dialect


engine = create_engine("<connection string>")

# Name the dialect and the schema whose tables are served.
config = CrudConfig(
    dialect=get_dialect("oracle"),
    schema_name="SHOP",
    catalog_path="shop_catalog.json",
)
facade = CrudFacade(config, SQLAlchemyBackend(engine, schema="SHOP"))

# Discover every table of the schema, and persist their column categories in the catalog.
catalog = facade.get_tables_config()

# Read rows with a URL query string, exactly as received by a web layer.
cheap_products = facade.get_list(
    "PRODUCTS",
    "SELECT=ID,NAME&WHERE[COLUMN]=PRICE&WHERE[COMPARATOR]=LT&WHERE[VALUE]=10"
    "&ORDER[0][column]=NAME&ORDER[0][order]=asc&LIMIT=20",
)

# The same query as a query object.
cheap_products = facade.get_list(
    "PRODUCTS",
    {
        "SELECT": ["ID", "NAME"],
        "WHERE": {"COLUMN": "PRICE", "COMPARATOR": "LT", "VALUE": 10},
        "ORDER": [{"column": "NAME", "order": "asc"}],
        "LIMIT": 20,
    },
)

# Booleans, timestamps and binary payloads are converted in both directions.
new_id = facade.add_item(
    "PRODUCTS",
    {"NAME": "Teapot", "PRICE": 8, "IN_STOCK": True, "ADDED": "2021-03-05T14:07:09"},
)
facade.edit_item("PRODUCTS", "ID", new_id, {"IN_STOCK": False})
facade.delete_item("PRODUCTS", "ID", new_id)
