# The catalog service is deployed on its own; its tests run against an
# in-memory SQLite database instead of the catalog Postgres instance.
import os
import sys
from pathlib import Path

import pytest

os.environ.setdefault("CATALOG_DATABASE_URL", "sqlite+pysqlite:///:memory:")

SERVICE_DIR = str(Path(__file__).resolve().parent.parent)
if SERVICE_DIR not in sys.path:
    sys.path.insert(0, SERVICE_DIR)


@pytest.fixture
def catalog_client():
    from fastapi.testclient import TestClient
    import repo
    from main import app

    repo.Base.metadata.drop_all(repo.engine)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def seed(catalog_client):
    def _seed(product_id, **overrides):
        body = {
            "title": f"Product {product_id}",
            "price": 1000,
            "sellerId": "seller-1",
            "sellerName": "Seller One",
            "shippingPayer": "seller",
        }
        body.update(overrides)
        r = catalog_client.put(f"/products/{product_id}", json=body)
        assert r.status_code == 200, r.text
        return r.json()
    return _seed
