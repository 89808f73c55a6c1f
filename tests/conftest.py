import os
from unittest import mock

import mongomock
import pytest

os.environ["DATABASE_NAME"] = "grocery_store_test"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"

# database.py builds its client at import time, so swap the driver first
mock.patch("pymongo.MongoClient", mongomock.MongoClient).start()

from fastapi.testclient import TestClient  # noqa: E402

import main  # noqa: E402
from auth import create_token, hash_password  # noqa: E402
from database import create_document, db, oid  # noqa: E402


@pytest.fixture(autouse=True)
def clean_db():
    for name in db.list_collection_names():
        db.drop_collection(name)
    yield


@pytest.fixture
def client():
    with TestClient(main.app) as c:
        yield c


def make_user(role="user", email=None, phone_no="9876543210", password="secret123", is_active=True):
    email = email or f"{role}-{os.urandom(3).hex()}@example.com"
    user_id = create_document("user", {
        "name": role.title(),
        "email": email,
        "phone_no": phone_no,
        "password_hash": hash_password(password),
        "role": role,
        "profile_image_url": "",
        "is_active": is_active,
    })
    return db["user"].find_one({"_id": oid(user_id)})


def bearer(user):
    return {"Authorization": f"Bearer {create_token(user)}"}


def make_category(name="Grains", parent=None, is_active=True):
    category_id = create_document("category", {
        "name": name,
        "parent_category_id": parent["_id"] if parent else None,
        "image": None,
        "is_active": is_active,
    })
    return db["category"].find_one({"_id": oid(category_id)})


def make_product(category, kind="unit", name=None, price=50.0, purchase_price=30.0, is_active=True, **fields):
    doc = {
        "name": name or f"{kind} product",
        "description": None,
        "category_id": category["_id"],
        "price": price,
        "purchase_price": purchase_price,
        "images": [],
        "is_active": is_active,
        "kind": kind,
    }
    if kind == "unit":
        doc["stock"] = fields.pop("stock", 10)
    elif kind == "bulk":
        doc["quantity_in_grams"] = fields.pop("quantity_in_grams", 1000)
        doc["stock_in_grams"] = fields.pop("stock_in_grams", 5000)
    else:
        doc["quantity_in_grams"] = fields.pop("quantity_in_grams", 250)
        doc["bulk_product_id"] = fields.pop("bulk")["_id"]
    doc.update(fields)
    product_id = create_document("product", doc)
    return db["product"].find_one({"_id": oid(product_id)})


def reload(doc, collection="product"):
    return db[collection].find_one({"_id": doc["_id"]})


@pytest.fixture
def user():
    return make_user("user", email="shopper@example.com")


@pytest.fixture
def admin():
    return make_user("admin", email="admin@example.com", phone_no="9123456789")


@pytest.fixture
def user_headers(user):
    return bearer(user)


@pytest.fixture
def admin_headers(admin):
    return bearer(admin)


@pytest.fixture
def category():
    return make_category()
