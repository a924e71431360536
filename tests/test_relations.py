import pytest
from sqlalchemy import inspect

from schemabind.core.exceptions import SchemaError
from schemabind.core.relations import camelize, default_foreign_key
from schemabind.main import load_models


def shop_schemas():
    return [
        {"name": "Customer", "properties": {"name": "string"},
         "relations": {
             "orders": {"type": "hasMany", "model": "Order"},
             "profile": {"type": "hasOne", "model": "Profile"},
         }},
        {"name": "Order", "properties": {"total": "number"},
         "relations": {"customer": {"type": "belongsTo", "model": "Customer"}}},
        {"name": "Profile", "properties": {"bio": "string"}},
        {"name": "Author", "properties": {"name": "string"},
         "relations": {"books": {"type": "hasAndBelongsToMany", "model": "Book"}}},
        {"name": "Book", "properties": {"title": "string"},
         "relations": {"authors": {"type": "hasAndBelongsToMany", "model": "Author"}}},
    ]


def test_default_foreign_keys():
    assert camelize("OrderItem") == "orderItem"
    assert default_foreign_key("Customer") == "customerId"


def test_relations_are_wired(connector):
    models = load_models(connector=connector, schemas=shop_schemas())

    customer = inspect(models["Customer"]).relationships
    assert customer["orders"].mapper.class_ is models["Order"]
    assert customer["orders"].uselist is True
    assert customer["profile"].uselist is False

    order = inspect(models["Order"]).relationships
    assert order["customer"].mapper.class_ is models["Customer"]
    assert order["customer"].uselist is False


def test_missing_foreign_keys_are_added(connector):
    models = load_models(connector=connector, schemas=shop_schemas())

    assert "customerId" in models["Order"].__table__.c
    assert "customerId" in models["Profile"].__table__.c


def test_habtm_sides_share_one_join_table(connector):
    models = load_models(connector=connector, schemas=shop_schemas())

    books = inspect(models["Author"]).relationships["books"]
    authors = inspect(models["Book"]).relationships["authors"]
    assert books.secondary is authors.secondary
    assert books.secondary.name == "AuthorBook"
    assert {"authorId", "bookId"} <= set(books.secondary.c.keys())


def test_relation_to_undefined_model(connector):
    schemas = [{"name": "Order", "relations": {"customer": {"type": "belongsTo", "model": "Customer"}}}]
    with pytest.raises(SchemaError, match="'Customer' is not defined"):
        load_models(connector=connector, schemas=schemas)


@pytest.mark.asyncio
async def test_relation_accessors_load_data(connector, disposer):
    result = await load_models(connector=connector, schemas=shop_schemas(), sync=True)
    models = disposer(result.models)
    Customer, Order, Author, Book = (models[n] for n in ("Customer", "Order", "Author", "Book"))

    customer = await Customer.create(name="Ada")
    await Order.create(total=9.5, customerId=customer.id)
    await Order.create(total=3.0, customerId=customer.id)

    loaded = await Customer.find_by_id(customer.id)
    assert sorted(order.total for order in loaded.orders) == [3.0, 9.5]
    assert loaded.profile is None

    order = await Order.find_one(total=9.5)
    assert order.customer.name == "Ada"

    async with Author.get_data_source().session() as session:
        author = Author(name="Borges")
        author.books.append(Book(title="Ficciones"))
        session.add(author)
        await session.commit()
        author_id = author.id

    loaded_author = await Author.find_by_id(author_id)
    assert [book.title for book in loaded_author.books] == ["Ficciones"]


def test_relation_name_colliding_with_column(connector):
    schemas = [
        {"name": "Customer", "properties": {"name": "string"}},
        {"name": "Order", "properties": {"customer": "string"},
         "relations": {"customer": {"type": "belongsTo", "model": "Customer"}}},
    ]
    with pytest.raises(SchemaError, match="collides with a column"):
        load_models(connector=connector, schemas=schemas)
