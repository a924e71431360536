import json
import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine


# Every test gets its own SQLite file so data sources never share state
@pytest.fixture(scope="function")
def connector(tmp_path):
    return {
        "name": "testdb",
        "connector": "sqlite",
        "database": str(tmp_path / "test.db"),
    }


def write_schema(directory, document):
    path = directory / f"{document['name']}.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


# Directory with A and B, B belonging to A
@pytest.fixture(scope="function")
def models_dir(tmp_path):
    directory = tmp_path / "models"
    directory.mkdir()
    write_schema(directory, {"name": "A", "properties": {"id": "number"}})
    write_schema(
        directory,
        {
            "name": "B",
            "properties": {"id": "number"},
            "relations": {"a": {"type": "belongsTo", "model": "A", "foreignKey": "aId"}},
        },
    )
    return directory


# Collects data sources and disposes their engines once the test is done
@pytest_asyncio.fixture(scope="function")
async def disposer():
    datasources = []

    def track(models):
        for model in models.values():
            datasource = model.get_data_source()
            if datasource not in datasources:
                datasources.append(datasource)
        return models

    yield track
    for datasource in datasources:
        await datasource.dispose()


async def run_sql(database, *statements):
    engine = create_async_engine(f"sqlite+aiosqlite:///{database}")
    async with engine.begin() as conn:
        for statement in statements:
            await conn.execute(text(statement))
    await engine.dispose()


@pytest.fixture(scope="function")
def execute_sql():
    return run_sql


# config <- state, with an explicit foreign key
@pytest_asyncio.fixture(scope="function")
async def discovery_db(connector):
    await run_sql(
        connector["database"],
        "CREATE TABLE config (id INTEGER PRIMARY KEY, name VARCHAR(50))",
        "CREATE TABLE state (id INTEGER PRIMARY KEY, "
        "config_id INTEGER REFERENCES config(id), value VARCHAR(50))",
        "INSERT INTO config (id, name) VALUES (1, 'main')",
        "INSERT INTO state (id, config_id, value) VALUES (1, 1, 'on')",
        "INSERT INTO state (id, config_id, value) VALUES (2, 1, 'off')",
    )
    return connector
