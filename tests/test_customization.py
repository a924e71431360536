import json
import pytest

from schemabind.core.assembly.customization import (
    StandaloneRemoteHooks,
    customization_path,
    filesystem_slug,
)
from schemabind.core.exceptions import CustomizationError
from schemabind.main import load_models


@pytest.mark.parametrize(
    "model_name, slug",
    [
        ("Order", "order"),
        ("OrderItem", "order-item"),
        ("order", "order"),
        ("orderItem", "order-item"),
        ("HTTPLog", "h-t-t-p-log"),
    ],
)
def test_filesystem_slug(model_name, slug):
    assert filesystem_slug(model_name) == slug


def test_customization_path(tmp_path):
    assert customization_path(tmp_path, "OrderItem") == tmp_path / "order-item.py"


@pytest.fixture(scope="function")
def shop_dir(tmp_path):
    directory = tmp_path / "models"
    directory.mkdir()
    for name in ("Order", "OrderItem"):
        (directory / f"{name}.json").write_text(
            json.dumps({"name": name, "properties": {"total": "number"}})
        )
    return directory


def test_customization_receives_model_with_hook_stubs(connector, shop_dir):
    (shop_dir / "order-item.py").write_text(
        "def customize(model):\n"
        "    model.remote_method('summary', returns={'arg': 'total'})\n"
        "    model.before_remote('create', lambda ctx: None)\n"
        "    model.after_remote('create', lambda ctx: None)\n"
        "    model.customized_as = model.__name__\n"
    )
    models = load_models(connector=connector, models_path=shop_dir)

    assert models["OrderItem"].customized_as == "OrderItem"
    assert not hasattr(models["Order"], "customized_as")
    assert not hasattr(models["Order"], "remote_method")


def test_customization_errors_propagate(connector, shop_dir):
    (shop_dir / "order.py").write_text(
        "def customize(model):\n"
        "    raise ValueError('bad customization')\n"
    )
    with pytest.raises(CustomizationError, match="bad customization") as exc_info:
        load_models(connector=connector, models_path=shop_dir)
    assert isinstance(exc_info.value.__cause__, ValueError)
    assert exc_info.value.model_name == "Order"


def test_customization_without_entrypoint(connector, shop_dir):
    (shop_dir / "order.py").write_text("VALUE = 1\n")
    with pytest.raises(CustomizationError, match="customize"):
        load_models(connector=connector, models_path=shop_dir)


def test_host_provided_hooks(connector, shop_dir):
    """A web host can hand in its own hooks instead of the no-op ones"""
    registered = []

    class HostHooks(StandaloneRemoteHooks):
        def remote_method(self, name, *args, **options):
            registered.append(name)

    (shop_dir / "order.py").write_text(
        "def customize(model):\n"
        "    model.remote_method('totals')\n"
    )
    load_models(connector=connector, models_path=shop_dir, remote_hooks=HostHooks())
    assert registered == ["totals"]
