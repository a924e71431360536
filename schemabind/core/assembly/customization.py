import importlib.util
import logging
import re
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Protocol, Union

from schemabind.core.config import settings
from schemabind.core.exceptions import CustomizationError

logger = logging.getLogger(__name__)

_CAPITAL = re.compile(r"([A-Z])")


def filesystem_slug(model_name: str) -> str:
    """
    File name stem for a model's customization module.

    Every capital letter starts a new hyphenated, lowercased token and a
    leading hyphen is dropped:

        "Order"     -> "order"
        "OrderItem" -> "order-item"
        "HTTPLog"   -> "h-t-t-p-log"   (acronyms are not grouped)
        "order"     -> "order"
    """
    return _CAPITAL.sub(lambda match: f"-{match.group(1).lower()}", model_name).lstrip("-")


# =========================
# Remote hooks
# =========================
class RemoteHooks(Protocol):
    """Hooks a web framework host provides to model customization code."""

    def remote_method(self, name: str, *args: Any, **options: Any) -> Any: ...

    def before_remote(self, name: str, handler: Callable[..., Any]) -> Any: ...

    def after_remote(self, name: str, handler: Callable[..., Any]) -> Any: ...


class StandaloneRemoteHooks:
    """Used when no web framework hosts the models: every hook is accepted and ignored."""

    def remote_method(self, name, *args, **options):
        logger.debug(f"Ignoring remote method registration {name}")

    def before_remote(self, name, handler):
        return None

    def after_remote(self, name, handler):
        return None


def install_remote_hooks(model, hooks: RemoteHooks) -> None:
    model.remote_method = hooks.remote_method
    model.before_remote = hooks.before_remote
    model.after_remote = hooks.after_remote


# =========================
# Customization modules
# =========================
def customization_path(models_path: Union[str, Path], model_name: str) -> Path:
    return Path(models_path) / f"{filesystem_slug(model_name)}{settings.CUSTOMIZATION_SUFFIX}"


def _load_entrypoint(model_name: str, path: Path):
    spec = importlib.util.spec_from_file_location(
        f"schemabind_customizations.{path.stem.replace('-', '_')}", path
    )
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as error:
        raise CustomizationError(model_name, path, f"import failed: {error}") from error

    entrypoint = getattr(module, settings.CUSTOMIZATION_ENTRYPOINT, None)
    if not callable(entrypoint):
        raise CustomizationError(
            model_name, path, f"no {settings.CUSTOMIZATION_ENTRYPOINT}() function"
        )
    return entrypoint


def customize_model(model, path: Path, hooks: RemoteHooks) -> None:
    """Run the customization module at `path` against `model`."""
    entrypoint = _load_entrypoint(model.__name__, path)
    install_remote_hooks(model, hooks)
    try:
        entrypoint(model)
    except Exception as error:
        raise CustomizationError(model.__name__, path, str(error)) from error
    logger.info(f"Applied customization {path.name} to {model.__name__}")


def load_customizations(
    models: Mapping[str, type],
    models_path: Union[str, Path],
    hooks: Optional[RemoteHooks] = None,
) -> int:
    """
    Apply <models_path>/<slug>.py to every model that has one.

    Returns:
        Number of models customized.
    """
    hooks = hooks or StandaloneRemoteHooks()
    customized = 0
    for model_name, model in models.items():
        path = customization_path(models_path, model_name)
        if path.is_file():
            customize_model(model, path, hooks)
            customized += 1
    return customized
