"""
Exception classes raised while assembling, syncing or discovering models.

Hierarchy:
    Exception (built-in)
    └── SchemaBindError
        ├── SchemaParseError - a schema document is not valid JSON or not a descriptor
        ├── SchemaError - descriptors cannot be turned into models
        ├── EmptyModelSetError - sync requested with nothing to sync
        ├── ConnectivityError - transient database connectivity failure
        ├── DiscoveryError - reverse-engineering a table failed
        └── CustomizationError - a model customization module failed

An unreadable schema directory surfaces as the builtin OSError family.
"""


class SchemaBindError(Exception):
    """Base class for every error raised by this package."""

    pass


class SchemaParseError(SchemaBindError, ValueError):
    """
    A schema document could not be parsed.

    Attributes:
        path: File the document was read from.
    """

    def __init__(self, path, reason: str):
        self.path = path
        super().__init__(f"Malformed schema document {path}: {reason}")


class SchemaError(SchemaBindError):
    """
    Descriptors reference something that does not exist or is out of order.

    Examples:
        >>> raise SchemaError("Model 'Order': undefined base 'Entity'")
        >>> raise SchemaError("Model 'Order': mixin 'Timestamps' is not registered")
    """

    pass


class EmptyModelSetError(SchemaBindError):
    def __init__(self, message: str = "There are no model definitions to sync!"):
        super().__init__(message)


class ConnectivityError(SchemaBindError):
    """
    Transient connection failure reported on a DataSource error channel.

    Only delivered to error listeners; a DataSource raises it solely when
    nobody is listening.
    """

    pass


class DiscoveryError(SchemaBindError):
    def __init__(self, table=None, reason: str = ""):
        self.table = table
        if table is None:
            message = f"Failed to enumerate tables: {reason}"
        else:
            message = f"Failed to discover table '{table}': {reason}"
        super().__init__(message)


class CustomizationError(SchemaBindError):
    def __init__(self, model_name: str, path, reason: str):
        self.model_name = model_name
        self.path = path
        super().__init__(f"Customization of model '{model_name}' ({path}) failed: {reason}")
