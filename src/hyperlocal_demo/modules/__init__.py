"""Config store, payload parser and frame materializer."""

from hyperlocal_demo.modules import payload_parser
from hyperlocal_demo.modules.config_store import (
    PAYLOAD_TEMPLATE,
    ConfigStore,
    InMemoryStorage,
    JsonFileStorage,
)
from hyperlocal_demo.modules.frame_materializer import FrameMaterializer, decode_data_uri

__all__ = [
    "ConfigStore",
    "FrameMaterializer",
    "InMemoryStorage",
    "JsonFileStorage",
    "PAYLOAD_TEMPLATE",
    "decode_data_uri",
    "payload_parser",
]
