"""Publishing of export artifacts."""

from .publisher import Publisher
from .writers import WRITERS, write_csv, write_json

__all__ = ["Publisher", "WRITERS", "write_csv", "write_json"]
