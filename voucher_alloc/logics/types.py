# types.py

import json
from sqlalchemy.types import TypeDecorator, Text


class JSONEncoded(TypeDecorator):
    """
    Automatically serialize/deserialize dicts and lists stored as JSON text
    """
    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False, sort_keys=True)
        raise ValueError("Expected a dict or list")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return json.loads(value)
