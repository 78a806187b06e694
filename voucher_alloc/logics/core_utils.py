from voucher_alloc.logics.db import DBManager


class CoreUtils:
    """Factory for DBManager instances bound to one database URL."""

    def __init__(self, database_url: str):
        self.db_url = database_url

    def get_db_manager(self, Model) -> DBManager:
        return DBManager(self.db_url, Model)
