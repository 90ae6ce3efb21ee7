from problem_vault.storage.database import Database, close_database, get_database

__all__ = ["Database", "close_database", "get_database"]
