from storefront.db.connection import get_engine, get_session, get_session_factory, init_db

__all__ = ["get_engine", "get_session", "get_session_factory", "init_db"]
