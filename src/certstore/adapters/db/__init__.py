"""SQLAlchemy building blocks shared by the SQL storage backend."""
