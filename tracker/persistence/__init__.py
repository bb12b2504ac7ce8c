"""Persistence layer: schema management, migrations, repositories."""
