"""Users: model and SQLite store with salted password hashes."""
