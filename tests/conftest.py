import os

# Keep test runs off the on-disk default database and use a fixed token secret.
os.environ.setdefault("FINTRACK_DATABASE_URL", "sqlite://")
os.environ.setdefault("FINTRACK_TOKEN_SECRET", "test-token-secret")
os.environ.setdefault("FINTRACK_TIMEZONE", "UTC")
