import os

# in-memory database for the sandbox, set before paygate.repo builds its engine
os.environ.setdefault("PAYGATE_DATABASE_URL", "sqlite://")
