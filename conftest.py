"""Global pytest configuration."""

import os

# Tests never reach a real database or completion service unless asked to
os.environ.setdefault("OPENAI_API_KEY", "")
os.environ.setdefault("DATABASE_URL", "")
