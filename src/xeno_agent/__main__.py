"""Allow ``python -m xeno_agent``."""

from xeno_agent.main import app

app()
