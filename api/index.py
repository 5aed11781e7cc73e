"""
Serverless entry point for the Escalation Desk API
"""
import os

# Sweeps are triggered externally in serverless deployments
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("SWEEPS_ENABLED", "false")

from mangum import Mangum

from escalation_desk.infrastructure.database import init_database
from escalation_desk.main import app

init_database()

# Lambda handler for ASGI app (disable lifespan for serverless)
handler = Mangum(app, lifespan="off")
