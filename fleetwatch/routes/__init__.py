"""
Routes module for Fleetwatch
"""
from flask import Blueprint

# Create blueprints
api_bp = Blueprint('api', __name__)

# Import route handlers
from fleetwatch.routes import api
