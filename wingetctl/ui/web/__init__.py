"""Web API — Flask app factory and routes."""
