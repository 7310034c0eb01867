"""Web application for the debate arena."""
