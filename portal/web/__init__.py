"""Browser pages driving the login choreography."""
