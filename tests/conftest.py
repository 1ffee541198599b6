"""Global pytest fixtures for BUILDLINE."""

pytest_plugins = [
    "tests.fixtures.projects",
]
