"""Gateway spec merging, conversion and Postman collection tooling."""

__version__ = "1.0.0"
